"""Initial schema: boundaries and crime incidents

Revision ID: 001
Revises:
Create Date: 2026-10-16

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "geographic_boundaries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(16), nullable=False),
        sa.Column("geometry", JSON_TYPE, nullable=False),
        sa.Column("metadata", JSON_TYPE, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("category IN ('district', 'buffer')", name="ck_boundary_category"),
    )
    op.create_index("ix_boundaries_lookup", "geographic_boundaries", ["name", "category", "is_active"])

    op.create_table(
        "crime_incidents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("incident_number", sa.String(64), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("crime_type", sa.String(128), nullable=True),
        sa.Column("occurrence_date", sa.String(32), nullable=True),
        sa.Column("entry_date", sa.String(32), nullable=True),
        sa.Column("raw_data", JSON_TYPE, nullable=True),
        sa.Column("geo_category", sa.String(16), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("categorized_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("incident_number"),
        sa.CheckConstraint(
            "geo_category IS NULL OR geo_category IN ('inside', 'bordering', 'outside')",
            name="ck_incident_geo_category",
        ),
        sa.CheckConstraint(
            "(latitude IS NULL AND longitude IS NULL) OR "
            "(latitude IS NOT NULL AND longitude IS NOT NULL "
            "AND latitude BETWEEN -90 AND 90 AND longitude BETWEEN -180 AND 180)",
            name="ck_incident_valid_coordinates",
        ),
    )
    op.create_index("ix_incidents_entry_date", "crime_incidents", ["entry_date"])
    op.create_index("ix_incidents_geo_category", "crime_incidents", ["geo_category"])
    op.create_index("ix_incidents_crime_type", "crime_incidents", ["crime_type"])
    op.create_index("ix_incidents_coordinates", "crime_incidents", ["latitude", "longitude"])


def downgrade() -> None:
    op.drop_index("ix_incidents_coordinates", table_name="crime_incidents")
    op.drop_index("ix_incidents_crime_type", table_name="crime_incidents")
    op.drop_index("ix_incidents_geo_category", table_name="crime_incidents")
    op.drop_index("ix_incidents_entry_date", table_name="crime_incidents")
    op.drop_table("crime_incidents")
    op.drop_index("ix_boundaries_lookup", table_name="geographic_boundaries")
    op.drop_table("geographic_boundaries")
