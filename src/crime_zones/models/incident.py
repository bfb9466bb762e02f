"""Crime incident model."""

from datetime import UTC, datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from crime_zones.database import Base, JSONVariant


class CrimeIncident(Base):
    """A reported incident, upserted by its external incident number."""

    __tablename__ = "crime_incidents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    incident_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    # NIBRS classification
    crime_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # ISO 8601 strings as delivered by the source
    occurrence_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    entry_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # Complete source record
    raw_data: Mapped[dict | None] = mapped_column(JSONVariant, nullable=True)

    geo_category: Mapped[str | None] = mapped_column(String(16), nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        nullable=False,
    )
    categorized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "geo_category IS NULL OR geo_category IN ('inside', 'bordering', 'outside')",
            name="ck_incident_geo_category",
        ),
        CheckConstraint(
            "(latitude IS NULL AND longitude IS NULL) OR "
            "(latitude IS NOT NULL AND longitude IS NOT NULL "
            "AND latitude BETWEEN -90 AND 90 AND longitude BETWEEN -180 AND 180)",
            name="ck_incident_valid_coordinates",
        ),
        Index("ix_incidents_entry_date", "entry_date"),
        Index("ix_incidents_geo_category", "geo_category"),
        Index("ix_incidents_crime_type", "crime_type"),
        Index("ix_incidents_coordinates", "latitude", "longitude"),
    )
