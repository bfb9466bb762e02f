"""Boundary model - append-only log of district and buffer polygons."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from crime_zones.database import Base, JSONVariant


class GeographicBoundary(Base):
    """A named boundary.

    Rows are never deleted. Superseded boundaries are deactivated so the
    history of imports and regenerations is preserved.
    """

    __tablename__ = "geographic_boundaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    # GeoJSON Polygon/MultiPolygon geometry
    geometry: Mapped[dict] = mapped_column(JSONVariant, nullable=False)
    # "metadata" is reserved on declarative classes
    boundary_metadata: Mapped[dict | None] = mapped_column(
        "metadata", JSONVariant, nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("category IN ('district', 'buffer')", name="ck_boundary_category"),
        Index("ix_boundaries_lookup", "name", "category", "is_active"),
    )
