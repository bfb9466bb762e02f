"""Boundary repository - data access for district and buffer boundaries.

Saving never deactivates earlier rows for the same (name, category).
Callers deactivate a superseded boundary before saving its replacement;
lookups always return the most recently created active row.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crime_zones.geo.geometry import parse_geometry, to_geojson
from crime_zones.models.boundary import GeographicBoundary as BoundaryModel
from crime_zones.schemas.boundary import Boundary, BoundaryCategory, BoundaryMetadata

logger = logging.getLogger(__name__)


def _ensure_utc(dt: datetime) -> datetime:
    """Ensure datetime is timezone-aware (UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _dump_metadata(metadata: BoundaryMetadata | dict[str, Any] | None) -> dict[str, Any] | None:
    if metadata is None:
        return None
    if isinstance(metadata, dict):
        metadata = BoundaryMetadata.model_validate(metadata)
    return metadata.model_dump(mode="json", exclude_none=True)


async def save_boundary(
    db: AsyncSession,
    name: str,
    category: BoundaryCategory | str,
    geometry: dict[str, Any],
    metadata: BoundaryMetadata | dict[str, Any] | None = None,
) -> int:
    """Insert a new active boundary and return its id.

    Raises:
        GeometryError: if ``geometry`` is not a valid Polygon/MultiPolygon.
    """
    category = BoundaryCategory(category)
    parsed = parse_geometry(geometry)

    boundary = BoundaryModel(
        name=name,
        category=category.value,
        geometry=to_geojson(parsed),
        boundary_metadata=_dump_metadata(metadata),
        is_active=True,
    )
    db.add(boundary)
    await db.commit()
    await db.refresh(boundary)

    logger.info("Saved boundary: %s (category: %s, id: %d)", name, category.value, boundary.id)
    return boundary.id


async def get_boundary(
    db: AsyncSession, name: str, category: BoundaryCategory | str
) -> Boundary | None:
    """Get the most recently created active boundary with this name and category."""
    result = await db.execute(
        select(BoundaryModel)
        .where(
            BoundaryModel.name == name,
            BoundaryModel.category == BoundaryCategory(category).value,
            BoundaryModel.is_active == True,  # noqa: E712
        )
        .order_by(BoundaryModel.created_at.desc(), BoundaryModel.id.desc())
        .limit(1)
    )
    boundary = result.scalar_one_or_none()
    if boundary is None:
        return None
    return _to_schema(boundary)


async def get_boundary_by_id(db: AsyncSession, boundary_id: int) -> Boundary | None:
    """Get a boundary by ID, active or not."""
    result = await db.execute(select(BoundaryModel).where(BoundaryModel.id == boundary_id))
    boundary = result.scalar_one_or_none()
    if boundary is None:
        return None
    return _to_schema(boundary)


async def list_boundaries(
    db: AsyncSession, category: BoundaryCategory | str | None = None
) -> list[Boundary]:
    """List active boundaries ordered by (category, name)."""
    query = select(BoundaryModel).where(BoundaryModel.is_active == True)  # noqa: E712
    if category is not None:
        query = query.where(BoundaryModel.category == BoundaryCategory(category).value)
    query = query.order_by(BoundaryModel.category, BoundaryModel.name, BoundaryModel.id)

    result = await db.execute(query)
    return [_to_schema(b) for b in result.scalars().all()]


async def set_boundary_active(db: AsyncSession, boundary_id: int, is_active: bool) -> None:
    """Set the active flag. Unknown ids are ignored."""
    await db.execute(
        update(BoundaryModel)
        .where(BoundaryModel.id == boundary_id)
        .values(is_active=is_active)
    )
    await db.commit()
    logger.info("Updated boundary %d active status to %s", boundary_id, is_active)


async def deactivate_boundary(db: AsyncSession, boundary_id: int) -> None:
    """Soft delete a boundary. Idempotent."""
    await set_boundary_active(db, boundary_id, False)


async def boundary_exists(db: AsyncSession, name: str, category: BoundaryCategory | str) -> bool:
    """True if an active boundary with this name and category exists."""
    result = await db.execute(
        select(func.count())
        .select_from(BoundaryModel)
        .where(
            BoundaryModel.name == name,
            BoundaryModel.category == BoundaryCategory(category).value,
            BoundaryModel.is_active == True,  # noqa: E712
        )
    )
    return result.scalar_one() > 0


def _to_schema(boundary: BoundaryModel) -> Boundary:
    """Convert SQLAlchemy model to Pydantic schema."""
    return Boundary(
        id=boundary.id,
        name=boundary.name,
        category=boundary.category,
        geometry=boundary.geometry,
        metadata=BoundaryMetadata.model_validate(boundary.boundary_metadata or {}),
        is_active=boundary.is_active,
        created_at=_ensure_utc(boundary.created_at),
    )
