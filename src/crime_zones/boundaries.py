"""Boundary workflows - importing district outlines and regenerating buffers."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from crime_zones.config import settings
from crime_zones.errors import GeometryError, MissingBoundaryError
from crime_zones.geo.buffer import buffer_metadata, generate_buffer
from crime_zones.geo.geometry import to_geojson
from crime_zones.repositories import boundary as boundary_repo
from crime_zones.schemas.boundary import BoundaryCategory, BoundaryMetadata

logger = logging.getLogger(__name__)


def load_geojson(path: str | Path) -> dict[str, Any]:
    """Read a GeoJSON document from disk."""
    with Path(path).open(encoding="utf-8") as f:
        return json.load(f)


def _feature_name(feature: dict[str, Any]) -> str | None:
    properties = feature.get("properties") or {}
    return properties.get("Name") or properties.get("name")


def select_feature(document: dict[str, Any], feature_name: str | None = None) -> dict[str, Any]:
    """Pick the geometry to import from a GeoJSON document.

    A FeatureCollection is searched for the feature whose ``Name`` (or
    ``name``) property equals ``feature_name``; without a name it must hold
    exactly one feature. Features and bare geometries are returned as-is.

    Raises:
        GeometryError: if no single feature matches.
    """
    if document.get("type") != "FeatureCollection":
        return document

    features = document.get("features") or []
    if feature_name is None:
        if len(features) != 1:
            raise GeometryError(
                f"FeatureCollection has {len(features)} features; specify which one to import"
            )
        return features[0]

    matches = [f for f in features if _feature_name(f) == feature_name]
    if not matches:
        raise GeometryError(f"No feature named '{feature_name}' in FeatureCollection")
    if len(matches) > 1:
        raise GeometryError(f"{len(matches)} features named '{feature_name}' in FeatureCollection")
    return matches[0]


async def import_boundary_from_geojson(
    db: AsyncSession,
    document: dict[str, Any],
    name: str,
    category: BoundaryCategory | str = BoundaryCategory.DISTRICT,
    feature_name: str | None = None,
    metadata: BoundaryMetadata | dict[str, Any] | None = None,
) -> int:
    """Save one feature of a GeoJSON document as a new active boundary.

    Existing boundaries with the same name are not deactivated; callers
    deactivate them first when replacing an outline.
    """
    feature = select_feature(document, feature_name)
    if metadata is None:
        metadata = BoundaryMetadata(
            source="api",
            description=f"Imported from feature '{feature_name or _feature_name(feature) or name}'",
        )
    boundary_id = await boundary_repo.save_boundary(db, name, category, feature, metadata)
    logger.info(
        "Imported %s boundary '%s' (id: %d)", BoundaryCategory(category).value, name, boundary_id
    )
    return boundary_id


async def regenerate_buffer(
    db: AsyncSession,
    name: str | None = None,
    distance_km: float | None = None,
    force: bool = False,
    quad_segs: int | None = None,
) -> int:
    """Generate the buffer boundary around the active district.

    If an active buffer already exists it is kept and its id returned,
    unless ``force`` is set: then it is deactivated and replaced.

    Raises:
        MissingBoundaryError: if there is no active district to buffer.
    """
    name = name or settings.boundary_name
    distance_km = settings.buffer_distance_km if distance_km is None else distance_km
    quad_segs = quad_segs or settings.buffer_quad_segs

    district = await boundary_repo.get_boundary(db, name, BoundaryCategory.DISTRICT)
    if district is None:
        raise MissingBoundaryError(name, BoundaryCategory.DISTRICT.value)

    existing = await boundary_repo.get_boundary(db, name, BoundaryCategory.BUFFER)
    if existing is not None and not force:
        logger.warning(
            "Buffer boundary for '%s' already exists (id: %d); use force to regenerate",
            name,
            existing.id,
        )
        return existing.id

    logger.info("Generating %.2f km buffer around district '%s'...", distance_km, name)
    loop = asyncio.get_running_loop()
    buffered = await loop.run_in_executor(
        None, generate_buffer, district.geometry, distance_km, quad_segs
    )

    if existing is not None:
        await boundary_repo.deactivate_boundary(db, existing.id)
        logger.info("Deactivated previous buffer boundary %d", existing.id)

    buffer_id = await boundary_repo.save_boundary(
        db,
        name,
        BoundaryCategory.BUFFER,
        to_geojson(buffered),
        buffer_metadata(district.id, distance_km, name),
    )
    return buffer_id
