"""Buffer zone generation - outward offset of a boundary by a fixed distance."""

import logging
import math
from datetime import UTC, datetime
from typing import Any

import shapely

from crime_zones.errors import GeometryError
from crime_zones.geo.geometry import (
    Geometry,
    LocalProjection,
    from_shapely,
    parse_geometry,
    to_shapely,
)
from crime_zones.schemas.boundary import BoundaryMetadata

logger = logging.getLogger(__name__)

# Arc segments per quarter circle; fewer makes rounded corners visibly faceted
MIN_QUAD_SEGS = 64

BUFFER_UNITS = "kilometers"


def generate_buffer(
    geometry: Geometry | dict[str, Any],
    distance_km: float,
    quad_segs: int = MIN_QUAD_SEGS,
) -> Geometry:
    """Dilate a polygon or multipolygon outward by ``distance_km``.

    The result may be a Polygon or a MultiPolygon regardless of the input
    type (disjoint lobes can merge, for instance).

    Raises:
        GeometryError: if the source is empty, zero-area or invalid, or if
            the distance is not a positive finite number.
        ValueError: if ``quad_segs`` is below the minimum resolution.
    """
    if quad_segs < MIN_QUAD_SEGS:
        raise ValueError(f"quad_segs must be at least {MIN_QUAD_SEGS}, got {quad_segs}")
    if not math.isfinite(distance_km) or distance_km <= 0:
        raise GeometryError(f"Buffer distance must be a positive number of km, got {distance_km}")

    source = parse_geometry(geometry)
    projection = LocalProjection.centered_on(source)
    projected = projection.project(to_shapely(source))

    if projected.is_empty or projected.area <= 0:
        raise GeometryError("Cannot buffer an empty or zero-area geometry")
    if not projected.is_valid:
        reason = shapely.is_valid_reason(projected)
        raise GeometryError(f"Cannot buffer an invalid geometry: {reason}")

    buffered = projected.buffer(distance_km * 1000.0, quad_segs=quad_segs)
    if buffered.is_empty:
        raise GeometryError("Buffer operation produced an empty geometry")

    result = from_shapely(projection.unproject(buffered))
    logger.debug(
        "Generated %.3f km buffer (%s -> %s)", distance_km, source.type, result.type
    )
    return result


def buffer_metadata(
    base_boundary_id: int,
    distance_km: float,
    boundary_name: str,
) -> BoundaryMetadata:
    """Provenance recorded alongside a generated buffer."""
    return BoundaryMetadata(
        source="generated-buffer",
        buffer_distance=distance_km,
        buffer_units=BUFFER_UNITS,
        base_boundary_id=base_boundary_id,
        created_at=datetime.now(UTC),
        description=f"{distance_km}km buffer zone around {boundary_name} district",
    )
