"""Boundary geometry: parsing, containment and buffering."""

from crime_zones.geo.buffer import MIN_QUAD_SEGS, buffer_metadata, generate_buffer
from crime_zones.geo.geometry import (
    BoundingBox,
    Geometry,
    LocalProjection,
    MultiPolygon,
    Polygon,
    bounding_box,
    contains_point,
    from_shapely,
    parse_geometry,
    planar_area_m2,
    to_geojson,
    to_shapely,
)

__all__ = [
    "BoundingBox",
    "Geometry",
    "LocalProjection",
    "MIN_QUAD_SEGS",
    "MultiPolygon",
    "Polygon",
    "bounding_box",
    "buffer_metadata",
    "contains_point",
    "from_shapely",
    "generate_buffer",
    "parse_geometry",
    "planar_area_m2",
    "to_geojson",
    "to_shapely",
]
