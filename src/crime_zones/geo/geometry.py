"""Polygonal boundary geometry.

Boundaries are parsed from GeoJSON into a small tagged variant
(``Polygon`` | ``MultiPolygon``) with coordinates in degrees
longitude/latitude. Containment is answered by a single ray-casting
function that dispatches on the tag; Shapely is only used where a real
geometry kernel is needed (buffering and planar area), through a local
equirectangular projection that is accurate at city-district scale.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np
import shapely
from shapely.geometry import MultiPolygon as ShapelyMultiPolygon
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry.base import BaseGeometry

from crime_zones.errors import GeometryError

Position = tuple[float, float]
Ring = tuple[Position, ...]

# Mean earth radius (IUGG), metres
EARTH_RADIUS_M = 6_371_008.8
METERS_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180.0

# Tolerance (degrees) for treating a point as lying on a ring edge
EDGE_TOLERANCE = 1e-12

_OUTSIDE = 0
_INSIDE = 1
_BOUNDARY = 2


@dataclass(frozen=True)
class BoundingBox:
    """An axis-aligned box in degrees. Edges are inclusive."""

    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    def contains(self, lng: float, lat: float) -> bool:
        return self.min_lng <= lng <= self.max_lng and self.min_lat <= lat <= self.max_lat

    def union(self, other: "BoundingBox") -> "BoundingBox":
        """Smallest box covering both boxes."""
        return BoundingBox(
            min_lng=min(self.min_lng, other.min_lng),
            min_lat=min(self.min_lat, other.min_lat),
            max_lng=max(self.max_lng, other.max_lng),
            max_lat=max(self.max_lat, other.max_lat),
        )

    def covers(self, other: "BoundingBox") -> bool:
        return (
            self.min_lng <= other.min_lng
            and self.min_lat <= other.min_lat
            and self.max_lng >= other.max_lng
            and self.max_lat >= other.max_lat
        )

    def as_list(self) -> list[float]:
        """Return ``[min_lng, min_lat, max_lng, max_lat]`` (GeoJSON bbox order)."""
        return [self.min_lng, self.min_lat, self.max_lng, self.max_lat]


@dataclass(frozen=True)
class Polygon:
    """A polygon: the first ring is the exterior, any further rings are holes."""

    rings: tuple[Ring, ...]
    type: Literal["Polygon"] = field(default="Polygon", init=False)

    @property
    def exterior(self) -> Ring:
        return self.rings[0]

    @property
    def holes(self) -> tuple[Ring, ...]:
        return self.rings[1:]


@dataclass(frozen=True)
class MultiPolygon:
    """A collection of polygons, treated as their union."""

    polygons: tuple[Polygon, ...]
    type: Literal["MultiPolygon"] = field(default="MultiPolygon", init=False)


Geometry = Polygon | MultiPolygon


# ============================================================================
# GeoJSON parsing
# ============================================================================


def parse_geometry(document: dict[str, Any]) -> Geometry:
    """Parse a GeoJSON Polygon/MultiPolygon.

    Also accepts a ``Feature`` wrapping one, or a ``FeatureCollection``
    holding exactly one polygonal feature.

    Raises:
        GeometryError: for unsupported types or malformed coordinates.
    """
    if isinstance(document, (Polygon, MultiPolygon)):
        return document
    if not isinstance(document, dict):
        raise GeometryError(f"Expected a GeoJSON object, got {type(document).__name__}")

    kind = document.get("type")
    if kind == "FeatureCollection":
        features = document.get("features") or []
        if len(features) != 1:
            raise GeometryError(
                f"FeatureCollection must hold exactly one feature, got {len(features)}"
            )
        return parse_geometry(features[0])
    if kind == "Feature":
        geometry = document.get("geometry")
        if geometry is None:
            raise GeometryError("Feature has no geometry")
        return parse_geometry(geometry)

    coordinates = document.get("coordinates")
    if kind == "Polygon":
        return _parse_polygon(coordinates)
    if kind == "MultiPolygon":
        if not isinstance(coordinates, list) or not coordinates:
            raise GeometryError("MultiPolygon has no polygons")
        return MultiPolygon(tuple(_parse_polygon(p) for p in coordinates))

    raise GeometryError(f"Unsupported geometry type: {kind!r}")


def _parse_polygon(coordinates: Any) -> Polygon:
    if not isinstance(coordinates, list) or not coordinates:
        raise GeometryError("Polygon has no rings")
    return Polygon(tuple(_parse_ring(ring) for ring in coordinates))


def _parse_ring(coordinates: Any) -> Ring:
    if not isinstance(coordinates, (list, tuple)):
        raise GeometryError("Ring must be a sequence of positions")

    positions: list[Position] = []
    for position in coordinates:
        if not isinstance(position, (list, tuple)) or len(position) < 2:
            raise GeometryError(f"Invalid position: {position!r}")
        lng, lat = position[0], position[1]
        if isinstance(lng, bool) or isinstance(lat, bool):
            raise GeometryError(f"Invalid position: {position!r}")
        try:
            lng, lat = float(lng), float(lat)
        except (TypeError, ValueError) as e:
            raise GeometryError(f"Invalid position: {position!r}") from e
        if not (math.isfinite(lng) and math.isfinite(lat)):
            raise GeometryError(f"Non-finite position: {position!r}")
        positions.append((lng, lat))

    if len(positions) < 4:
        raise GeometryError(f"Ring needs at least 4 positions, got {len(positions)}")
    if positions[0] != positions[-1]:
        raise GeometryError("Ring is not closed (first and last positions differ)")
    return tuple(positions)


def to_geojson(geometry: Geometry) -> dict[str, Any]:
    """Convert a parsed geometry back to a GeoJSON geometry dict."""
    if geometry.type == "Polygon":
        return {
            "type": "Polygon",
            "coordinates": [[list(p) for p in ring] for ring in geometry.rings],
        }
    return {
        "type": "MultiPolygon",
        "coordinates": [
            [[list(p) for p in ring] for ring in polygon.rings]
            for polygon in geometry.polygons
        ],
    }


# ============================================================================
# Bounding boxes and containment
# ============================================================================


def _polygons(geometry: Geometry) -> tuple[Polygon, ...]:
    if geometry.type == "Polygon":
        return (geometry,)
    if geometry.type == "MultiPolygon":
        return geometry.polygons
    raise GeometryError(f"Unsupported geometry type: {geometry.type!r}")


def bounding_box(geometry: Geometry) -> BoundingBox:
    """Axis-aligned bounding box of all exterior rings."""
    lngs: list[float] = []
    lats: list[float] = []
    for polygon in _polygons(geometry):
        for lng, lat in polygon.exterior:
            lngs.append(lng)
            lats.append(lat)
    if not lngs:
        raise GeometryError("Cannot compute the bounding box of an empty geometry")
    return BoundingBox(min(lngs), min(lats), max(lngs), max(lats))


def _locate_in_ring(ring: Ring, x: float, y: float) -> int:
    """Even-odd ray casting that also detects points on the ring's edges."""
    inside = False
    x1, y1 = ring[0]
    for x2, y2 in ring[1:]:
        if x == x1 and y == y1:
            return _BOUNDARY
        if (y1 > y) != (y2 > y):
            x_cross = (x2 - x1) * (y - y1) / (y2 - y1) + x1
            if abs(x - x_cross) <= EDGE_TOLERANCE:
                return _BOUNDARY
            if x < x_cross:
                inside = not inside
        elif y1 == y2 == y and min(x1, x2) <= x <= max(x1, x2):
            return _BOUNDARY
        x1, y1 = x2, y2
    return _INSIDE if inside else _OUTSIDE


def _polygon_contains(polygon: Polygon, x: float, y: float) -> bool:
    location = _locate_in_ring(polygon.exterior, x, y)
    if location == _OUTSIDE:
        return False
    if location == _BOUNDARY:
        return True
    for hole in polygon.holes:
        location = _locate_in_ring(hole, x, y)
        if location == _BOUNDARY:
            return True
        if location == _INSIDE:
            return False
    return True


def contains_point(geometry: Geometry, lng: float, lat: float) -> bool:
    """Return True if (lng, lat) lies in the closed region of ``geometry``.

    Points on an exterior edge, a vertex or a hole's edge count as
    contained. A MultiPolygon contains a point if any member does.
    """
    if geometry.type == "Polygon":
        return _polygon_contains(geometry, lng, lat)
    if geometry.type == "MultiPolygon":
        return any(_polygon_contains(p, lng, lat) for p in geometry.polygons)
    raise GeometryError(f"Unsupported geometry type: {geometry.type!r}")


# ============================================================================
# Shapely interop and local projection
# ============================================================================


def to_shapely(geometry: Geometry) -> BaseGeometry:
    """Build the equivalent Shapely geometry."""
    if geometry.type == "Polygon":
        return ShapelyPolygon(geometry.exterior, list(geometry.holes))
    return ShapelyMultiPolygon([to_shapely(p) for p in geometry.polygons])


def from_shapely(geom: BaseGeometry) -> Geometry:
    """Convert a Shapely Polygon/MultiPolygon back to the tagged variant."""
    if geom.is_empty:
        raise GeometryError("Geometry is empty")
    if isinstance(geom, ShapelyPolygon):
        rings = [geom.exterior, *geom.interiors]
        return Polygon(tuple(tuple((float(x), float(y)) for x, y in r.coords) for r in rings))
    if isinstance(geom, ShapelyMultiPolygon):
        return MultiPolygon(tuple(from_shapely(p) for p in geom.geoms))
    raise GeometryError(f"Unsupported geometry type: {geom.geom_type}")


@dataclass(frozen=True)
class LocalProjection:
    """Equirectangular projection to metres around an origin.

    Distortion is negligible over a few kilometres, which is the extent
    of a single district and its buffer.
    """

    origin_lng: float
    origin_lat: float

    @classmethod
    def centered_on(cls, geometry: Geometry) -> "LocalProjection":
        box = bounding_box(geometry)
        return cls(
            origin_lng=(box.min_lng + box.max_lng) / 2.0,
            origin_lat=(box.min_lat + box.max_lat) / 2.0,
        )

    @property
    def scale(self) -> np.ndarray:
        """Metres per degree along (longitude, latitude)."""
        return np.array(
            [METERS_PER_DEGREE * math.cos(math.radians(self.origin_lat)), METERS_PER_DEGREE]
        )

    @property
    def origin(self) -> np.ndarray:
        return np.array([self.origin_lng, self.origin_lat])

    def project(self, geom: BaseGeometry) -> BaseGeometry:
        """Degrees to local metres."""
        return shapely.transform(geom, lambda coords: (coords - self.origin) * self.scale)

    def unproject(self, geom: BaseGeometry) -> BaseGeometry:
        """Local metres back to degrees."""
        return shapely.transform(geom, lambda coords: coords / self.scale + self.origin)


def planar_area_m2(geometry: Geometry) -> float:
    """Planar area in square metres, measured in the local projection."""
    projection = LocalProjection.centered_on(geometry)
    return float(projection.project(to_shapely(geometry)).area)
