"""Pydantic schemas for boundaries and incidents."""

from crime_zones.schemas.boundary import (
    Boundary,
    BoundaryArea,
    BoundaryCategory,
    BoundaryMetadata,
    BoundaryStats,
)
from crime_zones.schemas.incident import (
    GeoCategory,
    Incident,
    IncidentCreate,
    IncidentStats,
)

__all__ = [
    # Boundary
    "Boundary",
    "BoundaryArea",
    "BoundaryCategory",
    "BoundaryMetadata",
    "BoundaryStats",
    # Incident
    "GeoCategory",
    "Incident",
    "IncidentCreate",
    "IncidentStats",
]
