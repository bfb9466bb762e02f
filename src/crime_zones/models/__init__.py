"""SQLAlchemy models for the crime zones database."""

from crime_zones.models.boundary import GeographicBoundary
from crime_zones.models.incident import CrimeIncident

__all__ = [
    "CrimeIncident",
    "GeographicBoundary",
]
