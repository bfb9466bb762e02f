"""Data access layer for boundaries and incidents."""

from crime_zones.repositories import boundary, incident

__all__ = [
    "boundary",
    "incident",
]
