"""Incident schemas - reported crime events with an optional location."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class GeoCategory(StrEnum):
    """Zone of an incident relative to the district and its buffer."""

    INSIDE = "inside"
    BORDERING = "bordering"
    OUTSIDE = "outside"


class IncidentCreate(BaseModel):
    """An ingested incident record, keyed by its external incident number."""

    incident_number: str = Field(..., min_length=1, max_length=64)
    address: str | None = None
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    crime_type: str | None = Field(default=None, description="NIBRS crime classification")
    occurrence_date: str | None = Field(default=None, description="ISO 8601 occurrence date")
    entry_date: str | None = Field(
        default=None,
        description="ISO 8601 date the record entered the source system",
    )
    raw_data: dict[str, Any] | None = None

    @model_validator(mode="after")
    def coordinates_jointly_present(self) -> "IncidentCreate":
        """Latitude and longitude must both be present or both be absent."""
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        return self


class Incident(BaseModel):
    """A stored incident row."""

    id: int
    incident_number: str
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    crime_type: str | None = None
    occurrence_date: str | None = None
    entry_date: str | None = None
    geo_category: GeoCategory | None = None
    fetched_at: datetime | None = None
    categorized_at: datetime | None = None

    model_config = {"from_attributes": True}


class IncidentStats(BaseModel):
    """Record counts over the incident store."""

    total_records: int
    with_coordinates: int
    missing_coordinates: int
    categorized: int
    uncategorized: int
