"""Boundary schemas - named district and buffer regions."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BoundaryCategory(StrEnum):
    """Role a boundary plays in categorization."""

    DISTRICT = "district"
    BUFFER = "buffer"


class BoundaryMetadata(BaseModel):
    """Provenance attached to a boundary. Unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")

    source: str | None = Field(
        default=None,
        description="'api', 'user-defined', 'generated-buffer' or free text",
    )
    buffer_distance: float | None = None
    buffer_units: str | None = None
    base_boundary_id: int | None = None
    created_at: datetime | None = None
    description: str | None = None


class Boundary(BaseModel):
    """A stored boundary row."""

    id: int
    name: str
    category: BoundaryCategory
    geometry: dict[str, Any] = Field(
        ...,
        description="GeoJSON Polygon or MultiPolygon geometry",
    )
    metadata: BoundaryMetadata = Field(default_factory=BoundaryMetadata)
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class BoundaryArea(BaseModel):
    """Display information for one active boundary."""

    name: str
    category: BoundaryCategory
    area_m2: float

    @property
    def area_km2(self) -> float:
        return self.area_m2 / 1_000_000


class BoundaryStats(BaseModel):
    """Areas of the boundaries a categorizer was initialized with."""

    district: BoundaryArea
    buffer: BoundaryArea
