"""Stratified validation samples and their CSV / GeoJSON / JSON exports.

Samples are drawn at random from each category so a reviewer can spot
check classifications against a map.
"""

import csv
import json
import logging
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from crime_zones.config import settings
from crime_zones.repositories import incident as incident_repo
from crime_zones.schemas.incident import GeoCategory, Incident
from crime_zones.validation.statistics import ValidationReport

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "Incident ID",
    "Incident Number",
    "Address",
    "Category",
    "NIBRS Crime",
    "Date",
    "Latitude",
    "Longitude",
    "Google Maps Link",
    "Validation Status",
    "Notes",
]


class ValidationSample(BaseModel):
    """One incident selected for manual review."""

    incident_id: int
    incident_number: str
    incident_address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    geo_category: GeoCategory
    nibrs_crime: str | None = None
    edate: str | None = None
    google_maps_link: str | None = None

    @classmethod
    def from_incident(cls, incident: Incident) -> "ValidationSample":
        link = None
        if incident.latitude is not None and incident.longitude is not None:
            link = maps_link(incident.latitude, incident.longitude)
        return cls(
            incident_id=incident.id,
            incident_number=incident.incident_number,
            incident_address=incident.address,
            latitude=incident.latitude,
            longitude=incident.longitude,
            geo_category=incident.geo_category,
            nibrs_crime=incident.crime_type,
            edate=incident.entry_date,
            google_maps_link=link,
        )


def maps_link(lat: float, lon: float) -> str:
    return f"https://www.google.com/maps?q={lat},{lon}"


async def generate_sample(
    db: AsyncSession, samples_per_category: int | None = None
) -> list[ValidationSample]:
    """Random geocoded incidents, up to ``samples_per_category`` per category.

    Defaults to ``settings.samples_per_category``.
    """
    if samples_per_category is None:
        samples_per_category = settings.samples_per_category
    if samples_per_category < 1:
        raise ValueError("samples_per_category must be positive")

    samples: list[ValidationSample] = []
    for category in GeoCategory:
        incidents = await incident_repo.sample_by_category(db, category, samples_per_category)
        logger.info("Sampled %d '%s' incidents", len(incidents), category.value)
        samples.extend(ValidationSample.from_incident(i) for i in incidents)
    return samples


def export_to_csv(samples: Iterable[ValidationSample], path: str | Path) -> Path:
    """Write samples as a review sheet with blank status and notes columns."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for sample in samples:
            writer.writerow(
                [
                    sample.incident_id,
                    sample.incident_number,
                    sample.incident_address or "",
                    sample.geo_category.value,
                    sample.nibrs_crime or "",
                    sample.edate or "",
                    "" if sample.latitude is None else sample.latitude,
                    "" if sample.longitude is None else sample.longitude,
                    sample.google_maps_link or "",
                    "",
                    "",
                ]
            )
            count += 1

    logger.info("Exported %d samples to %s", count, path)
    return path


def export_to_geojson(samples: Iterable[ValidationSample], path: str | Path) -> Path:
    """Write samples as a FeatureCollection of points for map viewers."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    features = []
    for sample in samples:
        if sample.latitude is None or sample.longitude is None:
            continue
        features.append(
            {
                "type": "Feature",
                "geometry": {
                    "type": "Point",
                    "coordinates": [sample.longitude, sample.latitude],
                },
                "properties": {
                    "incident_id": sample.incident_id,
                    "incident_number": sample.incident_number,
                    "address": sample.incident_address,
                    "category": sample.geo_category.value,
                    "nibrs_crime": sample.nibrs_crime,
                    "date": sample.edate,
                },
            }
        )

    with path.open("w", encoding="utf-8") as f:
        json.dump({"type": "FeatureCollection", "features": features}, f, indent=2)

    logger.info("Exported %d features to %s", len(features), path)
    return path


def write_report(report: ValidationReport, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Validation report written to %s", path)
    return path
