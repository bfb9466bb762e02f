"""Statistical validation of categorized incident data.

Computes distribution, bounds and quality metrics over the incident store
and raises advisory flags when they look anomalous. Flags are for a human
reviewing the boundaries; they are never raised as exceptions.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crime_zones.config import Settings, settings
from crime_zones.models.incident import CrimeIncident as IncidentModel
from crime_zones.repositories import incident as incident_repo
from crime_zones.schemas.incident import GeoCategory

logger = logging.getLogger(__name__)


def _from_settings(name: str) -> Any:
    return field(default_factory=lambda: getattr(settings, name))


@dataclass(frozen=True)
class ValidationThresholds:
    """Tunable limits for the validation flags (percentages of all records).

    Unset fields take the current value of the setting of the same name.
    """

    missing_coords_high_pct: float = _from_settings("missing_coords_high_pct")
    missing_coords_medium_pct: float = _from_settings("missing_coords_medium_pct")
    inside_high_pct: float = _from_settings("inside_high_pct")
    outside_medium_pct: float = _from_settings("outside_medium_pct")
    expected_min_lat: float = _from_settings("expected_min_lat")
    expected_max_lat: float = _from_settings("expected_max_lat")
    expected_min_lng: float = _from_settings("expected_min_lng")
    expected_max_lng: float = _from_settings("expected_max_lng")

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "ValidationThresholds":
        source = source or settings
        return cls(**{f.name: getattr(source, f.name) for f in fields(cls)})


class Severity(StrEnum):
    """Severity of a validation flag."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    INFO = "INFO"


class ValidationFlag(BaseModel):
    """A human-readable advisory finding."""

    severity: Severity
    message: str

    def __str__(self) -> str:
        return f"{self.severity.value}: {self.message}"


ALL_CHECKS_PASSED = ValidationFlag(severity=Severity.INFO, message="All validation checks passed")


class CategoryShare(BaseModel):
    count: int = 0
    percentage: float = 0.0


class CategoryDistribution(BaseModel):
    """Count and percentage of all records per category."""

    inside: CategoryShare = Field(default_factory=CategoryShare)
    bordering: CategoryShare = Field(default_factory=CategoryShare)
    outside: CategoryShare = Field(default_factory=CategoryShare)

    @classmethod
    def from_counts(
        cls, counts: Mapping[GeoCategory | str, int], total: int
    ) -> "CategoryDistribution":
        shares = {}
        for category in GeoCategory:
            count = counts.get(category, 0)
            shares[category.value] = CategoryShare(count=count, percentage=percent(count, total))
        return cls(**shares)

    def share(self, category: GeoCategory) -> CategoryShare:
        return getattr(self, GeoCategory(category).value)


class CoordinateBounds(BaseModel):
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float


class DateRange(BaseModel):
    earliest: str | None = None
    latest: str | None = None


class ValidationReport(BaseModel):
    """Statistics over the whole incident store plus advisory flags."""

    timestamp: datetime
    total_records: int
    records_with_coordinates: int
    records_without_coordinates: int
    category_distribution: CategoryDistribution
    coordinate_bounds: CoordinateBounds | None = None
    duplicates: int
    date_range: DateRange
    crime_type_count: int
    validation_flags: list[ValidationFlag]

    @property
    def has_high_flags(self) -> bool:
        return any(f.severity == Severity.HIGH for f in self.validation_flags)

    def flags_with(self, severity: Severity) -> list[ValidationFlag]:
        return [f for f in self.validation_flags if f.severity == severity]


def percent(count: int, total: int) -> float:
    """``count`` as a percentage of ``total``; 0 when there are no records."""
    if total <= 0:
        return 0.0
    return count / total * 100.0


# ============================================================================
# Flag rules
# ============================================================================


def _missing_coordinate_flags(
    total: int, missing: int, thresholds: ValidationThresholds
) -> list[ValidationFlag]:
    missing_pct = percent(missing, total)
    if missing_pct > thresholds.missing_coords_high_pct:
        return [
            ValidationFlag(
                severity=Severity.HIGH,
                message=(
                    f"{missing_pct:.1f}% records missing coordinates "
                    f"(> {thresholds.missing_coords_high_pct:g}% threshold)"
                ),
            )
        ]
    if missing_pct > thresholds.missing_coords_medium_pct:
        return [
            ValidationFlag(
                severity=Severity.MEDIUM,
                message=(
                    f"{missing_pct:.1f}% records missing coordinates "
                    f"(> {thresholds.missing_coords_medium_pct:g}% threshold)"
                ),
            )
        ]
    return []


def _inside_flags(
    distribution: CategoryDistribution, thresholds: ValidationThresholds
) -> list[ValidationFlag]:
    flags = []
    inside = distribution.inside
    if inside.percentage > thresholds.inside_high_pct:
        flags.append(
            ValidationFlag(
                severity=Severity.HIGH,
                message=(
                    f"Inside district = {inside.percentage:.2f}% "
                    f"(> {thresholds.inside_high_pct:g}%, possible boundary error)"
                ),
            )
        )
    if inside.count == 0:
        flags.append(
            ValidationFlag(
                severity=Severity.HIGH,
                message="No incidents inside district - check boundaries",
            )
        )
    return flags


def _bounds_flags(
    bounds: CoordinateBounds | None, thresholds: ValidationThresholds
) -> list[ValidationFlag]:
    if bounds is None:
        return []
    flags = []
    if bounds.min_lat < thresholds.expected_min_lat or bounds.max_lat > thresholds.expected_max_lat:
        flags.append(
            ValidationFlag(
                severity=Severity.MEDIUM,
                message=(
                    f"Latitude out of expected range "
                    f"({bounds.min_lat:.2f} to {bounds.max_lat:.2f})"
                ),
            )
        )
    if bounds.min_lng < thresholds.expected_min_lng or bounds.max_lng > thresholds.expected_max_lng:
        flags.append(
            ValidationFlag(
                severity=Severity.MEDIUM,
                message=(
                    f"Longitude out of expected range "
                    f"({bounds.min_lng:.2f} to {bounds.max_lng:.2f})"
                ),
            )
        )
    return flags


def _outside_flags(
    distribution: CategoryDistribution, thresholds: ValidationThresholds
) -> list[ValidationFlag]:
    outside = distribution.outside
    if outside.percentage < thresholds.outside_medium_pct:
        return [
            ValidationFlag(
                severity=Severity.MEDIUM,
                message=(
                    f"Outside district = {outside.percentage:.2f}% "
                    f"(< {thresholds.outside_medium_pct:g}%, unexpected)"
                ),
            )
        ]
    return []


def check_for_issues(
    total: int,
    with_coordinates: int,
    distribution: CategoryDistribution,
    bounds: CoordinateBounds | None,
    thresholds: ValidationThresholds | None = None,
) -> list[ValidationFlag]:
    """Apply every flag rule. Returns a single pass marker if none fire."""
    thresholds = thresholds or ValidationThresholds.from_settings()
    flags = [
        *_missing_coordinate_flags(total, total - with_coordinates, thresholds),
        *_inside_flags(distribution, thresholds),
        *_bounds_flags(bounds, thresholds),
        *_outside_flags(distribution, thresholds),
    ]
    return flags or [ALL_CHECKS_PASSED]


def check_distribution(
    total: int,
    counts: Mapping[GeoCategory | str, int],
    missing_coordinates: int,
    thresholds: ValidationThresholds | None = None,
) -> list[ValidationFlag]:
    """Flag rules that only need the outcome of a categorization run."""
    thresholds = thresholds or ValidationThresholds.from_settings()
    distribution = CategoryDistribution.from_counts(counts, total)
    flags = [
        *_missing_coordinate_flags(total, missing_coordinates, thresholds),
        *_inside_flags(distribution, thresholds),
    ]
    return flags or [ALL_CHECKS_PASSED]


# ============================================================================
# Report
# ============================================================================


async def _coordinate_bounds(db: AsyncSession) -> CoordinateBounds | None:
    result = await db.execute(
        select(
            func.min(IncidentModel.latitude),
            func.max(IncidentModel.latitude),
            func.min(IncidentModel.longitude),
            func.max(IncidentModel.longitude),
        ).where(IncidentModel.latitude.is_not(None))
    )
    min_lat, max_lat, min_lng, max_lng = result.one()
    if min_lat is None:
        return None
    return CoordinateBounds(min_lat=min_lat, max_lat=max_lat, min_lng=min_lng, max_lng=max_lng)


async def _duplicate_count(db: AsyncSession) -> int:
    duplicated = (
        select(IncidentModel.incident_number)
        .group_by(IncidentModel.incident_number)
        .having(func.count() > 1)
        .subquery()
    )
    result = await db.execute(select(func.count()).select_from(duplicated))
    return result.scalar_one()


async def _entry_date_range(db: AsyncSession) -> DateRange:
    result = await db.execute(
        select(func.min(IncidentModel.entry_date), func.max(IncidentModel.entry_date)).where(
            IncidentModel.entry_date.is_not(None)
        )
    )
    earliest, latest = result.one()
    return DateRange(earliest=earliest, latest=latest)


async def _crime_type_count(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count(distinct(IncidentModel.crime_type))).where(
            IncidentModel.crime_type.is_not(None)
        )
    )
    return result.scalar_one()


async def generate_report(
    db: AsyncSession, thresholds: ValidationThresholds | None = None
) -> ValidationReport:
    """Compute the validation report over the whole incident store."""
    logger.info("Generating statistical validation report...")
    thresholds = thresholds or ValidationThresholds.from_settings()

    stats = await incident_repo.get_incident_stats(db)
    counts = await incident_repo.category_counts(db)
    distribution = CategoryDistribution.from_counts(counts, stats.total_records)
    bounds = await _coordinate_bounds(db)

    report = ValidationReport(
        timestamp=datetime.now(UTC),
        total_records=stats.total_records,
        records_with_coordinates=stats.with_coordinates,
        records_without_coordinates=stats.missing_coordinates,
        category_distribution=distribution,
        coordinate_bounds=bounds,
        duplicates=await _duplicate_count(db),
        date_range=await _entry_date_range(db),
        crime_type_count=await _crime_type_count(db),
        validation_flags=check_for_issues(
            stats.total_records, stats.with_coordinates, distribution, bounds, thresholds
        ),
    )

    logger.info(
        "Validation report generated: %d records, %d flag(s)",
        report.total_records,
        len(report.validation_flags),
    )
    return report
