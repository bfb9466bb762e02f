"""Statistical validation and review exports."""

from crime_zones.validation.samples import (
    ValidationSample,
    export_to_csv,
    export_to_geojson,
    generate_sample,
    maps_link,
    write_report,
)
from crime_zones.validation.statistics import (
    CategoryDistribution,
    CategoryShare,
    CoordinateBounds,
    DateRange,
    Severity,
    ValidationFlag,
    ValidationReport,
    ValidationThresholds,
    check_distribution,
    check_for_issues,
    generate_report,
)

__all__ = [
    # Statistics
    "CategoryDistribution",
    "CategoryShare",
    "CoordinateBounds",
    "DateRange",
    "Severity",
    "ValidationFlag",
    "ValidationReport",
    "ValidationThresholds",
    "check_distribution",
    "check_for_issues",
    "generate_report",
    # Samples
    "ValidationSample",
    "export_to_csv",
    "export_to_geojson",
    "generate_sample",
    "maps_link",
    "write_report",
]
