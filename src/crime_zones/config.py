"""Application configuration."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = "sqlite+aiosqlite:///database/crime_analysis.db"

    # Logging
    log_level: str = "info"

    # Name shared by the district boundary and its buffer
    boundary_name: str = "Prestonwood"

    # Buffer generation
    buffer_distance_km: float = 0.5
    buffer_quad_segs: int = 64

    # Batch categorization page size
    chunk_size: int = 10_000

    # Validation thresholds (percentages of all records)
    missing_coords_high_pct: float = 20.0
    missing_coords_medium_pct: float = 10.0
    inside_high_pct: float = 10.0
    outside_medium_pct: float = 90.0

    # Expected metro envelope for geocoded records (Dallas)
    expected_min_lat: float = 32.5
    expected_max_lat: float = 33.2
    expected_min_lng: float = -97.0
    expected_max_lng: float = -96.5

    # Manual validation exports
    samples_per_category: int = 10
    export_dir: str = "data/validation"

    @field_validator("chunk_size", "samples_per_category")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Reject zero or negative page sizes."""
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v


settings = Settings()
