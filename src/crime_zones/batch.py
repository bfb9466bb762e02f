"""Batch categorization - classify every stored incident in chunks.

Each chunk is read, classified and written inside its own transaction, so
a failure loses at most the chunk in flight. Every row is overwritten on
each run, which makes re-running after a boundary change (or a failure)
safe.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crime_zones.categorizer import GeographicCategorizer
from crime_zones.config import settings
from crime_zones.errors import PersistenceError
from crime_zones.repositories import incident as incident_repo
from crime_zones.schemas.boundary import BoundaryStats
from crime_zones.schemas.incident import GeoCategory
from crime_zones.validation.statistics import (
    Severity,
    ValidationFlag,
    ValidationThresholds,
    check_distribution,
    percent,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkProgress:
    """Progress after a chunk has been committed."""

    chunk_index: int
    chunk_size: int
    processed: int
    total: int
    elapsed_seconds: float

    @property
    def percent(self) -> float:
        return percent(self.processed, self.total)

    @property
    def records_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.processed / self.elapsed_seconds


ProgressCallback = Callable[[ChunkProgress], None]


def _empty_counts() -> dict[GeoCategory, int]:
    return {category: 0 for category in GeoCategory}


class CategorizationSummary(BaseModel):
    """Outcome of a batch categorization run."""

    total: int = 0
    processed: int = 0
    counts: dict[GeoCategory, int] = Field(default_factory=_empty_counts)
    missing_coordinates: int = 0
    elapsed_seconds: float = 0.0
    boundary_stats: BoundaryStats | None = None
    flags: list[ValidationFlag] = Field(default_factory=list)

    def percentages(self) -> dict[GeoCategory, float]:
        return {
            category: percent(self.counts.get(category, 0), self.total)
            for category in GeoCategory
        }


async def _count(session_factory: async_sessionmaker[AsyncSession]) -> int:
    async with session_factory() as session:
        return await incident_repo.count_incidents(session)


async def categorize_all(
    session_factory: async_sessionmaker[AsyncSession],
    categorizer: GeographicCategorizer | None = None,
    chunk_size: int | None = None,
    thresholds: ValidationThresholds | None = None,
    on_progress: ProgressCallback | None = None,
    now: datetime | None = None,
) -> CategorizationSummary:
    """Categorize every stored incident and return the run summary.

    ``now`` fixes the ``categorized_at`` stamp for the whole run; by default
    each chunk is stamped when it is written.

    Raises:
        MissingBoundaryError: if the categorizer cannot be initialized.
        PersistenceError: if reading or writing a chunk fails. Chunks
            committed before the failure are kept.
    """
    chunk_size = chunk_size or settings.chunk_size
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")

    categorizer = categorizer or GeographicCategorizer()
    if not categorizer.is_ready:
        async with session_factory() as session:
            await categorizer.initialize(session)
    boundary_stats = categorizer.get_boundary_stats()

    started = time.perf_counter()
    try:
        total = await _count(session_factory)
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Failed to count incidents: {exc}", processed=0) from exc

    summary = CategorizationSummary(total=total, boundary_stats=boundary_stats)
    if total == 0:
        logger.info("No incidents to categorize")
        summary.flags = [
            ValidationFlag(severity=Severity.INFO, message="No incidents to categorize")
        ]
        return summary

    logger.info("Categorizing %d incidents in chunks of %d", total, chunk_size)
    loop = asyncio.get_running_loop()
    chunk_index = 0

    while summary.processed < total:
        offset = summary.processed
        try:
            async with session_factory() as session:
                async with session.begin():
                    rows = await incident_repo.fetch_coordinate_page(session, offset, chunk_size)
                    if not rows:
                        break
                    # Point-in-polygon work is CPU bound
                    results = await loop.run_in_executor(None, categorizer.classify_batch, rows)
                    await incident_repo.apply_categories(
                        session, results, now or datetime.now(UTC)
                    )
        except SQLAlchemyError as exc:
            logger.error(
                "Chunk %d failed after %d of %d records committed",
                chunk_index,
                summary.processed,
                total,
            )
            raise PersistenceError(
                f"Failed to categorize chunk {chunk_index} at offset {offset}: {exc}",
                processed=summary.processed,
            ) from exc

        for category in results.values():
            summary.counts[category] += 1
        summary.missing_coordinates += sum(1 for _, lat, lon in rows if lat is None or lon is None)
        summary.processed += len(rows)

        progress = ChunkProgress(
            chunk_index=chunk_index,
            chunk_size=len(rows),
            processed=summary.processed,
            total=total,
            elapsed_seconds=time.perf_counter() - started,
        )
        logger.info(
            "Chunk %d: %d/%d records (%.1f%%, %.0f records/s)",
            chunk_index,
            progress.processed,
            progress.total,
            progress.percent,
            progress.records_per_second,
        )
        if on_progress is not None:
            on_progress(progress)
        chunk_index += 1

    summary.elapsed_seconds = time.perf_counter() - started
    summary.flags = check_distribution(
        summary.total, summary.counts, summary.missing_coordinates, thresholds
    )

    logger.info(
        "Categorization complete: %d inside, %d bordering, %d outside in %.1fs",
        summary.counts[GeoCategory.INSIDE],
        summary.counts[GeoCategory.BORDERING],
        summary.counts[GeoCategory.OUTSIDE],
        summary.elapsed_seconds,
    )
    for flag in summary.flags:
        if flag.severity == Severity.INFO:
            logger.info("%s", flag)
        else:
            logger.warning("%s", flag)
    return summary
