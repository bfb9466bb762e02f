"""Tests for batch categorization."""

from datetime import UTC, datetime

import pytest
from conftest import (
    BORDERING_POINT,
    BOUNDARY_NAME,
    INSIDE_POINT,
    OUTSIDE_POINT,
    make_incident,
    square,
)
from sqlalchemy.exc import OperationalError

from crime_zones.batch import CategorizationSummary, ChunkProgress, categorize_all
from crime_zones.categorizer import GeographicCategorizer
from crime_zones.errors import MissingBoundaryError, PersistenceError
from crime_zones.repositories import boundary as boundary_repo
from crime_zones.repositories import incident as incident_repo
from crime_zones.schemas.incident import GeoCategory
from crime_zones.validation.statistics import Severity, ValidationThresholds, generate_report


async def _ingest(session_factory, incidents):
    async with session_factory() as session:
        await incident_repo.upsert_incidents(session, incidents)


async def _categories(session_factory) -> dict[str, GeoCategory | None]:
    async with session_factory() as session:
        result = {}
        for number in ("I-1", "B-1", "O-1", "M-1"):
            incident = await incident_repo.get_incident(session, number)
            if incident is not None:
                result[number] = incident.geo_category
        return result


ONE_PER_ZONE = [
    make_incident("I-1", *INSIDE_POINT),
    make_incident("B-1", *BORDERING_POINT),
    make_incident("O-1", *OUTSIDE_POINT),
    make_incident("M-1"),
]


class TestChunkProgress:
    def test_percent_and_rate(self):
        progress = ChunkProgress(
            chunk_index=0, chunk_size=50, processed=50, total=200, elapsed_seconds=2.0
        )
        assert progress.percent == 25.0
        assert progress.records_per_second == 25.0

    def test_zero_elapsed(self):
        progress = ChunkProgress(
            chunk_index=0, chunk_size=1, processed=1, total=1, elapsed_seconds=0.0
        )
        assert progress.records_per_second == 0.0


class TestCategorizationSummary:
    def test_percentages(self):
        summary = CategorizationSummary(
            total=4,
            counts={GeoCategory.INSIDE: 1, GeoCategory.BORDERING: 1, GeoCategory.OUTSIDE: 2},
        )
        assert summary.percentages() == {
            GeoCategory.INSIDE: 25.0,
            GeoCategory.BORDERING: 25.0,
            GeoCategory.OUTSIDE: 50.0,
        }

    def test_percentages_of_empty_run(self):
        assert set(CategorizationSummary().percentages().values()) == {0.0}


class TestCategorizeAll:
    async def test_categorizes_every_incident(self, session_factory, boundaries):
        """One incident per zone plus one without coordinates."""
        await _ingest(session_factory, ONE_PER_ZONE)

        summary = await categorize_all(
            session_factory, GeographicCategorizer(BOUNDARY_NAME), chunk_size=2
        )

        assert summary.total == 4
        assert summary.processed == 4
        assert summary.missing_coordinates == 1
        assert summary.counts == {
            GeoCategory.INSIDE: 1,
            GeoCategory.BORDERING: 1,
            GeoCategory.OUTSIDE: 2,
        }
        assert await _categories(session_factory) == {
            "I-1": GeoCategory.INSIDE,
            "B-1": GeoCategory.BORDERING,
            "O-1": GeoCategory.OUTSIDE,
            "M-1": GeoCategory.OUTSIDE,
        }

    async def test_counts_sum_to_total(self, session_factory, boundaries):
        await _ingest(
            session_factory,
            [make_incident(f"X-{i}", 32.93 + i * 0.001, -96.79) for i in range(57)],
        )
        summary = await categorize_all(
            session_factory, GeographicCategorizer(BOUNDARY_NAME), chunk_size=10
        )
        assert sum(summary.counts.values()) == summary.total == 57

        async with session_factory() as session:
            stats = await incident_repo.get_incident_stats(session)
        assert stats.uncategorized == 0

    async def test_rerun_is_idempotent(self, session_factory, boundaries):
        await _ingest(session_factory, ONE_PER_ZONE)
        categorizer = GeographicCategorizer(BOUNDARY_NAME)

        first = await categorize_all(session_factory, categorizer, chunk_size=3)
        before = await _categories(session_factory)
        second = await categorize_all(session_factory, categorizer, chunk_size=1)

        assert second.counts == first.counts
        assert await _categories(session_factory) == before

    async def test_rerun_after_boundary_correction_overwrites(self, session_factory, boundaries):
        await _ingest(session_factory, ONE_PER_ZONE)
        await categorize_all(session_factory, GeographicCategorizer(BOUNDARY_NAME))
        assert (await _categories(session_factory))["I-1"] == GeoCategory.INSIDE

        # Shrink the district so I-1 falls in the buffer ring only
        district_id, _ = boundaries
        async with session_factory() as session:
            await boundary_repo.deactivate_boundary(session, district_id)
            await boundary_repo.save_boundary(
                session, BOUNDARY_NAME, "district", square(-96.80, 32.965, -96.78, 32.97)
            )

        summary = await categorize_all(session_factory, GeographicCategorizer(BOUNDARY_NAME))

        assert summary.counts[GeoCategory.INSIDE] == 0
        assert summary.counts[GeoCategory.BORDERING] == 2
        categories = await _categories(session_factory)
        assert categories["I-1"] == GeoCategory.BORDERING
        assert categories["O-1"] == GeoCategory.OUTSIDE

    async def test_stamps_categorized_at(self, session_factory, boundaries):
        await _ingest(session_factory, ONE_PER_ZONE)
        stamp = datetime(2024, 6, 1, tzinfo=UTC)
        await categorize_all(session_factory, GeographicCategorizer(BOUNDARY_NAME), now=stamp)

        async with session_factory() as session:
            incident = await incident_repo.get_incident(session, "M-1")
        assert incident.categorized_at == stamp

    async def test_reports_progress_per_chunk(self, session_factory, boundaries):
        await _ingest(session_factory, [make_incident(f"X-{i}", 32.96, -96.79) for i in range(5)])
        progress: list[ChunkProgress] = []

        await categorize_all(
            session_factory,
            GeographicCategorizer(BOUNDARY_NAME),
            chunk_size=2,
            on_progress=progress.append,
        )

        assert [p.chunk_index for p in progress] == [0, 1, 2]
        assert [p.chunk_size for p in progress] == [2, 2, 1]
        assert [p.processed for p in progress] == [2, 4, 5]
        assert all(p.total == 5 for p in progress)
        assert progress[-1].percent == 100.0

    async def test_empty_store(self, session_factory, boundaries):
        summary = await categorize_all(session_factory, GeographicCategorizer(BOUNDARY_NAME))
        assert summary.total == 0
        assert summary.processed == 0
        assert [f.severity for f in summary.flags] == [Severity.INFO]

    async def test_includes_boundary_stats(self, session_factory, boundaries):
        summary = await categorize_all(session_factory, GeographicCategorizer(BOUNDARY_NAME))
        assert summary.boundary_stats.district.name == BOUNDARY_NAME
        assert summary.boundary_stats.buffer.area_m2 > summary.boundary_stats.district.area_m2

    async def test_accepts_ready_categorizer(self, session_factory, categorizer):
        """A pre-built categorizer needs no stored boundaries."""
        await _ingest(session_factory, ONE_PER_ZONE)
        summary = await categorize_all(session_factory, categorizer)
        assert summary.counts[GeoCategory.INSIDE] == 1

    async def test_missing_boundary_fails_run(self, session_factory):
        await _ingest(session_factory, ONE_PER_ZONE)
        with pytest.raises(MissingBoundaryError):
            await categorize_all(session_factory, GeographicCategorizer(BOUNDARY_NAME))
        assert set((await _categories(session_factory)).values()) == {None}

    async def test_rejects_non_positive_chunk_size(self, session_factory, categorizer):
        with pytest.raises(ValueError):
            await categorize_all(session_factory, categorizer, chunk_size=-1)


class TestCategorizeAllFlags:
    async def test_anomalous_distribution_is_flagged_not_rolled_back(
        self, session_factory, boundaries
    ):
        # Everything inside the district trips the "inside" threshold
        await _ingest(session_factory, [make_incident(f"X-{i}", 32.96, -96.79) for i in range(3)])
        summary = await categorize_all(session_factory, GeographicCategorizer(BOUNDARY_NAME))

        assert any(
            f.severity == Severity.HIGH and "Inside district" in f.message for f in summary.flags
        )
        async with session_factory() as session:
            counts = await incident_repo.category_counts(session)
        assert counts[GeoCategory.INSIDE] == 3

    async def test_missing_coordinates_are_flagged(self, session_factory, boundaries):
        await _ingest(
            session_factory,
            [make_incident("I-1", *INSIDE_POINT)]
            + [make_incident(f"M-{i}") for i in range(3)]
            + [make_incident(f"O-{i}", *OUTSIDE_POINT) for i in range(20)],
        )
        thresholds = ValidationThresholds(inside_high_pct=50.0)
        summary = await categorize_all(
            session_factory, GeographicCategorizer(BOUNDARY_NAME), thresholds=thresholds
        )
        # 3 of 24 records missing is 12.5%
        assert [str(f) for f in summary.flags] == [
            "MEDIUM: 12.5% records missing coordinates (> 10% threshold)"
        ]

    async def test_clean_run_passes(self, session_factory, boundaries):
        await _ingest(
            session_factory,
            [make_incident("I-1", *INSIDE_POINT)]
            + [make_incident(f"O-{i}", *OUTSIDE_POINT) for i in range(20)],
        )
        summary = await categorize_all(session_factory, GeographicCategorizer(BOUNDARY_NAME))
        assert [str(f) for f in summary.flags] == ["INFO: All validation checks passed"]


class TestCategorizeAllFailures:
    async def test_write_failure_raises_persistence_error(
        self, session_factory, categorizer, monkeypatch
    ):
        await _ingest(session_factory, [make_incident(f"X-{i}", 32.96, -96.79) for i in range(5)])
        real_apply = incident_repo.apply_categories
        calls = 0

        async def failing_apply(db, categories, categorized_at):
            nonlocal calls
            calls += 1
            if calls == 2:
                raise OperationalError("UPDATE crime_incidents", {}, Exception("disk I/O error"))
            return await real_apply(db, categories, categorized_at)

        monkeypatch.setattr(incident_repo, "apply_categories", failing_apply)

        with pytest.raises(PersistenceError) as exc_info:
            await categorize_all(session_factory, categorizer, chunk_size=2)

        assert exc_info.value.processed == 2
        assert isinstance(exc_info.value.__cause__, OperationalError)

        # The first chunk stays committed, the failed chunk is rolled back
        async with session_factory() as session:
            stats = await incident_repo.get_incident_stats(session)
        assert stats.categorized == 2

    async def test_rerun_after_failure_completes(self, session_factory, categorizer, monkeypatch):
        await _ingest(session_factory, [make_incident(f"X-{i}", 32.96, -96.79) for i in range(4)])
        real_apply = incident_repo.apply_categories

        async def failing_apply(db, categories, categorized_at):
            raise OperationalError("UPDATE crime_incidents", {}, Exception("locked"))

        monkeypatch.setattr(incident_repo, "apply_categories", failing_apply)
        with pytest.raises(PersistenceError):
            await categorize_all(session_factory, categorizer, chunk_size=2)

        monkeypatch.setattr(incident_repo, "apply_categories", real_apply)
        summary = await categorize_all(session_factory, categorizer, chunk_size=2)
        assert summary.processed == 4


class TestCategorizeAllAtScale:
    async def test_realistic_distribution_passes_validation(self, session_factory, boundaries):
        incidents = (
            [make_incident(f"I-{i}", *INSIDE_POINT) for i in range(200)]
            + [make_incident(f"B-{i}", *BORDERING_POINT) for i in range(300)]
            + [make_incident(f"O-{i}", *OUTSIDE_POINT) for i in range(9_500)]
        )
        await _ingest(session_factory, incidents)

        summary = await categorize_all(
            session_factory, GeographicCategorizer(BOUNDARY_NAME), chunk_size=2_000
        )

        assert summary.processed == 10_000
        assert summary.counts == {
            GeoCategory.INSIDE: 200,
            GeoCategory.BORDERING: 300,
            GeoCategory.OUTSIDE: 9_500,
        }
        async with session_factory() as session:
            report = await generate_report(session, ValidationThresholds())
        assert report.category_distribution.inside.percentage == 2.0
        assert not report.has_high_flags
        assert [str(f) for f in report.validation_flags] == [
            "INFO: All validation checks passed"
        ]
