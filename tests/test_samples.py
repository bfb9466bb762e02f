"""Tests for validation samples and exports."""

import csv
import json
from datetime import UTC, datetime

import pytest
from conftest import INSIDE_POINT, make_incident

from crime_zones.config import settings
from crime_zones.repositories import incident as incident_repo
from crime_zones.schemas.incident import GeoCategory
from crime_zones.validation.samples import (
    CSV_HEADER,
    ValidationSample,
    export_to_csv,
    export_to_geojson,
    generate_sample,
    maps_link,
    write_report,
)
from crime_zones.validation.statistics import ValidationThresholds, generate_report


def _sample(incident_id=1, lat=32.96, lon=-96.79, category=GeoCategory.INSIDE):
    return ValidationSample(
        incident_id=incident_id,
        incident_number=f"A-{incident_id}",
        incident_address="123 Main St",
        latitude=lat,
        longitude=lon,
        geo_category=category,
        nibrs_crime="THEFT",
        edate="2024-01-15T10:00:00",
        google_maps_link=maps_link(lat, lon) if lat is not None else None,
    )


def _category_of(row) -> str:
    _, lat, _ = row
    if lat is None:
        return "outside"
    return "inside" if lat == INSIDE_POINT[0] else "bordering"


class TestMapsLink:
    def test_format(self):
        assert maps_link(32.96, -96.79) == "https://www.google.com/maps?q=32.96,-96.79"


class TestGenerateSample:
    async def test_stratified_sample(self, db_session):
        incidents = (
            [make_incident(f"I-{i}", *INSIDE_POINT) for i in range(5)]
            + [make_incident(f"B-{i}", 32.945, -96.79) for i in range(2)]
            + [make_incident("M-1")]
        )
        await incident_repo.upsert_incidents(db_session, incidents)
        rows = await incident_repo.fetch_coordinate_page(db_session, 0, 100)
        await incident_repo.apply_categories(
            db_session, {row[0]: _category_of(row) for row in rows}, datetime.now(UTC)
        )
        await db_session.commit()

        samples = await generate_sample(db_session, samples_per_category=3)

        by_category = {c: [s for s in samples if s.geo_category == c] for c in GeoCategory}
        assert len(by_category[GeoCategory.INSIDE]) == 3
        assert len(by_category[GeoCategory.BORDERING]) == 2
        # The only outside record has no coordinates
        assert by_category[GeoCategory.OUTSIDE] == []
        sample = by_category[GeoCategory.INSIDE][0]
        assert sample.nibrs_crime == "THEFT"
        assert sample.google_maps_link == maps_link(*INSIDE_POINT)

    async def test_default_size_comes_from_settings(self, db_session, monkeypatch):
        await incident_repo.upsert_incidents(
            db_session, [make_incident(f"I-{i}", *INSIDE_POINT) for i in range(4)]
        )
        rows = await incident_repo.fetch_coordinate_page(db_session, 0, 100)
        await incident_repo.apply_categories(
            db_session, {row[0]: "inside" for row in rows}, datetime.now(UTC)
        )
        await db_session.commit()
        monkeypatch.setattr(settings, "samples_per_category", 2)

        samples = await generate_sample(db_session)

        assert len(samples) == 2

    async def test_rejects_non_positive_size(self, db_session):
        with pytest.raises(ValueError):
            await generate_sample(db_session, samples_per_category=0)


class TestExportToCsv:
    def test_writes_review_sheet(self, tmp_path):
        samples = [_sample(1), _sample(2, category=GeoCategory.BORDERING)]
        path = export_to_csv(samples, tmp_path / "out" / "s.csv")

        with path.open(newline="") as f:
            rows = list(csv.reader(f))

        assert rows[0] == CSV_HEADER
        assert rows[0][-2:] == ["Validation Status", "Notes"]
        assert len(rows) == 3
        assert rows[1] == [
            "1",
            "A-1",
            "123 Main St",
            "inside",
            "THEFT",
            "2024-01-15T10:00:00",
            "32.96",
            "-96.79",
            "https://www.google.com/maps?q=32.96,-96.79",
            "",
            "",
        ]
        assert rows[2][3] == "bordering"

    def test_empty_sample_writes_header_only(self, tmp_path):
        path = export_to_csv([], tmp_path / "empty.csv")
        assert path.read_text().strip() == ",".join(CSV_HEADER)


class TestExportToGeojson:
    def test_writes_feature_collection(self, tmp_path):
        path = export_to_geojson(
            [_sample(1), _sample(2, lat=None, lon=None, category=GeoCategory.OUTSIDE)],
            tmp_path / "s.geojson",
        )
        document = json.loads(path.read_text())

        assert document["type"] == "FeatureCollection"
        assert len(document["features"]) == 1
        feature = document["features"][0]
        assert feature["geometry"] == {"type": "Point", "coordinates": [-96.79, 32.96]}
        assert feature["properties"] == {
            "incident_id": 1,
            "incident_number": "A-1",
            "address": "123 Main St",
            "category": "inside",
            "nibrs_crime": "THEFT",
            "date": "2024-01-15T10:00:00",
        }

    def test_is_indented(self, tmp_path):
        path = export_to_geojson([_sample(1)], tmp_path / "s.geojson")
        assert '\n  "features"' in path.read_text()


class TestWriteReport:
    async def test_writes_json_report(self, db_session, tmp_path):
        report = await generate_report(db_session, ValidationThresholds())
        path = write_report(report, tmp_path / "reports" / "validation_report.json")

        document = json.loads(path.read_text())
        assert document["total_records"] == 0
        assert document["coordinate_bounds"] is None
        assert "validation_flags" in document
