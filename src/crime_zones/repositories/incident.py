"""Incident repository - data access for crime incidents."""

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import bindparam, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from crime_zones.models.incident import CrimeIncident as IncidentModel
from crime_zones.schemas.incident import (
    GeoCategory,
    Incident,
    IncidentCreate,
    IncidentStats,
)

logger = logging.getLogger(__name__)

# Columns refreshed when an incident number is ingested again
_UPSERT_COLUMNS = (
    "address",
    "latitude",
    "longitude",
    "crime_type",
    "occurrence_date",
    "entry_date",
    "raw_data",
    "fetched_at",
)

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

CoordinateRow = tuple[int, float | None, float | None]


def _ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure datetime is timezone-aware (UTC)."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _to_row(incident: IncidentCreate, now: datetime) -> dict[str, Any]:
    return {
        "incident_number": incident.incident_number,
        "address": incident.address,
        "latitude": incident.latitude,
        "longitude": incident.longitude,
        "crime_type": incident.crime_type,
        "occurrence_date": incident.occurrence_date,
        "entry_date": incident.entry_date,
        "raw_data": incident.raw_data,
        "fetched_at": now,
    }


async def upsert_incidents(db: AsyncSession, incidents: Iterable[IncidentCreate]) -> int:
    """Insert incidents, updating in place those whose incident number exists.

    Categorization columns are left untouched. Commits and returns the
    number of records written.
    """
    now = datetime.now(UTC)
    rows = [_to_row(i, now) for i in incidents]
    if not rows:
        return 0

    dialect = db.get_bind().dialect.name
    dialect_insert = _DIALECT_INSERTS.get(dialect)

    if dialect_insert is not None:
        table = IncidentModel.__table__
        stmt = dialect_insert(table)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.incident_number],
            set_={name: stmt.excluded[name] for name in _UPSERT_COLUMNS},
        )
        await db.execute(stmt, rows)
    else:
        # No native upsert: look up existing rows and update them one by one
        for row in rows:
            result = await db.execute(
                select(IncidentModel).where(
                    IncidentModel.incident_number == row["incident_number"]
                )
            )
            existing = result.scalar_one_or_none()
            if existing is None:
                db.add(IncidentModel(**row))
            else:
                for name in _UPSERT_COLUMNS:
                    setattr(existing, name, row[name])

    await db.commit()
    logger.debug("Upserted %d incidents", len(rows))
    return len(rows)


async def get_incident(db: AsyncSession, incident_number: str) -> Incident | None:
    """Get an incident by its external incident number."""
    result = await db.execute(
        select(IncidentModel).where(IncidentModel.incident_number == incident_number)
    )
    incident = result.scalar_one_or_none()
    if incident is None:
        return None
    return _to_schema(incident)


async def count_incidents(db: AsyncSession) -> int:
    """Total number of incidents."""
    result = await db.execute(select(func.count()).select_from(IncidentModel))
    return result.scalar_one()


async def fetch_coordinate_page(db: AsyncSession, offset: int, limit: int) -> list[CoordinateRow]:
    """Read one page of ``(id, latitude, longitude)`` ordered by id."""
    result = await db.execute(
        select(IncidentModel.id, IncidentModel.latitude, IncidentModel.longitude)
        .order_by(IncidentModel.id)
        .offset(offset)
        .limit(limit)
    )
    return [(row.id, row.latitude, row.longitude) for row in result]


async def apply_categories(
    db: AsyncSession,
    categories: Mapping[int, GeoCategory | str],
    categorized_at: datetime,
) -> int:
    """Write ``geo_category`` and ``categorized_at`` for every id given.

    Existing categories are overwritten. Does not commit: the caller owns
    the transaction so a page of results is written atomically.
    """
    if not categories:
        return 0

    table = IncidentModel.__table__
    stmt = (
        update(table)
        .where(table.c.id == bindparam("incident_id"))
        .values(geo_category=bindparam("category"), categorized_at=bindparam("stamp"))
    )
    await db.execute(
        stmt,
        [
            {
                "incident_id": incident_id,
                "category": GeoCategory(category).value,
                "stamp": categorized_at,
            }
            for incident_id, category in categories.items()
        ],
    )
    return len(categories)


async def category_counts(db: AsyncSession) -> dict[GeoCategory, int]:
    """Count incidents per category. Uncategorized rows are not counted."""
    counts = {category: 0 for category in GeoCategory}
    result = await db.execute(
        select(IncidentModel.geo_category, func.count())
        .where(IncidentModel.geo_category.is_not(None))
        .group_by(IncidentModel.geo_category)
    )
    for category, count in result:
        counts[GeoCategory(category)] = count
    return counts


async def sample_by_category(
    db: AsyncSession, category: GeoCategory | str, limit: int
) -> list[Incident]:
    """Random geocoded incidents from one category."""
    result = await db.execute(
        select(IncidentModel)
        .where(
            IncidentModel.geo_category == GeoCategory(category).value,
            IncidentModel.latitude.is_not(None),
            IncidentModel.longitude.is_not(None),
        )
        .order_by(func.random())
        .limit(limit)
    )
    return [_to_schema(i) for i in result.scalars().all()]


async def get_incident_stats(db: AsyncSession) -> IncidentStats:
    """Record counts: total, geocoded and categorized."""
    result = await db.execute(
        select(
            func.count(),
            func.count(IncidentModel.latitude),
            func.count(IncidentModel.geo_category),
        ).select_from(IncidentModel)
    )
    total, with_coords, categorized = result.one()
    return IncidentStats(
        total_records=total,
        with_coordinates=with_coords,
        missing_coordinates=total - with_coords,
        categorized=categorized,
        uncategorized=total - categorized,
    )


def _to_schema(incident: IncidentModel) -> Incident:
    """Convert SQLAlchemy model to Pydantic schema."""
    return Incident(
        id=incident.id,
        incident_number=incident.incident_number,
        address=incident.address,
        latitude=incident.latitude,
        longitude=incident.longitude,
        crime_type=incident.crime_type,
        occurrence_date=incident.occurrence_date,
        entry_date=incident.entry_date,
        geo_category=incident.geo_category,
        fetched_at=_ensure_utc(incident.fetched_at),
        categorized_at=_ensure_utc(incident.categorized_at),
    )
