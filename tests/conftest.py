"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

import crime_zones.models  # noqa: F401
from crime_zones.categorizer import GeographicCategorizer, LoadedBoundary, build_context
from crime_zones.database import Base
from crime_zones.geo.geometry import bounding_box, parse_geometry
from crime_zones.repositories import boundary as boundary_repo
from crime_zones.schemas.boundary import BoundaryCategory
from crime_zones.schemas.incident import IncidentCreate

# Use SQLite for local tests, PostgreSQL in CI (when TEST_DATABASE_URL is set)
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///:memory:",
)

is_sqlite = TEST_DATABASE_URL.startswith("sqlite")

BOUNDARY_NAME = "Prestonwood"


def square(min_lng: float, min_lat: float, max_lng: float, max_lat: float) -> dict:
    """GeoJSON Polygon for an axis-aligned rectangle."""
    return {
        "type": "Polygon",
        "coordinates": [
            [
                [min_lng, min_lat],
                [max_lng, min_lat],
                [max_lng, max_lat],
                [min_lng, max_lat],
                [min_lng, min_lat],
            ]
        ],
    }


# A small district in north Dallas and a hand-drawn buffer around it
DISTRICT = square(-96.80, 32.95, -96.78, 32.97)
BUFFER = square(-96.81, 32.94, -96.77, 32.98)

# (lat, lon) points with known categories against DISTRICT / BUFFER
INSIDE_POINT = (32.96, -96.79)
BORDERING_POINT = (32.945, -96.79)
OUTSIDE_POINT = (32.90, -96.70)


def make_incident(
    number: str,
    lat: float | None = None,
    lon: float | None = None,
    **fields,
) -> IncidentCreate:
    return IncidentCreate(
        incident_number=number,
        address=fields.pop("address", f"{number} Main St"),
        latitude=lat,
        longitude=lon,
        crime_type=fields.pop("crime_type", "THEFT"),
        entry_date=fields.pop("entry_date", "2024-01-15T10:00:00"),
        **fields,
    )


@pytest.fixture
def categorizer() -> GeographicCategorizer:
    """A ready categorizer built without a database."""
    context = build_context(
        _loaded(BOUNDARY_NAME, BoundaryCategory.DISTRICT, DISTRICT),
        _loaded(BOUNDARY_NAME, BoundaryCategory.BUFFER, BUFFER),
    )
    return GeographicCategorizer.from_context(context)


def _loaded(name: str, category: BoundaryCategory, geometry: dict) -> LoadedBoundary:
    parsed = parse_geometry(geometry)
    return LoadedBoundary(
        id=None, name=name, category=category, geometry=parsed, bbox=bounding_box(parsed)
    )


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh database with all tables for each test."""
    if is_sqlite:
        # SQLite in-memory requires StaticPool to keep connection alive
        test_engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        # PostgreSQL settings - use NullPool to avoid event loop issues
        test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for tests that need direct DB access."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def boundaries(db_session: AsyncSession) -> tuple[int, int]:
    """Store the active district and buffer; returns their ids."""
    district_id = await boundary_repo.save_boundary(
        db_session, BOUNDARY_NAME, BoundaryCategory.DISTRICT, DISTRICT
    )
    buffer_id = await boundary_repo.save_boundary(
        db_session, BOUNDARY_NAME, BoundaryCategory.BUFFER, BUFFER
    )
    return district_id, buffer_id
