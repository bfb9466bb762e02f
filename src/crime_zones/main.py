"""Command line entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from crime_zones.batch import ChunkProgress, categorize_all
from crime_zones.boundaries import import_boundary_from_geojson, load_geojson, regenerate_buffer
from crime_zones.categorizer import GeographicCategorizer
from crime_zones.config import settings
from crime_zones.database import dispose_engine, get_session, get_session_factory, init_db
from crime_zones.errors import CrimeZonesError
from crime_zones.repositories import boundary as boundary_repo
from crime_zones.schemas.boundary import BoundaryCategory
from crime_zones.validation.samples import (
    export_to_csv,
    export_to_geojson,
    generate_sample,
    write_report,
)
from crime_zones.validation.statistics import Severity, generate_report

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """Configure logging for the command line tools."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crime-zones",
        description="Categorize crime incidents relative to a district and its buffer zone",
    )
    parser.add_argument(
        "--boundary-name",
        default=settings.boundary_name,
        help="Name of the district/buffer boundaries (default: %(default)s)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create database tables")

    import_cmd = commands.add_parser("import-boundary", help="Import a district outline")
    import_cmd.add_argument("geojson", type=Path, help="GeoJSON file holding the outline")
    import_cmd.add_argument(
        "--feature-name",
        help="Feature to import when the file holds a FeatureCollection",
    )
    import_cmd.add_argument(
        "--category",
        choices=[c.value for c in BoundaryCategory],
        default=BoundaryCategory.DISTRICT.value,
    )
    import_cmd.add_argument(
        "--replace",
        action="store_true",
        help="Deactivate the current boundary of the same name and category first",
    )

    buffer_cmd = commands.add_parser("generate-buffer", help="Generate the buffer zone")
    buffer_cmd.add_argument("--distance-km", type=float, default=settings.buffer_distance_km)
    buffer_cmd.add_argument(
        "--force", action="store_true", help="Replace an existing buffer boundary"
    )

    categorize_cmd = commands.add_parser("categorize", help="Categorize all incidents")
    categorize_cmd.add_argument("--chunk-size", type=int, default=settings.chunk_size)

    validate_cmd = commands.add_parser("validate", help="Report statistics and export samples")
    validate_cmd.add_argument(
        "--samples",
        type=int,
        default=settings.samples_per_category,
        help="Samples per category (default: %(default)s)",
    )
    validate_cmd.add_argument("--output-dir", type=Path, default=Path(settings.export_dir))

    return parser


async def _init_db(args: argparse.Namespace) -> None:
    await init_db()
    logger.info("Database tables created")


async def _import_boundary(args: argparse.Namespace) -> None:
    document = load_geojson(args.geojson)
    async with get_session() as db:
        if args.replace:
            current = await boundary_repo.get_boundary(db, args.boundary_name, args.category)
            if current is not None:
                await boundary_repo.deactivate_boundary(db, current.id)
        await import_boundary_from_geojson(
            db,
            document,
            args.boundary_name,
            category=args.category,
            feature_name=args.feature_name,
        )


async def _generate_buffer(args: argparse.Namespace) -> None:
    async with get_session() as db:
        buffer_id = await regenerate_buffer(
            db, args.boundary_name, distance_km=args.distance_km, force=args.force
        )
    logger.info("Active buffer boundary: %d", buffer_id)


def _log_progress(progress: ChunkProgress) -> None:
    logger.debug(
        "Progress: %.1f%% (%d/%d)", progress.percent, progress.processed, progress.total
    )


async def _categorize(args: argparse.Namespace) -> None:
    summary = await categorize_all(
        get_session_factory(),
        categorizer=GeographicCategorizer(args.boundary_name),
        chunk_size=args.chunk_size,
        on_progress=_log_progress,
    )
    if summary.boundary_stats is not None:
        logger.info(
            "District area: %.3f km2, buffer area: %.3f km2",
            summary.boundary_stats.district.area_km2,
            summary.boundary_stats.buffer.area_km2,
        )
    for category, pct in summary.percentages().items():
        logger.info("  %-10s %8d (%.2f%%)", category.value, summary.counts[category], pct)


async def _validate(args: argparse.Namespace) -> None:
    output_dir: Path = args.output_dir
    async with get_session() as db:
        report = await generate_report(db)
        samples = await generate_sample(db, args.samples)

    for flag in report.validation_flags:
        if flag.severity == Severity.INFO:
            logger.info("%s", flag)
        else:
            logger.warning("%s", flag)

    write_report(report, output_dir / "validation_report.json")
    export_to_csv(samples, output_dir / "validation_sample.csv")
    export_to_geojson(samples, output_dir / "validation_sample.geojson")


COMMANDS = {
    "init-db": _init_db,
    "import-boundary": _import_boundary,
    "generate-buffer": _generate_buffer,
    "categorize": _categorize,
    "validate": _validate,
}


async def main(argv: list[str] | None = None) -> int:
    """Run one sub-command and return the process exit status."""
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        await COMMANDS[args.command](args)
    except CrimeZonesError as e:
        logger.error("%s", e)
        return 1
    except Exception:
        logger.exception("Command '%s' failed", args.command)
        return 1
    finally:
        await dispose_engine()
    return 0


def run() -> None:
    """Entry point for the console script."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
