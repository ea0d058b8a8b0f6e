"""CLI entry point for attestoor."""

import asyncio
import logging
import sys
from typing import Optional

import click

from .config import Config
from .exceptions import IndexerError


def setup_logging(level: str) -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if level.upper() != "DEBUG":
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


log_level_option = click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
    envvar="ATTESTOOR_LOG_LEVEL",
)

db_path_option = click.option(
    "--db-path",
    default="./data/attestoor.db",
    type=click.Path(dir_okay=False),
    help="Path to the SQLite database",
    envvar="ATTESTOOR_DB_PATH",
)


@click.group()
@click.version_option(package_name="attestoor")
def cli():
    """Attestoor - beacon chain attestation indexer."""
    pass


@cli.command()
@click.option(
    "--beacon-url",
    default="http://localhost:5052",
    help="Beacon node REST API URL",
    envvar="ATTESTOOR_BEACON_URL",
)
@db_path_option
@click.option(
    "--from-epoch",
    type=click.IntRange(min=0),
    help="First epoch to backfill",
    envvar="ATTESTOOR_FROM_EPOCH",
)
@click.option(
    "--max-epoch",
    type=click.IntRange(min=0),
    help="Last epoch to backfill; the indexer exits once it is done",
    envvar="ATTESTOOR_MAX_EPOCH",
)
@click.option(
    "--resume",
    is_flag=True,
    default=False,
    help="Continue from the latest stored epoch when --from-epoch is not set",
    envvar="ATTESTOOR_RESUME",
)
@click.option(
    "--live/--no-live",
    default=True,
    help="Ingest attestation events alongside an unbounded backfill",
    envvar="ATTESTOOR_LIVE",
)
@click.option(
    "--max-in-flight",
    default=64,
    type=click.IntRange(min=1),
    help="Maximum concurrently processed live attestations",
    envvar="ATTESTOOR_MAX_IN_FLIGHT",
)
@click.option(
    "--poll-interval",
    default=12.0,
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds between finality checks while waiting for new epochs",
    envvar="ATTESTOOR_POLL_INTERVAL",
)
@click.option(
    "--metrics-port",
    default=8008,
    type=int,
    help="Port for Prometheus metrics (0 disables)",
    envvar="ATTESTOOR_METRICS_PORT",
)
@log_level_option
def index(
    beacon_url: str,
    db_path: str,
    from_epoch: Optional[int],
    max_epoch: Optional[int],
    resume: bool,
    live: bool,
    max_in_flight: int,
    poll_interval: float,
    metrics_port: int,
    log_level: str,
):
    """Index attestations from a beacon node."""
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    from .node import run_indexer

    config = Config(
        beacon_url=beacon_url,
        db_path=db_path,
        from_epoch=from_epoch,
        max_epoch=max_epoch,
        resume=resume,
        live=live,
        max_in_flight=max_in_flight,
        poll_interval=poll_interval,
        metrics_port=metrics_port,
        log_level=log_level,
    )

    logger.info("Starting attestoor indexer")
    logger.info(f"  Beacon node: {beacon_url}")
    logger.info(f"  Database: {db_path}")
    if config.bounded:
        logger.info(f"  Backfill: epochs {from_epoch if from_epoch is not None else 'start'}..{max_epoch}")
    else:
        logger.info(f"  Backfill: following justified epoch, live ingestion {'on' if live else 'off'}")
    if metrics_port:
        logger.info(f"  Metrics: port {metrics_port}")

    try:
        asyncio.run(run_indexer(config))
    except IndexerError as e:
        logger.error(f"Indexer aborted: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down")
        sys.exit(0)


@cli.command()
@db_path_option
@click.option(
    "--api-host",
    default="127.0.0.1",
    help="Host to bind the query API",
    envvar="ATTESTOOR_API_HOST",
)
@click.option(
    "--api-port",
    default=8080,
    type=int,
    help="Port for the query API",
    envvar="ATTESTOOR_API_PORT",
)
@log_level_option
def serve(db_path: str, api_host: str, api_port: int, log_level: str):
    """Serve participation rates from an indexed database."""
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    from .node import run_query_api

    config = Config(db_path=db_path, api_host=api_host, api_port=api_port, log_level=log_level)

    try:
        asyncio.run(run_query_api(config))
    except KeyboardInterrupt:
        logger.info("Shutting down")
        sys.exit(0)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
