"""Node monitor entry point: one pass with --once, otherwise a fixed-interval loop."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

import httpx
import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from node_checks.config import ConfigError, MonitorConfig, load_config
from node_checks.monitor import run_once
from node_checks.notifier import Notifier
from node_checks.settings import Settings
from node_checks.store import SqliteNodeStore


logger = structlog.get_logger(__name__)

JOB_ID = "node-monitor-pass"


def configure_logging(level: str) -> None:
    numeric = getattr(logging, str(level).upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    # Slack webhook URLs and tokens travel in request lines; keep httpx quiet.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_forever(config: MonitorConfig, settings: Settings, store: SqliteNodeStore) -> None:
    async with httpx.AsyncClient() as client:
        notifier = Notifier(settings, client)

        async def _job() -> None:
            await run_once(config, settings, store=store, client=client, notifier=notifier)

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            _job,
            trigger=IntervalTrigger(seconds=config.interval_seconds),
            id=JOB_ID,
            name="Node monitoring pass",
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        scheduler.start()
        logger.info("Scheduler started", interval_seconds=config.interval_seconds, channel=notifier.channel)
        try:
            await asyncio.Event().wait()
        finally:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


async def _amain(config: MonitorConfig, once: bool) -> int:
    settings = Settings()
    store = SqliteNodeStore(config.db_path)
    try:
        if once:
            await run_once(config, settings, store=store)
        else:
            await run_forever(config, settings, store)
    finally:
        store.close()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Blockchain node fleet monitor")
    parser.add_argument(
        "--config",
        default=os.getenv("NODE_MONITOR_CONFIG") or str(Path(__file__).with_name("config.yaml")),
        help="Path to YAML config",
    )
    parser.add_argument("--once", action="store_true", help="Run one monitoring pass and exit")
    parser.add_argument("--log-level", default=None, help="Logging level (INFO, WARNING, ...)")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        configure_logging(args.log_level or "INFO")
        logger.error("Invalid configuration", error=str(exc))
        return 2

    configure_logging(args.log_level or config.log_level)
    try:
        return asyncio.run(_amain(config, once=bool(args.once)))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
