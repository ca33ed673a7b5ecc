"""Pipeline worker entry point: python -m eonet_etl.worker"""

import argparse
import asyncio
import contextlib
import signal
import sys

import structlog
import uvicorn
from pydantic import ValidationError

from eonet_etl.api.app import create_app
from eonet_etl.config.settings import Settings, get_settings
from eonet_etl.db.engine import build_engine
from eonet_etl.db.schema import InitMode, initialize_schema, parse_init_mode
from eonet_etl.db.store import EventStore
from eonet_etl.errors import EtlError, InvalidInitModeError
from eonet_etl.feed.client import FeedClient
from eonet_etl.logging_config import configure_logging
from eonet_etl.worker.orchestrator import Pipeline
from eonet_etl.worker.scheduler import run_periodically, run_with_retries

STARTUP_TIMEOUT_SECONDS = 30.0
HEALTH_TIMEOUT_SECONDS = 30.0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="eonet_etl.worker",
        description="Load NASA EONET events and categories into the database",
    )
    parser.add_argument(
        "--db-init",
        default=None,
        help="Database initialization mode: Create, Revive or Auto (default: from settings)",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        help="Run the feed and database health checks and exit",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass and exit instead of running on the configured interval",
    )
    return parser.parse_args(argv)


def resolve_init_mode(cli_value: str | None, settings: Settings) -> InitMode:
    """The ``--db-init`` flag wins over the configured mode."""
    if cli_value is None:
        return settings.init_mode
    return parse_init_mode(cli_value)


def build_pipeline(settings: Settings) -> Pipeline:
    engine = build_engine(settings.database)
    return Pipeline(FeedClient(settings.feed), EventStore(engine), settings.etl)


def build_http_server(pipeline: Pipeline, settings: Settings) -> uvicorn.Server:
    config = uvicorn.Config(
        create_app(pipeline),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )
    return uvicorn.Server(config)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as e:
        configure_logging()
        structlog.get_logger().error("invalid_configuration", error=str(e))
        return 2
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)
    log = structlog.get_logger()

    try:
        init_mode = resolve_init_mode(args.db_init, settings)
    except InvalidInitModeError as e:
        log.error("invalid_init_mode", error=str(e))
        return 2

    pipeline = build_pipeline(settings)
    try:
        try:
            async with asyncio.timeout(STARTUP_TIMEOUT_SECONDS):
                await initialize_schema(pipeline.store.engine, init_mode)
        except (EtlError, TimeoutError) as e:
            log.error("schema_init_failed", mode=init_mode.value, error=str(e) or type(e).__name__)
            return 1

        if args.health:
            try:
                async with asyncio.timeout(HEALTH_TIMEOUT_SECONDS):
                    await pipeline.health_check()
            except (EtlError, TimeoutError) as e:
                log.error("health_check_failed", error=str(e) or type(e).__name__)
                return 1
            log.info("health_check_passed")
            return 0

        return await _run(pipeline, settings, once=args.once)
    finally:
        await pipeline.close()


async def _run(pipeline: Pipeline, settings: Settings, once: bool) -> int:
    log = structlog.get_logger().bind(
        feed=settings.feed.api_url,
        database=settings.database.url.split("@")[-1],
    )

    # Graceful shutdown via SIGTERM/SIGINT
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    server_task: asyncio.Task | None = None
    server: uvicorn.Server | None = None
    if settings.server.enabled:
        server = build_http_server(pipeline, settings)
        server_task = asyncio.create_task(server.serve())
        server_task.add_done_callback(lambda _: stop_event.set())

    log.info("worker_starting", once=once)
    try:
        if once:
            try:
                result = await run_with_retries(
                    pipeline,
                    settings.etl.retry_attempts,
                    settings.etl.retry_delay_seconds,
                    stop_event,
                )
            except EtlError as e:
                log.error("pipeline_failed", error=str(e))
                return 1
            return 0 if result is not None else 1

        await run_periodically(pipeline, settings.etl, stop_event)
        return 0
    finally:
        if server is not None and server_task is not None:
            server.should_exit = True
            with contextlib.suppress(asyncio.CancelledError):
                await server_task
        log.info("worker_shutdown")


def run() -> None:
    """Console-script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
