"""Analytics pipeline entry point. Use --help for usage."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from prometheus_client import start_http_server

from analytics.common.health import HealthCheckServer
from analytics.common.signals import setup_shutdown_signal_handlers
from analytics.processing.dead_letter import DeadLetterQuarantine
from analytics.sinks.factory import build_sinks
from analytics.workers.event_consumer import EventConsumerWorker, build_processor
from config.config import AnalyticsConfig, load_config, set_config
from core.logging import log_startup_banner, parse_log_level, setup_logging
from core.utils import generate_worker_id

# src/analytics/__main__.py -> project root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

COMMANDS = ("consumer", "api", "ingest", "init-db")

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m analytics",
        description="Run the event analytics pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Consume user-events/system-events with 3 workers plus the DLQ monitor
    python -m analytics consumer --concurrency 3

    # Serve the read API
    python -m analytics api

    # Serve the ingestion API
    python -m analytics ingest

    # Create tables and the search index
    python -m analytics init-db
        """,
    )
    parser.add_argument("command", choices=COMMANDS, help="What to run")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.yaml (default: $ANALYTICS_CONFIG or src/config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: observability.log_level)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines (also observability.json_logs)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Consumer instances in the analytics group (default: kafka.concurrency)",
    )
    return parser.parse_args(argv)


def start_metrics_server(port: int) -> None:
    try:
        start_http_server(port)
        logger.info("Metrics server started", extra={"http_url": f"http://localhost:{port}/metrics"})
    except OSError as e:
        logger.warning(
            "Could not start metrics server, continuing without it",
            extra={"error_message": str(e)},
        )


async def run_consumer(config: AnalyticsConfig, concurrency: int | None) -> None:
    shutdown_event = asyncio.Event()

    def _request_shutdown() -> None:
        if shutdown_event.is_set():
            return
        logger.info("Received signal, initiating graceful shutdown")
        shutdown_event.set()

    setup_shutdown_signal_handlers(_request_shutdown)

    health_server = HealthCheckServer(
        port=config.observability.health_port,
        worker_name=EventConsumerWorker.WORKER_NAME,
    )
    await health_server.start()

    sinks = build_sinks(config)
    try:
        worker = EventConsumerWorker(
            config,
            processor=build_processor(config, sinks),
            quarantine=DeadLetterQuarantine(sinks.dead_letter),
            health_server=health_server,
            concurrency=concurrency,
        )
        log_startup_banner(
            logger,
            "Event Consumer",
            topics=", ".join(config.kafka.primary_topics + [config.kafka.dead_letter_topic]),
            consumer_group=config.kafka.consumer_group,
            concurrency=worker.concurrency,
            health_port=health_server.actual_port,
            metrics_port=config.observability.metrics_port,
        )
        await worker.run(shutdown_event)
    finally:
        await sinks.close()
        await health_server.stop()


async def init_storage(config: AnalyticsConfig) -> None:
    sinks = build_sinks(config)
    try:
        await sinks.durable.create_schema()
        created = await sinks.search.ensure_index()
        logger.info(
            "Storage initialized",
            extra={"outcome": "index_created" if created else "index_exists"},
        )
    finally:
        await sinks.close()


def serve(app, host: str, port: int) -> None:
    import uvicorn

    uvicorn.run(app, host=host, port=port, log_config=None)


def main(argv: list[str] | None = None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    if args.concurrency is not None and args.concurrency < 1:
        print("--concurrency must be >= 1", file=sys.stderr)
        return 2
    set_config(config)

    obs = config.observability
    try:
        level = parse_log_level(args.log_level or obs.log_level)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    worker_id = os.getenv("WORKER_ID") or generate_worker_id(args.command)
    setup_logging(
        stage=args.command,
        level=level,
        json_format=args.json_logs or obs.json_logs,
        log_dir=Path(obs.log_dir) if obs.log_dir else None,
        worker_id=worker_id,
    )

    if args.command == "init-db":
        asyncio.run(init_storage(config))
        return 0

    start_metrics_server(obs.metrics_port)

    if args.command == "consumer":
        asyncio.run(run_consumer(config, args.concurrency))
    elif args.command == "api":
        from analytics.api.analytics import create_app

        serve(create_app(config), config.api.host, config.api.read_port)
    else:
        from analytics.api.ingest import create_app

        serve(create_app(config), config.api.host, config.api.ingest_port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
