"""Scan failed job logs for a failure signature. Use --help for usage."""

import argparse
import asyncio
import logging
import sys
from contextlib import aclosing
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from core.download import create_session
from core.errors.exceptions import LogScanError
from core.logging import generate_run_id, setup_logging
from logscan.config import LogScanConfig
from logscan.kusto import FrameDecoder, ProgressiveQueryClient
from logscan.metrics import start_metrics_server
from logscan.output import ConsoleOutput, MatchSink
from logscan.scan import LogScanner, ScanOrchestrator, ScanStats
from logscan.signals import setup_shutdown_signal_handlers

# Project root directory (where .env file is located)
# __main__.py is at src/logscan/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_INTERRUPTED = 130

# Connections kept free for the query stream on top of the scan pool
QUERY_CONNECTIONS = 4

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="logscan",
        description="Stream log URIs from a Kusto query and scan each log for a pattern. "
        "Matching lines are printed to stdout; progress goes to stderr.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Scan with config.yaml / environment settings
    python -m logscan

    # Different failure signature, lower concurrency
    python -m logscan --pattern "out of memory" --concurrency 20

    # Custom query returning a 'ConsoleUri' column
    python -m logscan --query "WorkItems | take 1000" --column ConsoleUri

    # Expose Prometheus metrics while scanning
    python -m logscan --metrics-port 9090
        """,
    )

    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--cluster-url", default=None, help="Kusto cluster URL")
    parser.add_argument("--database", default=None, help="Kusto database")
    parser.add_argument("--query", default=None, help="KQL query producing the URI column")
    parser.add_argument("--column", default=None, help="Result column holding log URIs")
    parser.add_argument(
        "--pattern",
        default=None,
        help="Case-insensitive regular expression to search for",
    )
    parser.add_argument("--concurrency", type=int, default=None, help="Max scans in flight")
    parser.add_argument(
        "--max-content-length",
        type=int,
        default=None,
        help="Skip logs larger than this many bytes",
    )
    parser.add_argument(
        "--telemetry-interval",
        type=int,
        default=None,
        help="Log progress every N scans",
    )
    parser.add_argument(
        "--fetch-timeout",
        type=float,
        default=None,
        help="Total timeout per log fetch in seconds",
    )
    parser.add_argument(
        "--interactive-auth",
        action="store_true",
        default=None,
        help="Allow interactive browser login for the query service",
    )
    parser.add_argument(
        "--show-uri",
        action="store_true",
        help="Prefix each matched line with its log URI",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Serve Prometheus metrics on this port (disabled by default)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Console logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Log directory path (default: ./logs)",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Only log to stderr, skip the rotating JSON log file",
    )

    return parser.parse_args(argv)


def config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "cluster_url": args.cluster_url,
        "database": args.database,
        "query": args.query,
        "column": args.column,
        "pattern": args.pattern,
        "concurrency": args.concurrency,
        "max_content_length": args.max_content_length,
        "telemetry_interval": args.telemetry_interval,
        "fetch_timeout_seconds": args.fetch_timeout,
        "interactive_auth": args.interactive_auth,
    }


async def run_scan(config: LogScanConfig, output: MatchSink | None = None) -> ScanStats:
    """Stream URIs from the query and scan every one of them."""
    decoder = FrameDecoder(column=config.column)

    async with create_session(max_connections=config.concurrency + QUERY_CONNECTIONS) as session:
        scanner = LogScanner(
            session,
            pattern=config.pattern,
            max_content_length=config.max_content_length,
            fetch_timeout=config.fetch_timeout_seconds,
            sock_read_timeout=config.sock_read_timeout_seconds,
            output=output or ConsoleOutput(),
        )
        orchestrator = ScanOrchestrator(
            scanner,
            capacity=config.concurrency,
            telemetry_interval=config.telemetry_interval,
        )
        remove_signal_handlers = setup_shutdown_signal_handlers(orchestrator.stop)

        try:
            async with ProgressiveQueryClient(config, session=session) as client:
                logger.info(
                    "Starting scan",
                    extra={
                        "cluster_url": config.cluster_url,
                        "database": config.database,
                        "query": config.query[:500],
                        "column": config.column,
                        "concurrency": config.concurrency,
                    },
                )
                async with aclosing(client.stream_frames(config.query)) as frames:
                    stats = await orchestrator.run(decoder.adecode(frames))
        finally:
            remove_signal_handlers()

    logger.debug(
        "Decoder finished",
        extra={"frames": decoder.stats.frames, "rows": decoder.stats.values_emitted},
    )
    return stats


def main(argv: list[str] | None = None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")
    load_dotenv()

    args = parse_args(argv)

    setup_logging(
        name="logscan",
        stage="scan",
        log_dir=args.log_dir,
        console_level=getattr(logging, args.log_level),
        run_id=generate_run_id(),
        log_to_file=not args.no_log_file,
    )

    try:
        config = LogScanConfig.load_config(args.config, overrides=config_overrides(args))
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_FATAL

    if args.metrics_port is not None:
        actual_port = start_metrics_server(args.metrics_port)
        logger.info(
            "Metrics server started",
            extra={"actual_port": actual_port, "preferred_port": args.metrics_port},
        )

    try:
        stats = asyncio.run(run_scan(config, ConsoleOutput(with_uri=args.show_uri)))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
        return EXIT_INTERRUPTED
    except LogScanError as e:
        logger.error(
            "Scan failed: %s",
            str(e)[:1000],
            extra={
                "error_type": type(e).__name__,
                "error_category": e.category,
            },
        )
        return EXIT_FATAL
    except Exception:
        logger.exception("Scan failed with an unexpected error")
        return EXIT_FATAL

    return EXIT_INTERRUPTED if stats.interrupted else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
