"""
Race Server CLI - Command-line interface for the race server.

Entry point:
    race-server   - run the multiplayer race room
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def validate_port(value: str) -> int:
    """Validate port number is in valid range."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid port number: {value}")

    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"Port must be between 1 and 65535, got: {port}")
    return port


def validate_hostname(value: str) -> str:
    """Validate hostname or IP address."""
    if not value or len(value) > 253:
        raise argparse.ArgumentTypeError(f"Invalid hostname: {value}")
    valid_chars = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789.-:[]")
    if not all(c in valid_chars for c in value):
        raise argparse.ArgumentTypeError(f"Invalid characters in hostname: {value}")
    return value


def validate_positive_int(value: str) -> int:
    """Validate positive integer."""
    try:
        num = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer: {value}")
    if num <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got: {num}")
    return num


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="race-server",
        description="Race Server - music-synced multiplayer race coordination",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  race-server                        # Start on default ports
  race-server --port 9000            # Custom client port
  race-server --max-laps 5 --no-metrics
        """,
    )
    parser.add_argument(
        "--host",
        type=validate_hostname,
        default=None,
        help="Interface to bind (default: 0.0.0.0 or $RACE_HOST)",
    )
    parser.add_argument(
        "--port",
        "-p",
        type=validate_port,
        default=None,
        help="Port for client connections (default: 8081 or $RACE_PORT)",
    )
    parser.add_argument(
        "--metrics-port",
        type=validate_port,
        default=None,
        help="Port for metrics HTTP endpoint (default: 8082 or $RACE_METRICS_PORT)",
    )
    parser.add_argument(
        "--no-metrics",
        action="store_true",
        help="Disable metrics HTTP endpoint",
    )
    parser.add_argument(
        "--max-laps",
        type=validate_positive_int,
        default=None,
        help="Laps required to finish (default: 3 or $RACE_MAX_LAPS)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON config file with 'server' and 'race' sections",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.environ.get("RACE_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO or $RACE_LOG_LEVEL)",
    )
    return parser


def resolve_config(args: argparse.Namespace):
    """Config file (or environment), then command-line overrides."""
    from race_server.config import AppConfig

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {args.config}")
        config = AppConfig.load(config_path)
    else:
        config = AppConfig.from_env()

    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.metrics_port is not None:
        config.server.metrics_port = args.metrics_port
    if args.no_metrics:
        config.server.metrics_port = None
    if args.max_laps is not None:
        config.race.max_laps = args.max_laps
    return config


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    from race_server.logging_config import configure_logging
    from race_server.server import RaceServer

    configure_logging(args.log_level)

    try:
        config = resolve_config(args)
    except (OSError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    server = RaceServer(config)

    def signal_handler(sig, frame):
        server.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        pass
    except OSError as e:
        logger.error(f"Could not start server: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
