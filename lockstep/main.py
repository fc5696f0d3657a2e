"""Composition root for the lockstep harness.

This module is the ONLY location that imports both configuration and
concrete adapter implementations. All wiring happens here, creating a
clear entry point for the ``lockstep`` command.

Module Structure:
- Configuration loading via config module
- Logging setup
- Adapter instantiation
- Command dispatch (list, run)
"""

import argparse
import json
import logging
import sys
from typing import Any

from lockstep.adapters.cli.commands import ScenarioCommandHandler
from lockstep.config import Settings, load_settings


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    if log_format == "json":
        format_str = (
            '{"time": "%(asctime)s", "level": "%(levelname)s", '
            '"thread": "%(threadName)s", "message": "%(message)s"}'
        )
    else:
        format_str = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )


def _positive_int(value: str) -> int:
    """argparse type for options that must be a positive integer."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="lockstep",
        description="Run scripted two-transaction interleavings",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List the built-in scenarios")

    run_parser = subparsers.add_parser("run", help="Run a built-in scenario")
    run_parser.add_argument("scenario", help="Scenario name (see 'lockstep list')")
    run_parser.add_argument("--db-path", help="SQLite database file to use")
    run_parser.add_argument(
        "--rounds", type=_positive_int, help="Rounds for the ping-pong scenario"
    )
    return parser


def build_handler(settings: Settings, args: argparse.Namespace) -> ScenarioCommandHandler:
    """Wire the scenario handler from settings and command-line overrides."""
    db_path = getattr(args, "db_path", None)
    rounds = getattr(args, "rounds", None)
    return ScenarioCommandHandler(
        db_path=db_path if db_path is not None else settings.sqlite_db_path,
        busy_timeout=settings.sqlite_busy_timeout_seconds,
        probe_delay=settings.probe_delay_seconds,
        rounds=rounds if rounds is not None else settings.ping_pong_rounds,
    )


def run_command(handler: ScenarioCommandHandler, args: argparse.Namespace) -> dict[str, Any]:
    """Dispatch a parsed command to the handler.

    Raises:
        ValueError: If the command is not recognized.
    """
    if args.command == "list":
        return handler.list_scenarios()
    elif args.command == "run":
        return handler.run_scenario(args.scenario)
    else:
        raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    """Application entry point.

    Exit codes:
        0: Command succeeded
        1: Command reported an error, or a fatal error occurred
        2: Invalid command-line arguments (raised by argparse)
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    args = build_parser().parse_args(argv)
    logger = logging.getLogger(__name__)
    try:
        settings = load_settings()
        configure_logging(args.log_level or settings.log_level, settings.log_format)
        handler = build_handler(settings, args)
        result = run_command(handler, args)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (SIGINT)")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))
    if result.get("status") != "success":
        sys.exit(1)


if __name__ == "__main__":
    main()
