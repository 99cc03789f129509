"""Command-line argument parsing for ReminderBot."""

import argparse
from pathlib import Path

from .. import __version__

LOG_LEVELS = ["DEBUG", "VERBOSE", "INFO", "WARNING", "ERROR", "CRITICAL"]


def create_parser() -> argparse.ArgumentParser:
    """Create the command line argument parser.

    Example:
        >>> parser = create_parser()
        >>> args = parser.parse_args(["--config", "config.yaml", "--sync-once"])
    """
    parser = argparse.ArgumentParser(
        description="ReminderBot - CalDAV calendar sync with Matrix room reminders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # Run sync, identity refresh and reminder loops
  %(prog)s --config ./config.yaml       # Use an explicit configuration file
  %(prog)s --sync-once --log-level DEBUG  # Sync every calendar once and exit
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show version information",
    )

    parser.add_argument(
        "--config",
        type=Path,
        metavar="FILE",
        help="Path to YAML configuration file",
    )

    parser.add_argument(
        "--sync-once",
        action="store_true",
        help="Sync every calendar once, send due reminders and exit",
    )

    logging_group = parser.add_argument_group("logging", "Logging configuration options")
    logging_group.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Set console and file log level",
    )
    logging_group.add_argument(
        "--log-dir",
        type=str,
        metavar="DIR",
        help="Enable file logging into this directory",
    )
    logging_group.add_argument(
        "--no-log-colors",
        action="store_true",
        help="Disable colored console output",
    )

    return parser
