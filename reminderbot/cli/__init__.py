"""Command-line interface for ReminderBot."""

from typing import Optional, Sequence

from ..config.settings import load_settings
from ..main import main
from ..utils.logging import apply_command_line_overrides, setup_logging
from .parser import create_parser


async def main_entry(argv: Optional[Sequence[str]] = None) -> int:
    """Parse arguments, configure logging and run the bot.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    apply_command_line_overrides(settings, args)
    setup_logging(settings)

    return await main(settings, sync_once=args.sync_once)


__all__ = [
    "create_parser",
    "main_entry",
]
