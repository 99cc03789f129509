"""Tests for the CLI entry coroutine."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from reminderbot.cli import main_entry


class TestMainEntry:
    @pytest.mark.asyncio
    async def test_main_entry_when_arguments_given_then_settings_built_and_bot_run(self) -> None:
        settings = MagicMock()
        with patch("reminderbot.cli.load_settings", return_value=settings) as mock_load, patch(
            "reminderbot.cli.setup_logging"
        ) as mock_setup, patch(
            "reminderbot.cli.main", new_callable=AsyncMock, return_value=0
        ) as mock_main:
            exit_code = await main_entry(
                ["--config", "bot.yaml", "--sync-once", "--log-level", "debug"]
            )

        assert exit_code == 0
        mock_load.assert_called_once_with(Path("bot.yaml"))
        mock_setup.assert_called_once_with(settings)
        mock_main.assert_awaited_once_with(settings, sync_once=True)
        assert settings.logging.console_level == "DEBUG"

    @pytest.mark.asyncio
    async def test_main_entry_when_bot_fails_then_exit_code_propagated(self) -> None:
        with patch("reminderbot.cli.load_settings"), patch("reminderbot.cli.setup_logging"), patch(
            "reminderbot.cli.main", new_callable=AsyncMock, return_value=1
        ):
            assert await main_entry([]) == 1
