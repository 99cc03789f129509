"""Configuration management."""

from .settings import LoggingSettings, MatrixSettings, ReminderBotSettings, load_settings

__all__ = ["LoggingSettings", "MatrixSettings", "ReminderBotSettings", "load_settings"]
