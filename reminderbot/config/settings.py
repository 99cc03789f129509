"""Settings management using Pydantic for type validation and configuration."""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "REMINDERBOT_"


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    # Console Logging
    console_enabled: bool = Field(default=True, description="Enable console logging")
    console_level: str = Field(
        default="INFO",
        description="Console log level: DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL",
    )
    console_colors: bool = Field(
        default=True, description="Enable colored console output (auto-detected)"
    )

    # File Logging
    file_enabled: bool = Field(default=False, description="Enable file logging")
    file_level: str = Field(default="DEBUG", description="File log level")
    file_directory: Optional[str] = Field(
        default=None, description="Custom log directory (defaults to data_dir/logs)"
    )
    file_prefix: str = Field(default="reminderbot", description="Log file prefix")
    max_log_files: int = Field(default=5, description="Maximum number of log files to keep")
    include_function_names: bool = Field(
        default=True, description="Include function names and line numbers in file logs"
    )

    # Third-party Libraries
    third_party_level: str = Field(
        default="WARNING", description="Log level for third-party libraries"
    )


class MatrixSettings(BaseModel):
    """Matrix homeserver connection used to post reminders."""

    homeserver_url: str = Field(default="https://matrix.org", description="Homeserver base URL")
    access_token: Optional[str] = Field(
        default=None, repr=False, description="Access token of the bot user"
    )


class ReminderBotSettings(BaseSettings):
    """Application settings with environment variable and YAML support.

    Priority: explicit arguments > environment variables > YAML file > defaults.
    """

    # Private attributes
    _explicit_args: set = PrivateAttr(default_factory=set)
    _env_vars_set: set = PrivateAttr(default_factory=set)
    _database_path: Optional[Path] = PrivateAttr(default=None)

    app_name: str = Field(default="ReminderBot", description="Application name")
    config_file: Optional[Path] = Field(default=None, description="YAML configuration file")

    # File Paths
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config" / "reminderbot")
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local" / "share" / "reminderbot")

    # Loop intervals
    sync_interval: int = Field(default=300, description="Calendar sync interval in seconds")
    mappings_refresh_interval: int = Field(
        default=300, description="Identity mapping refresh interval in seconds"
    )
    scheduler_max_sleep: int = Field(
        default=300, description="Longest the reminder loop sleeps between checks, in seconds"
    )

    # Windows
    fetch_lookback_days: int = Field(
        default=180, description="How far back the CalDAV time-range query reaches"
    )
    expansion_past_days: int = Field(default=7, description="Instances kept before now")
    expansion_future_days: int = Field(default=30, description="Instances expanded after now")

    # Network and Retry Settings
    request_timeout: int = Field(default=30, description="HTTP request timeout in seconds")
    max_retries: int = Field(default=3, description="Maximum retry attempts")
    retry_backoff_factor: float = Field(default=1.5, description="Exponential backoff factor")

    matrix: MatrixSettings = Field(default_factory=MatrixSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    def __init__(self, **kwargs: Any) -> None:
        env_vars_set = {
            key[len(ENV_PREFIX) :].lower().split("__")[0]
            for key in os.environ
            if key.upper().startswith(ENV_PREFIX)
        }

        super().__init__(**kwargs)

        self._explicit_args = set(kwargs.keys())
        self._env_vars_set = env_vars_set

        self._load_yaml_config()

    def _can_override(self, name: str) -> bool:
        return name not in self._explicit_args and name not in self._env_vars_set

    def _find_config_file(self) -> Optional[Path]:
        """Find config file: explicit path, then project directory, then user home."""
        if self.config_file is not None:
            return self.config_file if self.config_file.exists() else None

        project_root = Path(__file__).parent.parent.parent
        project_config = project_root / "config" / "config.yaml"
        if project_config.exists():
            return project_config

        user_config = self.config_dir / "config.yaml"
        if user_config.exists():
            return user_config

        return None

    def _load_basic_settings(self, config_data: dict) -> None:
        basic_settings = [
            "app_name",
            "data_dir",
            "sync_interval",
            "mappings_refresh_interval",
            "scheduler_max_sleep",
            "fetch_lookback_days",
            "expansion_past_days",
            "expansion_future_days",
            "request_timeout",
            "max_retries",
            "retry_backoff_factor",
        ]

        for setting in basic_settings:
            if setting in config_data and self._can_override(setting):
                value = config_data[setting]
                if setting == "data_dir":
                    value = Path(value).expanduser()
                setattr(self, setting, value)

    def _load_section(self, config_data: dict, section: str, model: BaseModel) -> None:
        """Apply a nested YAML section onto a sub-model."""
        if section not in config_data or not self._can_override(section):
            return

        for key, value in (config_data[section] or {}).items():
            if key in type(model).model_fields:
                setattr(model, key, value)

    def _load_yaml_config(self) -> None:
        """Load configuration from YAML file if it exists."""
        config_file = self._find_config_file()
        if not config_file:
            return

        try:
            with config_file.open() as f:
                config_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            # Defaults and environment variables still apply
            logging.warning(f"Could not load YAML config from {config_file}: {e}")
            return

        if not config_data:
            return

        self._load_basic_settings(config_data)
        self._load_section(config_data, "matrix", self.matrix)
        self._load_section(config_data, "logging", self.logging)

        # The database path may be given as its own section for readability
        database = config_data.get("database") or {}
        if "path" in database:
            self._database_path = Path(database["path"]).expanduser()

    @property
    def database_file(self) -> Path:
        """Path to SQLite database file."""
        if self._database_path is not None:
            return self._database_path
        return self.data_dir / "reminderbot.db"


def load_settings(config_file: Optional[Path] = None, **overrides: Any) -> ReminderBotSettings:
    """Build settings, optionally from an explicit YAML file."""
    if config_file is not None:
        overrides["config_file"] = Path(config_file).expanduser()
    return ReminderBotSettings(**overrides)
