"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class RunMode(str, Enum):
    GUI = "gui"
    CONSOLE = "console"
    BATCH = "batch"


class ErrorReportLevel(str, Enum):
    """How much of a failing statement is repeated in the error message."""

    FULL = "full"
    LIMITED = "limited"
    NONE = "none"


class SavepointStrategy(str, Enum):
    ALWAYS = "always"
    NEVER = "never"
    WHEN_CONFIGURED = "when_configured"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with SQLRUNNER_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="SQLRUNNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    run_mode: RunMode = RunMode.BATCH
    debug: bool = False

    # Execution limits
    max_rows: int = 0
    query_timeout: int = 0

    # Dispatch
    allow_abbreviations: bool = False

    # Logging
    log_level: str = "INFO"
    structured_logging: bool = False
    log_all_statements: bool = False
    log_parameter_substitution: bool = False
    verbose_logging: bool = True
    error_report_level: ErrorReportLevel = ErrorReportLevel.LIMITED
    max_error_statement_length: int = 150
    show_removed_result_message: bool = True

    # Transactions
    savepoint_strategy: SavepointStrategy = SavepointStrategy.WHEN_CONFIGURED

    # Variables
    variable_prefix: str = "${"
    variable_suffix: str = "}"
    strict_variables: bool = False

    # Statement history
    history_size: int = 100
    history_file: Path | None = None

    @field_validator("max_rows", "query_timeout", "history_size")
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("variable_prefix")
    @classmethod
    def prefix_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("variable_prefix must not be empty")
        return v


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for run mode: %s", settings.run_mode.value)

    return settings
