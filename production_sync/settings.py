"""
Configuration settings for the production sync engine.

Centralized configuration using Pydantic Settings for type-safe environment
variable handling. All settings can be overridden via environment variables
with the PRODUCTION_SYNC_ prefix.

Example:
    export PRODUCTION_SYNC_LOG_LEVEL=INFO
    export PRODUCTION_SYNC_STORE_BACKEND=sqlite
    export PRODUCTION_SYNC_DB_PATH=data/production.db
"""

import logging
from pathlib import Path
from typing import Any
from typing import Dict
from typing import Literal

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings with environment variable support.

    All settings can be overridden via environment variables with the
    PRODUCTION_SYNC_ prefix (e.g., PRODUCTION_SYNC_LOG_LEVEL=DEBUG).
    """

    model_config = SettingsConfigDict(
        env_prefix="PRODUCTION_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging and plain-text output"
    )

    log_file: Path = Field(
        default=Path("logs/production_sync.log"),
        description="Path of the rotating structured log file"
    )

    # Document store
    store_backend: Literal["memory", "sqlite"] = Field(
        default="sqlite",
        description="Document store implementation used by create_store()"
    )

    db_path: Path = Field(
        default=Path("data/production.db"),
        description="Path to SQLite document store file"
    )

    db_timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="SQLite busy timeout in seconds"
    )

    # Collection names
    budget_collection: str = Field(
        default="budgetCategories",
        description="Collection holding BudgetItem documents"
    )

    scenes_collection: str = Field(
        default="scenes",
        description="Collection holding Scene documents"
    )

    schedule_events_collection: str = Field(
        default="scheduleEvents",
        description="Collection holding ScheduleEvent documents"
    )

    shooting_days_collection: str = Field(
        default="shootingDays",
        description="Collection holding ShootingDay documents (some projects use schedule_days)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got {v}")
        return upper_v

    @property
    def logging_config(self) -> Dict[str, Any]:
        """Get logging configuration dict."""
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "structured": {
                    "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                    "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": self.log_level,
                    "formatter": "standard" if self.debug_mode else "structured",
                    "stream": "ext://sys.stdout",
                },
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "level": "INFO",
                    "formatter": "structured",
                    "filename": str(self.log_file),
                    "maxBytes": 10485760,  # 10MB
                    "backupCount": 5,
                },
            },
            "loggers": {
                "production_sync": {
                    "level": self.log_level,
                    "handlers": ["console", "file"],
                    "propagate": False,
                },
                "aiosqlite": {
                    "level": "WARNING",
                    "handlers": ["console"],
                    "propagate": False,
                },
            },
            "root": {
                "level": "WARNING",
                "handlers": ["console"],
            },
        }

    def setup_logging(self) -> None:
        """Configure engine logging based on current settings."""
        import logging.config

        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        logging.config.dictConfig(self.logging_config)

        if not self.debug_mode:
            import structlog

            structlog.configure(
                processors=[
                    structlog.stdlib.filter_by_level,
                    structlog.stdlib.add_logger_name,
                    structlog.stdlib.add_log_level,
                    structlog.stdlib.PositionalArgumentsFormatter(),
                    structlog.processors.TimeStamper(fmt="iso"),
                    structlog.processors.StackInfoRenderer(),
                    structlog.processors.format_exc_info,
                    structlog.processors.UnicodeDecoder(),
                    structlog.processors.JSONRenderer(),
                ],
                context_class=dict,
                logger_factory=structlog.stdlib.LoggerFactory(),
                wrapper_class=structlog.stdlib.BoundLogger,
                cache_logger_on_first_use=True,
            )

        logging.getLogger(__name__).debug(f"Logging configured at {self.log_level}")


# Global settings instance
settings = Settings()

# Convenience function for external usage
def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings
