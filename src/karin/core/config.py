"""Application configuration loaded from environment and config files."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

from karin.core.types import BusinessDayType


class CalendarConfig(BaseSettings):
    """Holiday data and business-day configuration."""

    model_config = {"env_prefix": "KARIN_CALENDAR_"}

    holidays_path: str = "config/holidays.yml"
    region: str | None = None
    day_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE


class ProcessConfig(BaseSettings):
    """Stage machine and deadline template configuration."""

    model_config = {"env_prefix": "KARIN_PROCESS_"}

    templates_path: str = "config/deadline_templates.yml"
    enforce_mandatory_deadlines: bool = True


class SweepConfig(BaseSettings):
    """Notification sweep configuration."""

    model_config = {"env_prefix": "KARIN_SWEEP_"}

    max_workers: int = 8
    case_timeout_seconds: float = 30.0
    timezone: str = "America/Santiago"


class AuditConfig(BaseSettings):
    """Audit logging configuration."""

    model_config = {"env_prefix": "KARIN_AUDIT_"}

    log_dir: str = "data/audit"
    hash_algorithm: str = "sha256"


class NotificationConfig(BaseSettings):
    """Notification engine configuration."""

    model_config = {"env_prefix": "KARIN_NOTIFICATION_"}

    templates_path: str = "config/notification_templates.yml"
    default_channel: str = "email"


class DatabaseConfig(BaseSettings):
    """Database configuration. An empty URL keeps the in-memory stores."""

    model_config = {"env_prefix": "KARIN_DATABASE_"}

    url: str = ""
    echo: bool = False
    pool_size: int = 5


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "KARIN_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    process: ProcessConfig = Field(default_factory=ProcessConfig)
    sweep: SweepConfig = Field(default_factory=SweepConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)


PROJECT_ROOT = Path(__file__).resolve().parents[3]


def resolve_config_path(value: str | Path) -> Path:
    """Resolve a configured file path; relative paths fall back to the project root."""
    path = Path(value)
    if path.is_absolute() or path.exists():
        return path
    return PROJECT_ROOT / path
