"""Core type definitions shared across all engine modules."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class DataClassification(StrEnum):
    """Data classification levels for audit events."""

    PUBLIC = "public"
    INTERNAL = "internal"
    SENSITIVE = "sensitive"
    RESTRICTED = "restricted"


class DayUnit(StrEnum):
    """Unit in which a legal offset is expressed."""

    BUSINESS_DAYS = "business_days"
    CALENDAR_DAYS = "calendar_days"


class BusinessDayType(StrEnum):
    """Which weekdays count as business days."""

    ADMINISTRATIVE = "administrative"  # Monday to Friday
    WORKING = "working"  # Monday to Saturday


class StageType(StrEnum):
    """How binding a deadline is."""

    MANDATORY = "mandatory"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"


class AlertLevel(StrEnum):
    """Human-facing urgency of a deadline."""

    COMPLETED = "completed"
    OVERDUE = "overdue"
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
    NORMAL = "normal"


class AuditEvent(BaseModel):
    """Immutable audit log entry."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tenant_id: str
    actor: str
    action: str
    resource: str
    classification: DataClassification
    details: dict[str, Any] = Field(default_factory=dict)
