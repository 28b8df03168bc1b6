"""Notification data models."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class NotificationChannel(str, Enum):
    EMAIL = "email"
    IN_APP = "in_app"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class NotificationKind(str, Enum):
    DEADLINE_REMINDER = "deadline_reminder"
    DEADLINE_OVERDUE = "deadline_overdue"
    RECOMMENDATION_DUE_SOON = "recommendation_due_soon"
    RECOMMENDATION_OVERDUE = "recommendation_overdue"


class RecipientRole(str, Enum):
    ASSIGNEE = "assignee"
    INVESTIGATOR = "investigator"
    ADMIN = "admin"


class NotificationRequest(BaseModel):
    """One notification the sweep wants delivered.

    ``threshold_days`` is signed: days remaining for reminders, negative
    days overdue for overdue alerts.
    """

    tenant_id: str
    case_id: str
    item_id: str
    recipient_role: RecipientRole
    recipient_id: str | None = None
    kind: NotificationKind
    threshold_days: int
    title: str = ""
    due_date: date | None = None

    @property
    def dedupe_key(self) -> str:
        return ":".join(
            [
                self.tenant_id,
                self.case_id,
                self.item_id,
                str(self.threshold_days),
                self.recipient_role.value,
            ]
        )


class Notification(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tenant_id: str = ""
    case_id: str = ""
    channel: NotificationChannel = NotificationChannel.EMAIL
    recipient_role: RecipientRole = RecipientRole.ADMIN
    recipient: str = ""
    subject: str = ""
    body: str = ""
    status: NotificationStatus = NotificationStatus.PENDING
    template_id: str | None = None
    dedupe_key: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    delivered_at: datetime | None = None


class NotificationTemplate(BaseModel):
    id: str
    subject: str
    body: str
    channel: NotificationChannel = NotificationChannel.EMAIL
