"""Notification delivery Protocol and mock implementation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from karin.notifications.models import Notification, NotificationStatus
from karin.notifications.store import NotificationStore


@runtime_checkable
class NotificationService(Protocol):
    """Protocol for the external delivery collaborator."""

    def send(self, notification: Notification) -> Notification: ...

    def get_status(self, notification_id: str) -> NotificationStatus | None: ...

    def list_for_case(self, tenant_id: str, case_id: str) -> list[Notification]: ...


class MockNotificationService:
    """Delivery stand-in that marks every notification delivered immediately."""

    def __init__(self, store: NotificationStore | None = None) -> None:
        self._store = store or NotificationStore()

    @property
    def store(self) -> NotificationStore:
        return self._store

    def send(self, notification: Notification) -> Notification:
        notification.status = NotificationStatus.DELIVERED
        notification.delivered_at = datetime.now(timezone.utc)
        self._store.save(notification)
        return notification

    def get_status(self, notification_id: str) -> NotificationStatus | None:
        n = self._store.get(notification_id)
        return n.status if n else None

    def list_for_case(self, tenant_id: str, case_id: str) -> list[Notification]:
        return self._store.list_for_case(tenant_id, case_id)
