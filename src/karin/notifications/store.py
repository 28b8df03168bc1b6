"""In-memory notification store."""

from __future__ import annotations

from karin.notifications.models import Notification


class NotificationStore:
    """In-memory store for delivered notifications."""

    def __init__(self) -> None:
        self._notifications: dict[str, Notification] = {}

    def save(self, notification: Notification) -> Notification:
        self._notifications[notification.id] = notification
        return notification

    def get(self, notification_id: str) -> Notification | None:
        return self._notifications.get(notification_id)

    def list_for_case(self, tenant_id: str, case_id: str) -> list[Notification]:
        return [
            n for n in self._notifications.values()
            if n.tenant_id == tenant_id and n.case_id == case_id
        ]

    def list_all(self) -> list[Notification]:
        return list(self._notifications.values())

    @property
    def count(self) -> int:
        return len(self._notifications)
