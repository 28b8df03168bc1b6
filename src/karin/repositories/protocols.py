"""Protocol definitions for the repository interfaces.

Each protocol mirrors the public methods of the corresponding in-memory
store, so sync (in-memory) and async (SQL) implementations satisfy the
same interface. Callers wrap every call in ``await resolve(...)``.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Protocol, runtime_checkable

from karin.core.types import AuditEvent
from karin.governance.audit import AuditEntry
from karin.notifications.models import Notification
from karin.process.models import Case, Recommendation


@runtime_checkable
class CaseRepository(Protocol):
    """Protocol for case and recommendation storage.

    ``save_case`` must reject a case whose ``version`` differs from the
    stored one with StaleCaseError, and return the stored copy with its
    version incremented.
    """

    def get_case(self, tenant_id: str, case_id: str) -> Case | None: ...

    def save_case(self, case: Case) -> Case: ...

    def list_tenants(self) -> list[str]: ...

    def list_cases(self, tenant_id: str) -> list[Case]: ...

    def save_recommendation(self, recommendation: Recommendation) -> Recommendation: ...

    def get_recommendation(self, recommendation_id: str) -> Recommendation | None: ...

    def list_recommendations(self, tenant_id: str) -> list[Recommendation]: ...

    @property
    def case_count(self) -> int: ...


@runtime_checkable
class DispatchLedgerRepository(Protocol):
    """Protocol for the per-day notification dedupe ledger."""

    def claim(self, dedupe_key: str, day: date) -> bool: ...

    def release(self, dedupe_key: str, day: date) -> None: ...

    def is_claimed(self, dedupe_key: str, day: date) -> bool: ...

    def purge_before(self, day: date) -> int: ...

    @property
    def count(self) -> int: ...


@runtime_checkable
class NotificationRepository(Protocol):
    """Protocol for delivered notification storage."""

    def save(self, notification: Notification) -> Notification: ...

    def get(self, notification_id: str) -> Notification | None: ...

    def list_for_case(self, tenant_id: str, case_id: str) -> list[Notification]: ...

    def list_all(self) -> list[Notification]: ...

    @property
    def count(self) -> int: ...


@runtime_checkable
class AuditRepository(Protocol):
    """Protocol for audit logging."""

    def log(self, event: AuditEvent) -> AuditEntry: ...

    def verify_chain(self) -> bool: ...

    def query(self, filters: dict[str, Any] | None = None) -> list[AuditEvent]: ...
