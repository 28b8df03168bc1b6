"""Daily notification sweep over every case of every tenant.

Evaluation is pure: a case (or recommendation) plus today's date yields
zero or more NotificationRequests. Cases are evaluated in a bounded
thread pool, each under a wall-clock timeout; a failing or stuck case is
logged and skipped. Requests are then claimed in the dispatch ledger and
delivered one by one, so re-running the sweep on the same day never
emits the same request twice.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from karin.calendar.business import BusinessCalendar, coerce_date, local_today
from karin.calendar.holidays import HolidaySource
from karin.core.errors import HolidayLoadError
from karin.core.types import AlertLevel, BusinessDayType
from karin.notifications.engine import NotificationEngine
from karin.notifications.models import (
    NotificationKind,
    NotificationRequest,
    NotificationStatus,
    RecipientRole,
)
from karin.process.deadlines import DeadlineSet
from karin.process.models import Case, Recommendation
from karin.repositories import resolve

logger = logging.getLogger(__name__)

# Overdue alerts fire only on these days, then every OVERDUE_PERIOD days.
OVERDUE_ALERT_DAYS: frozenset[int] = frozenset({1, 3, 7, 14})
OVERDUE_PERIOD = 14

# Recommendation reminders fire only at exactly these calendar days before due.
DUE_SOON_DAYS: frozenset[int] = frozenset({3, 1})

REMINDER_LEVELS: frozenset[AlertLevel] = frozenset({AlertLevel.WARNING, AlertLevel.CRITICAL})


def should_alert_overdue(days_overdue: int) -> bool:
    if days_overdue <= 0:
        return False
    return days_overdue in OVERDUE_ALERT_DAYS or days_overdue % OVERDUE_PERIOD == 0


def evaluate_case(case: Case, calendar: BusinessCalendar, today: date) -> list[NotificationRequest]:
    """Deadline reminders and overdue alerts for one case."""
    if not case.is_active:
        return []

    deadlines = DeadlineSet(case.deadlines, calendar)
    investigator_id = case.stage_facts.get("investigator_id")
    requests = []

    for deadline in case.deadlines:
        if deadline.completed or deadline.obsolete:
            continue
        common = dict(
            tenant_id=case.tenant_id,
            case_id=case.id,
            item_id=deadline.id,
            title=deadline.title,
            due_date=deadline.due_date,
        )
        level = deadlines.classify(deadline, today)
        if level in REMINDER_LEVELS:
            requests.append(
                NotificationRequest(
                    kind=NotificationKind.DEADLINE_REMINDER,
                    recipient_role=RecipientRole.INVESTIGATOR,
                    recipient_id=investigator_id,
                    threshold_days=deadlines.days_remaining(deadline, today),
                    **common,
                )
            )
        elif level == AlertLevel.OVERDUE:
            days_overdue = (today - deadline.due_date).days
            if not should_alert_overdue(days_overdue):
                continue
            for role, recipient_id in (
                (RecipientRole.INVESTIGATOR, investigator_id),
                (RecipientRole.ADMIN, None),
            ):
                requests.append(
                    NotificationRequest(
                        kind=NotificationKind.DEADLINE_OVERDUE,
                        recipient_role=role,
                        recipient_id=recipient_id,
                        threshold_days=-days_overdue,
                        **common,
                    )
                )
    return requests


def evaluate_recommendation(rec: Recommendation, today: date) -> list[NotificationRequest]:
    """Due-soon reminders and throttled overdue alerts for one recommendation."""
    if not rec.is_open or rec.due_date is None:
        return []

    common = dict(
        tenant_id=rec.tenant_id,
        case_id=rec.case_id,
        item_id=rec.id,
        title=rec.action,
        due_date=rec.due_date,
    )
    days_until_due = (rec.due_date - today).days

    if days_until_due in DUE_SOON_DAYS:
        if rec.assigned_user_id is None:
            return []
        return [
            NotificationRequest(
                kind=NotificationKind.RECOMMENDATION_DUE_SOON,
                recipient_role=RecipientRole.ASSIGNEE,
                recipient_id=rec.assigned_user_id,
                threshold_days=days_until_due,
                **common,
            )
        ]

    if days_until_due < 0 and should_alert_overdue(-days_until_due):
        recipients: list[tuple[RecipientRole, str | None]] = [(RecipientRole.ADMIN, None)]
        if rec.assigned_user_id is not None:
            recipients.insert(0, (RecipientRole.ASSIGNEE, rec.assigned_user_id))
        return [
            NotificationRequest(
                kind=NotificationKind.RECOMMENDATION_OVERDUE,
                recipient_role=role,
                recipient_id=recipient_id,
                threshold_days=days_until_due,
                **common,
            )
            for role, recipient_id in recipients
        ]
    return []


class SweepReport(BaseModel):
    """Outcome of one sweep run."""

    day: date
    tenants: int = 0
    cases_evaluated: int = 0
    recommendations_evaluated: int = 0
    failed: list[str] = Field(default_factory=list)
    timed_out: list[str] = Field(default_factory=list)
    requests: int = 0
    emitted: int = 0
    deduplicated: int = 0
    delivery_failures: int = 0


class NotificationSweeper:
    """Scans all tenants and emits de-duplicated notification requests.

    Args:
        store: CaseStore or CaseRepository (sync or async).
        engine: Renders and delivers each request.
        ledger: DispatchLedger or DispatchLedgerRepository (sync or async).
        holiday_source: Reloaded at the start of every run.
    """

    def __init__(
        self,
        store: Any,
        engine: NotificationEngine,
        ledger: Any,
        holiday_source: HolidaySource,
        day_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE,
        max_workers: int = 8,
        case_timeout_seconds: float = 30.0,
        timezone_name: str | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._ledger = ledger
        self._holiday_source = holiday_source
        self._day_type = day_type
        self._max_workers = max_workers
        self._case_timeout = case_timeout_seconds
        self._timezone_name = timezone_name

    async def run(self, today: date | None = None) -> SweepReport:
        """Run one sweep for ``today``.

        Raises:
            HolidayLoadError: If the holiday set cannot be loaded; nothing
                is emitted in that case.
        """
        today = coerce_date(today) if today is not None else local_today(self._timezone_name)
        report = SweepReport(day=today)

        try:
            holidays = self._holiday_source.load()
        except HolidayLoadError:
            logger.error("Sweep for %s aborted: holidays could not be loaded", today)
            raise
        calendar = BusinessCalendar(holidays, self._day_type)

        requests = await self._collect(calendar, today, report)
        report.requests = len(requests)
        for request in requests:
            await self._emit(request, today, report)

        logger.info(
            "Sweep %s: %d cases, %d recommendations, %d emitted, %d deduplicated, "
            "%d failed, %d timed out",
            today, report.cases_evaluated, report.recommendations_evaluated,
            report.emitted, report.deduplicated, len(report.failed), len(report.timed_out),
        )
        return report

    async def _collect(
        self, calendar: BusinessCalendar, today: date, report: SweepReport
    ) -> list[NotificationRequest]:
        loop = asyncio.get_running_loop()
        slots = asyncio.Semaphore(self._max_workers)
        pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="karin-sweep")

        async def evaluate(label: str, func: Any, *args: Any) -> list[NotificationRequest]:
            async with slots:
                try:
                    return await asyncio.wait_for(
                        loop.run_in_executor(pool, func, *args), timeout=self._case_timeout
                    )
                except asyncio.TimeoutError:
                    logger.error("Sweep evaluation of %s timed out after %.1fs", label, self._case_timeout)
                    report.timed_out.append(label)
                except Exception:
                    logger.exception("Sweep evaluation of %s failed", label)
                    report.failed.append(label)
                return []

        requests: list[NotificationRequest] = []
        try:
            tenants = await resolve(self._store.list_tenants())
            report.tenants = len(tenants)
            for tenant_id in tenants:
                cases = await resolve(self._store.list_cases(tenant_id))
                recommendations = await resolve(self._store.list_recommendations(tenant_id))
                jobs = [
                    evaluate(f"case {tenant_id}/{case.id}", evaluate_case, case, calendar, today)
                    for case in cases
                ]
                jobs.extend(
                    evaluate(f"recommendation {tenant_id}/{rec.id}", evaluate_recommendation, rec, today)
                    for rec in recommendations
                )
                report.cases_evaluated += len(cases)
                report.recommendations_evaluated += len(recommendations)
                for result in await asyncio.gather(*jobs):
                    requests.extend(result)
        finally:
            # Abandon stuck evaluations instead of waiting on them.
            pool.shutdown(wait=False, cancel_futures=True)
        return requests

    async def _emit(self, request: NotificationRequest, today: date, report: SweepReport) -> None:
        key = request.dedupe_key
        if not await resolve(self._ledger.claim(key, today)):
            report.deduplicated += 1
            return
        try:
            notification = self._engine.dispatch(request)
        except Exception:
            logger.exception("Delivery of %s failed", key)
            await resolve(self._ledger.release(key, today))
            report.delivery_failures += 1
            return
        if notification.status == NotificationStatus.FAILED:
            logger.warning("Delivery of %s reported failure", key)
            await resolve(self._ledger.release(key, today))
            report.delivery_failures += 1
            return
        report.emitted += 1
