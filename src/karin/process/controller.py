"""Case process controller: the single entry point for mutating case state.

Every mutation loads the case, applies the change to a deep copy under a
per-case lock, appends an activity record to the copy and saves it in one
``save_case`` call. The state change and its activity record therefore
persist together or not at all. A configured AuditLogger receives a
mirror of each activity record after the save succeeds.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any

from karin.calendar.business import coerce_date, local_today
from karin.core.errors import NotFoundError, ValidationError
from karin.core.types import AuditEvent, DataClassification, DayUnit, StageType
from karin.governance.audit import AuditLogger
from karin.process.machine import StageStateMachine, coerce_close_reason
from karin.process.models import (
    ActivityKind,
    ActivityRecord,
    Case,
    CaseTimeline,
    ClassifiedDeadline,
    Deadline,
    DeadlineSummary,
    StageHistoryEntry,
    StageTimeline,
    TransitionPreview,
)
from karin.process.stages import (
    CASE_MARKERS,
    MAIN_SEQUENCE,
    STAGE_NAMES,
    CloseReason,
    StageId,
)
from karin.repositories import resolve

logger = logging.getLogger(__name__)

# Display order for timelines: subsanation sits right after reception.
TIMELINE_ORDER: tuple[StageId, ...] = (
    MAIN_SEQUENCE[:2] + (StageId.SUBSANATION,) + MAIN_SEQUENCE[2:]
)

Mutation = Callable[[Case], "ActivityRecord | None"]


class CaseProcessController:
    """Async façade over the stage machine, deadline set and case store.

    Args:
        store: A CaseStore or any CaseRepository implementation (sync or async).
        machine: The stage state machine, which also owns the business calendar.
        audit_logger: Optional hash-chained audit log mirroring every mutation.
        timezone_name: IANA zone used to resolve "today" when not given.
    """

    def __init__(
        self,
        store: Any,
        machine: StageStateMachine,
        audit_logger: AuditLogger | None = None,
        timezone_name: str | None = None,
    ) -> None:
        self._store = store
        self._machine = machine
        self._audit = audit_logger
        self._timezone_name = timezone_name
        # Entries disappear once no coroutine holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def machine(self) -> StageStateMachine:
        return self._machine

    def _lock(self, tenant_id: str, case_id: str) -> asyncio.Lock:
        key = (tenant_id, case_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _today(self, today: date | None) -> date:
        return coerce_date(today) if today is not None else local_today(self._timezone_name)

    # -- Reads --

    async def get_case(self, tenant_id: str, case_id: str) -> Case:
        case = await resolve(self._store.get_case(tenant_id, case_id))
        if case is None:
            raise NotFoundError(f"Unknown case {tenant_id}/{case_id}")
        return case

    async def get_timeline(
        self, tenant_id: str, case_id: str, today: date | None = None
    ) -> CaseTimeline:
        """Stage history plus classified deadlines grouped by stage.

        Deadlines are sorted by due date within each stage; stages follow
        procedure order and only stages with deadlines are listed.
        """
        case = await self.get_case(tenant_id, case_id)
        today = self._today(today)
        deadlines = self._machine.deadline_set(case)

        stages = []
        for stage in TIMELINE_ORDER:
            in_stage = sorted(deadlines.for_stage(stage), key=lambda d: (d.due_date, d.id))
            if not in_stage:
                continue
            stages.append(
                StageTimeline(
                    stage=stage,
                    name=STAGE_NAMES[stage],
                    deadlines=[
                        ClassifiedDeadline(
                            deadline=d,
                            alert_level=deadlines.classify(d, today),
                            days_remaining=deadlines.days_remaining(d, today),
                        )
                        for d in in_stage
                    ],
                )
            )
        return CaseTimeline(
            tenant_id=tenant_id,
            case_id=case_id,
            current_stage=case.current_stage,
            today=today,
            history=case.stage_history,
            stages=stages,
        )

    async def get_summary(
        self, tenant_id: str, case_id: str, today: date | None = None
    ) -> DeadlineSummary:
        case = await self.get_case(tenant_id, case_id)
        summary = self._machine.deadline_set(case).summary(self._today(today))
        summary.progress = self._machine.progress(case)
        return summary

    async def preview_transition(self, tenant_id: str, case_id: str) -> TransitionPreview:
        case = await self.get_case(tenant_id, case_id)
        return self._machine.preview(case)

    # -- Mutations --

    async def _mutate(self, tenant_id: str, case_id: str, mutation: Mutation) -> Case:
        async with self._lock(tenant_id, case_id):
            case = await self.get_case(tenant_id, case_id)
            working = case.model_copy(deep=True)
            activity = mutation(working)
            if activity is None:
                return case
            working.activities.append(activity)
            saved = await resolve(self._store.save_case(working))
        self._mirror(tenant_id, case_id, activity)
        return saved

    def _mirror(self, tenant_id: str, case_id: str, activity: ActivityRecord) -> None:
        if self._audit is None:
            return
        self._audit.log(
            AuditEvent(
                tenant_id=tenant_id,
                actor=activity.actor_id,
                action=activity.kind.value,
                resource=f"case:{case_id}",
                classification=DataClassification.SENSITIVE,
                details={"activity_id": activity.id, **activity.details},
            )
        )

    async def open_case(
        self,
        tenant_id: str,
        case_id: str,
        actor_id: str,
        is_legally_regulated: bool = True,
        facts: dict[str, Any] | None = None,
        case_markers: list[StageId] | None = None,
        now: datetime | None = None,
    ) -> Case:
        """Register a new case at ``complaint_filed``."""
        now = now or datetime.now(timezone.utc)
        markers = _coerce_markers(case_markers or [])
        _validate_facts(facts or {})

        async with self._lock(tenant_id, case_id):
            existing = await resolve(self._store.get_case(tenant_id, case_id))
            if existing is not None:
                raise ValidationError(f"Case {tenant_id}/{case_id} already exists")

            case = Case(
                tenant_id=tenant_id,
                id=case_id,
                is_legally_regulated=is_legally_regulated,
                stage_facts=dict(facts or {}),
                case_markers=markers,
                created_at=now,
                stage_history=[
                    StageHistoryEntry(stage=StageId.COMPLAINT_FILED, entered_at=now, actor_id=actor_id)
                ],
            )
            self._machine.enter_stage(case, StageId.COMPLAINT_FILED, now)
            activity = ActivityRecord(
                timestamp=now,
                actor_id=actor_id,
                kind=ActivityKind.CASE_OPENED,
                description="Case opened",
                details={"legally_regulated": is_legally_regulated},
            )
            case.activities.append(activity)
            saved = await resolve(self._store.save_case(case))
        self._mirror(tenant_id, case_id, activity)
        logger.info("Opened case %s/%s", tenant_id, case_id)
        return saved

    async def advance_stage(
        self,
        tenant_id: str,
        case_id: str,
        target: StageId | str,
        actor_id: str,
        notes: str = "",
        close_reason: CloseReason | None = None,
        now: datetime | None = None,
    ) -> Case:
        """Move the case to ``target``; re-submitting the current stage is a no-op."""
        now = now or datetime.now(timezone.utc)

        def mutation(case: Case) -> ActivityRecord | None:
            previous = case.current_stage
            if not self._machine.transition(case, target, actor_id, notes, now, close_reason):
                return None
            details: dict[str, Any] = {"from": previous.value, "to": case.current_stage.value}
            if case.close_reason is not None:
                details["close_reason"] = case.close_reason.value
            return ActivityRecord(
                timestamp=now,
                actor_id=actor_id,
                kind=ActivityKind.STAGE_CHANGED,
                description=f"{STAGE_NAMES[previous]} -> {STAGE_NAMES[case.current_stage]}",
                details=details,
            )

        return await self._mutate(tenant_id, case_id, mutation)

    async def complete_deadline(
        self,
        tenant_id: str,
        case_id: str,
        deadline_id: str,
        actor_id: str,
        now: datetime | None = None,
    ) -> Deadline:
        now = now or datetime.now(timezone.utc)

        def mutation(case: Case) -> ActivityRecord | None:
            deadlines = self._machine.deadline_set(case)
            if deadlines.get(deadline_id).completed:
                return None
            deadline = deadlines.complete(deadline_id, now, actor_id)
            return ActivityRecord(
                timestamp=now,
                actor_id=actor_id,
                kind=ActivityKind.DEADLINE_COMPLETED,
                description=f"Completed deadline {deadline.title!r}",
                details={"deadline_id": deadline_id},
            )

        case = await self._mutate(tenant_id, case_id, mutation)
        return _deadline(case, deadline_id)

    async def extend_deadline(
        self,
        tenant_id: str,
        case_id: str,
        deadline_id: str,
        additional_days: int,
        reason: str,
        actor_id: str,
        now: datetime | None = None,
    ) -> list[Deadline]:
        """Extend a deadline; returns it and every shifted dependent, in order."""
        now = now or datetime.now(timezone.utc)
        changed_ids: list[str] = []

        def mutation(case: Case) -> ActivityRecord:
            changed = self._machine.deadline_set(case).extend(
                deadline_id, additional_days, reason, actor_id, now
            )
            changed_ids.extend(d.id for d in changed)
            return ActivityRecord(
                timestamp=now,
                actor_id=actor_id,
                kind=ActivityKind.DEADLINE_EXTENDED,
                description=f"Extended deadline {changed[0].title!r} by {additional_days} days",
                details={
                    "deadline_id": deadline_id,
                    "additional_days": additional_days,
                    "reason": reason,
                    "shifted": changed_ids[1:],
                },
            )

        case = await self._mutate(tenant_id, case_id, mutation)
        return [_deadline(case, d_id) for d_id in changed_ids]

    async def add_custom_deadline(
        self,
        tenant_id: str,
        case_id: str,
        title: str,
        offset: int,
        actor_id: str,
        stage: StageId | None = None,
        trigger_date: date | None = None,
        day_unit: DayUnit = DayUnit.BUSINESS_DAYS,
        stage_type: StageType = StageType.OPTIONAL,
        description: str = "",
        legal_basis: str = "",
        depends_on: str | None = None,
        now: datetime | None = None,
    ) -> Deadline:
        """Add a manual deadline, by default to the current stage and anchored today."""
        now = now or datetime.now(timezone.utc)
        created: list[Deadline] = []

        def mutation(case: Case) -> ActivityRecord:
            deadline = self._machine.deadline_set(case).add_custom(
                title=title,
                stage=StageId(stage) if stage is not None else case.current_stage,
                offset=offset,
                trigger_date=trigger_date if trigger_date is not None else self._today(None),
                day_unit=day_unit,
                stage_type=stage_type,
                description=description,
                legal_basis=legal_basis,
                depends_on=depends_on,
            )
            created.append(deadline)
            return ActivityRecord(
                timestamp=now,
                actor_id=actor_id,
                kind=ActivityKind.DEADLINE_ADDED,
                description=f"Added deadline {deadline.title!r}",
                details={"deadline_id": deadline.id, "due_date": deadline.due_date.isoformat()},
            )

        case = await self._mutate(tenant_id, case_id, mutation)
        return _deadline(case, created[0].id)

    async def record_facts(
        self,
        tenant_id: str,
        case_id: str,
        facts: dict[str, Any],
        actor_id: str,
        now: datetime | None = None,
    ) -> Case:
        """Merge ``facts`` into the case's stage facts."""
        now = now or datetime.now(timezone.utc)
        if not facts:
            raise ValidationError("No facts to record")
        _validate_facts(facts)

        def mutation(case: Case) -> ActivityRecord:
            case.stage_facts.update(facts)
            return ActivityRecord(
                timestamp=now,
                actor_id=actor_id,
                kind=ActivityKind.FACTS_RECORDED,
                description="Recorded " + ", ".join(sorted(facts)),
                details={"facts": sorted(facts)},
            )

        return await self._mutate(tenant_id, case_id, mutation)

    async def mark_case_type(
        self,
        tenant_id: str,
        case_id: str,
        marker: StageId | str,
        actor_id: str,
        now: datetime | None = None,
    ) -> Case:
        """Annotate the case as third-party or subcontracting."""
        now = now or datetime.now(timezone.utc)
        marker = _coerce_markers([marker])[0]

        def mutation(case: Case) -> ActivityRecord | None:
            if marker in case.case_markers:
                return None
            case.case_markers.append(marker)
            return ActivityRecord(
                timestamp=now,
                actor_id=actor_id,
                kind=ActivityKind.CASE_MARKED,
                description=f"Marked as {STAGE_NAMES[marker]}",
                details={"marker": marker.value},
            )

        return await self._mutate(tenant_id, case_id, mutation)

    async def recalculate_deadlines(
        self,
        tenant_id: str,
        case_id: str,
        actor_id: str = "system",
        now: datetime | None = None,
    ) -> list[Deadline]:
        """Recompute cached due dates, e.g. after the holiday set changed."""
        now = now or datetime.now(timezone.utc)
        moved_ids: list[str] = []

        def mutation(case: Case) -> ActivityRecord | None:
            moved = self._machine.deadline_set(case).recalculate()
            if not moved:
                return None
            moved_ids.extend(d.id for d in moved)
            return ActivityRecord(
                timestamp=now,
                actor_id=actor_id,
                kind=ActivityKind.DEADLINES_RECALCULATED,
                description=f"Recalculated {len(moved)} deadlines",
                details={"deadline_ids": list(moved_ids)},
            )

        case = await self._mutate(tenant_id, case_id, mutation)
        return [_deadline(case, d_id) for d_id in moved_ids]


def _validate_facts(facts: dict[str, Any]) -> None:
    if facts.get("close_reason") is not None:
        coerce_close_reason(facts["close_reason"])


def _coerce_markers(values: list[StageId | str]) -> list[StageId]:
    markers = []
    for value in values:
        if value not in {m.value for m in CASE_MARKERS}:
            raise ValidationError(f"Unknown case marker {value!r}")
        markers.append(StageId(value))
    return markers


def _deadline(case: Case, deadline_id: str) -> Deadline:
    deadline = case.get_deadline(deadline_id)
    if deadline is None:
        raise NotFoundError(f"Unknown deadline {deadline_id!r}")
    return deadline
