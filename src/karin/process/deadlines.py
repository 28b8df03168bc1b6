"""Deadline set for a single case: instantiation, completion, extension and alerts."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone
from typing import Any

from karin.calendar.business import BusinessCalendar, coerce_date
from karin.core.errors import (
    AlreadyInitializedError,
    InvalidArgumentError,
    NotFoundError,
    TemplateConfigError,
    ValidationError,
)
from karin.core.types import AlertLevel, DayUnit, StageType
from karin.process.models import (
    Deadline,
    DeadlineExtension,
    DeadlineSummary,
    DeadlineTemplate,
)
from karin.process.stages import StageId

logger = logging.getLogger(__name__)

# Upper bounds (inclusive) in business days for each proximity level.
CRITICAL_THRESHOLD = 1
WARNING_THRESHOLD = 3
INFO_THRESHOLD = 5


class DeadlineSet:
    """Operates on the deadline list owned by one case.

    The list is mutated in place; callers that need all-or-nothing
    semantics work on a copy of the case (see CaseProcessController).
    """

    def __init__(self, deadlines: list[Deadline], calendar: BusinessCalendar) -> None:
        self._deadlines = deadlines
        self._calendar = calendar

    @property
    def deadlines(self) -> list[Deadline]:
        return self._deadlines

    @property
    def calendar(self) -> BusinessCalendar:
        return self._calendar

    # -- Lookup --

    def get(self, deadline_id: str) -> Deadline:
        for deadline in self._deadlines:
            if deadline.id == deadline_id:
                return deadline
        raise NotFoundError(f"Unknown deadline {deadline_id!r}")

    def find_by_template(self, template_id: str) -> Deadline | None:
        for deadline in self._deadlines:
            if deadline.template_id == template_id and not deadline.obsolete:
                return deadline
        return None

    def for_stage(self, stage: StageId) -> list[Deadline]:
        return [d for d in self._deadlines if d.stage == stage]

    def has_stage(self, stage: StageId) -> bool:
        """True when template deadlines were already created for ``stage``."""
        return any(d.stage == stage and not d.is_custom for d in self._deadlines)

    def pending_mandatory(self, stage: StageId) -> list[Deadline]:
        return [
            d for d in self._deadlines
            if d.stage == stage
            and d.stage_type == StageType.MANDATORY
            and not d.completed
            and not d.obsolete
        ]

    # -- Due date arithmetic --

    def compute_due_date(self, deadline: Deadline) -> date:
        return self._calendar.add_days(
            deadline.trigger_date,
            deadline.offset + deadline.total_shift,
            deadline.day_unit,
        )

    def recalculate(self) -> list[Deadline]:
        """Recompute every cached due date; returns the deadlines that moved.

        Parents are recomputed before their dependents, and each dependent's
        trigger is re-anchored on its parent's recomputed due date. Parent
        extensions applied after the dependent existed reach it through its
        own propagated extension records, so only ``anchor_shift`` is added
        to the parent's base date.
        """
        changed = []
        for deadline, parent in self._recalculation_order():
            if parent is not None:
                deadline.trigger_date = self._calendar.add_days(
                    parent.trigger_date,
                    parent.offset + deadline.anchor_shift,
                    parent.day_unit,
                )
            due = self.compute_due_date(deadline)
            if due != deadline.due_date:
                deadline.due_date = due
                changed.append(deadline)
        return changed

    def _recalculation_order(self) -> list[tuple[Deadline, Deadline | None]]:
        parents = {}
        for deadline in self._deadlines:
            for dependent_id in deadline.dependents:
                parents[dependent_id] = deadline

        order = []
        visited = set()
        queue = deque((d, None) for d in self._deadlines if d.id not in parents)
        while queue:
            deadline, parent = queue.popleft()
            if deadline.id in visited:
                continue
            visited.add(deadline.id)
            order.append((deadline, parent))
            queue.extend((self.get(dependent_id), deadline) for dependent_id in deadline.dependents)
        return order

    # -- Creation --

    def instantiate(
        self,
        stage: StageId,
        templates: Iterable[DeadlineTemplate],
        trigger_date: date,
        facts: dict[str, Any] | None = None,
    ) -> list[Deadline]:
        """Create the concrete deadlines of ``stage`` from its templates.

        Each template's trigger is, in order of precedence: the stage fact
        named by ``anchor_fact``, the due date of the deadline it depends on
        (when present in the case), or ``trigger_date``.

        Raises:
            AlreadyInitializedError: If template deadlines exist for ``stage``.
        """
        trigger_date = coerce_date(trigger_date)
        facts = facts or {}
        if self.has_stage(stage):
            raise AlreadyInitializedError(stage)

        pending = [t for t in templates if t.stage == stage]
        created: list[Deadline] = []
        batch_ids = {t.id for t in pending}

        while pending:
            progressed = False
            for template in list(pending):
                waiting_on_batch = (
                    template.depends_on in batch_ids
                    and self.find_by_template(template.depends_on) is None
                )
                if waiting_on_batch:
                    continue
                created.append(self._create_from_template(template, trigger_date, facts))
                pending.remove(template)
                progressed = True
            if not progressed:
                # Registry rejects cycles at load time; only reachable with ad-hoc lists.
                raise TemplateConfigError(
                    f"Unresolvable template dependencies for stage {stage!r}: "
                    f"{[t.id for t in pending]}"
                )

        logger.debug("Instantiated %d deadlines for stage %s", len(created), stage)
        return created

    def _create_from_template(
        self,
        template: DeadlineTemplate,
        trigger_date: date,
        facts: dict[str, Any],
    ) -> Deadline:
        trigger = trigger_date
        parent = None
        if template.anchor_fact and facts.get(template.anchor_fact) is not None:
            trigger = coerce_date(facts[template.anchor_fact])
        elif template.depends_on:
            parent = self.find_by_template(template.depends_on)
            if parent is not None:
                trigger = parent.due_date

        deadline_id = template.id
        if any(d.id == deadline_id for d in self._deadlines):
            deadline_id = f"{template.id}-{uuid.uuid4().hex[:8]}"

        deadline = Deadline(
            id=deadline_id,
            title=template.title,
            description=template.description,
            stage=template.stage,
            stage_type=template.stage_type,
            legal_basis=template.legal_basis,
            next_action=template.next_action,
            external_entity=template.external_entity,
            trigger_date=trigger,
            day_unit=template.day_unit,
            offset=template.offset,
            due_date=self._calendar.add_days(trigger, template.offset, template.day_unit),
            template_id=template.id,
            max_extension_days=template.max_extension_days,
            anchor_shift=parent.total_shift if parent is not None else 0,
        )
        self._deadlines.append(deadline)
        if parent is not None:
            parent.dependents.append(deadline.id)
        return deadline

    def add_custom(
        self,
        title: str,
        stage: StageId,
        offset: int,
        trigger_date: date,
        day_unit: DayUnit = DayUnit.BUSINESS_DAYS,
        stage_type: StageType = StageType.OPTIONAL,
        description: str = "",
        legal_basis: str = "",
        depends_on: str | None = None,
    ) -> Deadline:
        """Add a manually authored deadline.

        When ``depends_on`` names an existing deadline, its due date becomes
        the trigger and the new deadline is registered as its dependent.
        """
        if not title or not title.strip():
            raise ValidationError("A custom deadline needs a title")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise InvalidArgumentError(f"Offset must be a non-negative integer, got {offset!r}")

        parent = self.get(depends_on) if depends_on else None
        trigger = parent.due_date if parent is not None else coerce_date(trigger_date)

        deadline = Deadline(
            id=f"custom-{uuid.uuid4().hex[:12]}",
            title=title.strip(),
            description=description,
            stage=stage,
            stage_type=stage_type,
            legal_basis=legal_basis,
            trigger_date=trigger,
            day_unit=day_unit,
            offset=offset,
            due_date=self._calendar.add_days(trigger, offset, day_unit),
            anchor_shift=parent.total_shift if parent is not None else 0,
        )
        self._deadlines.append(deadline)
        if parent is not None:
            parent.dependents.append(deadline.id)
        return deadline

    # -- Mutation --

    def complete(
        self,
        deadline_id: str,
        completed_at: datetime | None = None,
        actor_id: str | None = None,
    ) -> Deadline:
        """Mark a deadline completed. Completing it again changes nothing."""
        deadline = self.get(deadline_id)
        if deadline.completed:
            return deadline
        deadline.completed = True
        deadline.completed_at = completed_at or datetime.now(timezone.utc)
        deadline.completed_by = actor_id
        return deadline

    def extend(
        self,
        deadline_id: str,
        additional_days: int,
        reason: str,
        actor_id: str,
        applied_at: datetime | None = None,
    ) -> list[Deadline]:
        """Extend a deadline and shift all its transitive dependents.

        Every affected deadline is shifted by ``additional_days`` in its own
        day unit. Returns the changed deadlines in recalculation order:
        the target first, then dependents breadth-first.
        """
        if isinstance(additional_days, bool) or not isinstance(additional_days, int):
            raise ValidationError(f"Additional days must be an integer, got {additional_days!r}")
        if additional_days <= 0:
            raise ValidationError("Additional days must be greater than zero")
        if not reason or not reason.strip():
            raise ValidationError("An extension requires a reason")

        target = self.get(deadline_id)
        if target.completed:
            raise ValidationError(f"Deadline {deadline_id!r} is already completed")
        if target.obsolete:
            raise ValidationError(f"Deadline {deadline_id!r} is obsolete")
        if target.max_extension_days is not None:
            requested_total = target.direct_extension_days + additional_days
            if requested_total > target.max_extension_days:
                raise ValidationError(
                    f"Extension of {additional_days} days exceeds the maximum of "
                    f"{target.max_extension_days} days for {deadline_id!r} "
                    f"({target.direct_extension_days} already granted)"
                )

        order = self._propagation_order(target)
        applied_at = applied_at or datetime.now(timezone.utc)
        changed = []
        for deadline in order:
            deadline.extensions.append(
                DeadlineExtension(
                    additional_days=additional_days,
                    reason=reason.strip(),
                    actor_id=actor_id,
                    applied_at=applied_at,
                    source_deadline_id=None if deadline is target else target.id,
                )
            )
            deadline.due_date = self.compute_due_date(deadline)
            changed.append(deadline)
        return changed

    def _propagation_order(self, target: Deadline) -> list[Deadline]:
        """Breadth-first list of ``target`` and its transitive dependents."""
        order = [target]
        visited = {target.id}
        queue = deque([target])
        while queue:
            current = queue.popleft()
            for dependent_id in current.dependents:
                if dependent_id in visited:
                    continue
                visited.add(dependent_id)
                dependent = self.get(dependent_id)
                order.append(dependent)
                queue.append(dependent)
        return order

    def mark_obsolete(self, predicate: Callable[[Deadline], bool]) -> list[Deadline]:
        marked = []
        for deadline in self._deadlines:
            if not deadline.obsolete and predicate(deadline):
                deadline.obsolete = True
                marked.append(deadline)
        return marked

    # -- Alerts --

    def days_remaining(self, deadline: Deadline, today: date) -> int:
        """Business days from ``today`` to the due date (negative when overdue)."""
        return self._calendar.count_days_between(
            coerce_date(today), deadline.due_date, DayUnit.BUSINESS_DAYS
        )

    def classify(self, deadline: Deadline, today: date) -> AlertLevel:
        """Alert level of ``deadline`` on ``today``.

        Proximity is always judged in business days, whatever the
        deadline's own day unit.
        """
        today = coerce_date(today)
        if deadline.completed:
            return AlertLevel.COMPLETED
        if today > deadline.due_date:
            return AlertLevel.OVERDUE

        remaining = self.days_remaining(deadline, today)
        if remaining <= CRITICAL_THRESHOLD:
            return AlertLevel.CRITICAL
        if remaining <= WARNING_THRESHOLD:
            return AlertLevel.WARNING
        if remaining <= INFO_THRESHOLD:
            return AlertLevel.INFO
        return AlertLevel.NORMAL

    def summary(self, today: date) -> DeadlineSummary:
        summary = DeadlineSummary()
        live = []
        for deadline in self._deadlines:
            if deadline.obsolete:
                summary.obsolete += 1
                continue
            live.append(deadline)
            if deadline.is_extended:
                summary.extended += 1
            level = self.classify(deadline, today)
            setattr(summary, level.value, getattr(summary, level.value) + 1)

        summary.total = len(live)
        if live:
            summary.completion_rate = round(summary.completed / len(live) * 100)
        pending = [d for d in live if not d.completed]
        if pending:
            summary.next_deadline = min(pending, key=lambda d: (d.due_date, d.id))
        return summary
