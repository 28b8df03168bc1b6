"""Stage state machine for Ley Karin cases.

Advancing a case is strictly one stage at a time along the stage graph:
no skipping ahead and no moving back. Leaving a stage requires its exit
guard to pass; entering a stage instantiates its deadline templates.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from karin.calendar.business import BusinessCalendar, coerce_date
from karin.core.errors import IllegalTransitionError, PreconditionNotMetError, ValidationError
from karin.process.deadlines import DeadlineSet
from karin.process.guards import check_exit
from karin.process.models import Case, StageHistoryEntry, TransitionPreview
from karin.process.stages import (
    MAIN_SEQUENCE,
    StageId,
    StageNode,
    CloseReason,
    build_stage_graph,
    stage_position,
)
from karin.process.templates import TemplateRegistry

logger = logging.getLogger(__name__)


def coerce_close_reason(value: CloseReason | str) -> CloseReason:
    try:
        return CloseReason(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown close reason {value!r}") from exc


class StageStateMachine:
    """Validates and applies stage transitions on a case."""

    def __init__(
        self,
        registry: TemplateRegistry,
        calendar: BusinessCalendar,
        enforce_mandatory_deadlines: bool = True,
        graph: dict[StageId, StageNode] | None = None,
    ) -> None:
        self._registry = registry
        self._calendar = calendar
        self._enforce_mandatory = enforce_mandatory_deadlines
        self._graph = graph if graph is not None else build_stage_graph()

    @property
    def registry(self) -> TemplateRegistry:
        return self._registry

    @property
    def calendar(self) -> BusinessCalendar:
        return self._calendar

    def refresh_calendar(self, calendar: BusinessCalendar) -> None:
        """Swap in a calendar with a reloaded holiday set."""
        self._calendar = calendar

    def deadline_set(self, case: Case) -> DeadlineSet:
        return DeadlineSet(case.deadlines, self._calendar)

    def next_stage(self, case: Case) -> StageId | None:
        """The only stage the case may move to, or None when terminal."""
        node = self._graph.get(case.current_stage)
        if node is None:
            return None
        for rule in node.branches:
            if rule.condition.holds(case.stage_facts):
                return rule.next_stage
        return node.next_stage

    def evaluate_guards(self, case: Case) -> list[str]:
        """Every unmet precondition for leaving the current stage."""
        missing = list(check_exit(case.current_stage, case.stage_facts))
        if self._enforce_mandatory:
            for deadline in self.deadline_set(case).pending_mandatory(case.current_stage):
                missing.append(f"Complete mandatory deadline {deadline.title!r}")
        return missing

    def preview(self, case: Case) -> TransitionPreview:
        nxt = self.next_stage(case)
        missing = self.evaluate_guards(case) if nxt is not None else []
        return TransitionPreview(
            current_stage=case.current_stage,
            next_stage=nxt,
            can_advance=nxt is not None and not missing,
            missing=missing,
        )

    def transition(
        self,
        case: Case,
        target: StageId | str,
        actor_id: str,
        notes: str = "",
        now: datetime | None = None,
        close_reason: CloseReason | None = None,
    ) -> bool:
        """Move ``case`` to ``target`` in place.

        Returns False when the case is already at ``target`` (nothing
        changes), True when the transition was applied.

        Raises:
            IllegalTransitionError: If ``target`` is not the next allowed stage.
            PreconditionNotMetError: If any exit guard of the current stage fails.
        """
        try:
            target = StageId(target)
        except ValueError as exc:
            raise ValidationError(f"Unknown stage {target!r}") from exc

        if target == case.current_stage:
            return False

        expected = self.next_stage(case)
        if expected is None or target != expected:
            raise IllegalTransitionError(case.current_stage, target, expected)

        missing = self.evaluate_guards(case)
        if missing:
            raise PreconditionNotMetError(case.current_stage, missing)
        if target == StageId.CLOSED:
            close_reason = self._resolve_close_reason(case, close_reason)

        now = now or datetime.now(timezone.utc)
        previous = case.current_stage
        case.stage_history.append(
            StageHistoryEntry(stage=target, from_stage=previous, entered_at=now, actor_id=actor_id, notes=notes)
        )
        case.current_stage = target
        self.enter_stage(case, target, now)

        if target == StageId.CLOSED:
            self._close(case, close_reason)

        logger.info(
            "Case %s/%s moved from %s to %s by %s",
            case.tenant_id, case.id, previous, target, actor_id,
        )
        return True

    def enter_stage(self, case: Case, stage: StageId, now: datetime) -> None:
        """Instantiate the stage's deadline templates unless already present."""
        deadlines = self.deadline_set(case)
        templates = self._registry.for_stage(stage)
        if not templates or deadlines.has_stage(stage):
            return
        deadlines.instantiate(stage, templates, coerce_date(now), case.stage_facts)

    def _resolve_close_reason(self, case: Case, close_reason: CloseReason | str | None) -> CloseReason:
        if close_reason is not None:
            return coerce_close_reason(close_reason)
        recorded = case.stage_facts.get("close_reason")
        if recorded:
            return coerce_close_reason(recorded)
        if case.current_stage == StageId.MEASURES_ADOPTION:
            return CloseReason.NO_SANCTIONS
        return CloseReason.RESOLVED

    def _close(self, case: Case, close_reason: CloseReason) -> None:
        case.close_reason = close_reason
        obsolete = self.deadline_set(case).mark_obsolete(lambda d: not d.completed)
        if obsolete:
            logger.info(
                "Case %s/%s closed; %d pending deadlines marked obsolete",
                case.tenant_id, case.id, len(obsolete),
            )

    def progress(self, case: Case) -> int:
        """Percentage of the main sequence already covered."""
        return round(stage_position(case.current_stage) / (len(MAIN_SEQUENCE) - 1) * 100)
