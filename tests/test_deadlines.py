"""Tests for DeadlineSet: instantiation, extension propagation and alert levels."""

from __future__ import annotations

from datetime import date

import pytest

from karin.calendar.business import BusinessCalendar
from karin.core.errors import (
    AlreadyInitializedError,
    InvalidArgumentError,
    NotFoundError,
    TemplateConfigError,
    ValidationError,
)
from karin.core.types import AlertLevel, DayUnit, StageType
from karin.process.deadlines import DeadlineSet
from karin.process.models import DeadlineTemplate
from karin.process.stages import StageId
from karin.process.templates import TemplateRegistry

from conftest import MONDAY, NOW

THURSDAY = date(2025, 3, 6)
NEXT_MONDAY = date(2025, 3, 10)


def _templates() -> list[DeadlineTemplate]:
    # Declared child-first to exercise ordering inside a batch.
    return [
        DeadlineTemplate(
            id="child", stage=StageId.INVESTIGATION, title="Child", offset=2,
            depends_on="parent", max_extension_days=2,
        ),
        DeadlineTemplate(
            id="parent", stage=StageId.INVESTIGATION, title="Parent", offset=3,
            max_extension_days=5,
        ),
        DeadlineTemplate(
            id="grandchild", stage=StageId.INVESTIGATION, title="Grandchild", offset=1,
            depends_on="child", stage_type=StageType.OPTIONAL,
        ),
    ]


@pytest.fixture
def deadlines(calendar: BusinessCalendar) -> DeadlineSet:
    dset = DeadlineSet([], calendar)
    dset.instantiate(StageId.INVESTIGATION, _templates(), MONDAY)
    return dset


class TestInstantiate:
    def test_due_dates_follow_dependencies(self, deadlines: DeadlineSet) -> None:
        assert deadlines.get("parent").due_date == THURSDAY
        assert deadlines.get("child").trigger_date == THURSDAY
        assert deadlines.get("child").due_date == NEXT_MONDAY
        assert deadlines.get("grandchild").due_date == date(2025, 3, 11)

    def test_dependents_are_registered(self, deadlines: DeadlineSet) -> None:
        assert deadlines.get("parent").dependents == ["child"]
        assert deadlines.get("child").dependents == ["grandchild"]

    def test_second_instantiation_is_rejected(self, deadlines: DeadlineSet) -> None:
        with pytest.raises(AlreadyInitializedError):
            deadlines.instantiate(StageId.INVESTIGATION, _templates(), MONDAY)
        assert len(deadlines.deadlines) == 3

    def test_anchor_fact_overrides_trigger(self, calendar: BusinessCalendar) -> None:
        template = DeadlineTemplate(
            id="dt", stage=StageId.RECEPTION, title="DT", offset=3, anchor_fact="received_date",
        )
        dset = DeadlineSet([], calendar)
        (created,) = dset.instantiate(
            StageId.RECEPTION, [template], NEXT_MONDAY, {"received_date": "2025-03-03"}
        )
        assert created.trigger_date == MONDAY
        assert created.due_date == THURSDAY

    def test_missing_anchor_fact_falls_back_to_trigger(self, calendar: BusinessCalendar) -> None:
        template = DeadlineTemplate(
            id="dt", stage=StageId.RECEPTION, title="DT", offset=3, anchor_fact="received_date",
        )
        dset = DeadlineSet([], calendar)
        (created,) = dset.instantiate(StageId.RECEPTION, [template], MONDAY, {})
        assert created.trigger_date == MONDAY

    def test_unresolvable_batch_is_a_template_error(self, calendar: BusinessCalendar) -> None:
        looping = [
            DeadlineTemplate(id="a", stage=StageId.INVESTIGATION, title="A", offset=1, depends_on="b"),
            DeadlineTemplate(id="b", stage=StageId.INVESTIGATION, title="B", offset=1, depends_on="a"),
        ]
        dset = DeadlineSet([], calendar)
        with pytest.raises(TemplateConfigError, match="Unresolvable"):
            dset.instantiate(StageId.INVESTIGATION, looping, MONDAY)
        assert dset.deadlines == []

    def test_templates_of_other_stages_are_ignored(self, calendar: BusinessCalendar) -> None:
        dset = DeadlineSet([], calendar)
        assert dset.instantiate(StageId.RECEPTION, _templates(), MONDAY) == []

    def test_calendar_days_ignore_weekends(self, calendar: BusinessCalendar) -> None:
        template = DeadlineTemplate(
            id="m", stage=StageId.MEASURES_ADOPTION, title="M", offset=15,
            day_unit=DayUnit.CALENDAR_DAYS,
        )
        dset = DeadlineSet([], calendar)
        (created,) = dset.instantiate(StageId.MEASURES_ADOPTION, [template], MONDAY)
        assert created.due_date == date(2025, 3, 18)


class TestExtend:
    def test_extension_shifts_target_and_dependents(self, deadlines: DeadlineSet) -> None:
        changed = deadlines.extend("parent", 2, "More interviews", "inv-1", applied_at=NOW)

        assert [d.id for d in changed] == ["parent", "child", "grandchild"]
        assert deadlines.get("parent").due_date == NEXT_MONDAY
        assert deadlines.get("child").due_date == date(2025, 3, 12)
        assert deadlines.get("grandchild").due_date == date(2025, 3, 13)

    def test_propagated_extensions_record_their_source(self, deadlines: DeadlineSet) -> None:
        deadlines.extend("parent", 2, "More interviews", "inv-1")
        assert deadlines.get("parent").extensions[0].source_deadline_id is None
        assert deadlines.get("child").extensions[0].source_deadline_id == "parent"
        assert deadlines.get("child").extensions[0].reason == "More interviews"

    def test_unrelated_deadlines_do_not_move(self, deadlines: DeadlineSet) -> None:
        other = deadlines.add_custom("Other", StageId.INVESTIGATION, 4, MONDAY)
        before = other.due_date
        deadlines.extend("parent", 2, "reason", "inv-1")
        assert deadlines.get(other.id).due_date == before

    def test_maximum_counts_direct_extensions_only(self, deadlines: DeadlineSet) -> None:
        deadlines.extend("parent", 3, "first", "inv-1")
        with pytest.raises(ValidationError, match="maximum"):
            deadlines.extend("parent", 3, "second", "inv-1")
        # child received 3 propagated days but still has its own 2 available
        deadlines.extend("child", 2, "own", "inv-1")
        with pytest.raises(ValidationError):
            deadlines.extend("child", 1, "too much", "inv-1")

    def test_completed_deadline_cannot_be_extended(self, deadlines: DeadlineSet) -> None:
        deadlines.complete("parent", NOW, "inv-1")
        with pytest.raises(ValidationError, match="completed"):
            deadlines.extend("parent", 1, "late", "inv-1")

    @pytest.mark.parametrize("days", [0, -2, 1.5, True])
    def test_invalid_day_counts(self, deadlines: DeadlineSet, days) -> None:
        with pytest.raises(ValidationError):
            deadlines.extend("parent", days, "reason", "inv-1")

    def test_reason_is_required(self, deadlines: DeadlineSet) -> None:
        with pytest.raises(ValidationError, match="reason"):
            deadlines.extend("parent", 1, "   ", "inv-1")

    def test_unknown_deadline(self, deadlines: DeadlineSet) -> None:
        with pytest.raises(NotFoundError):
            deadlines.extend("ghost", 1, "reason", "inv-1")

    def test_recalculate_is_stable_after_extension(self, deadlines: DeadlineSet) -> None:
        deadlines.extend("parent", 2, "reason", "inv-1")
        assert deadlines.recalculate() == []

    def test_recalculate_picks_up_new_holidays(self, deadlines: DeadlineSet) -> None:
        holiday_set = DeadlineSet(deadlines.deadlines, BusinessCalendar([date(2025, 3, 5)]))
        changed = holiday_set.recalculate()
        assert "parent" in [d.id for d in changed]
        assert holiday_set.get("parent").due_date == date(2025, 3, 7)

    def test_recalculate_reanchors_dependents(self, deadlines: DeadlineSet) -> None:
        holiday_set = DeadlineSet(deadlines.deadlines, BusinessCalendar([date(2025, 3, 5)]))
        holiday_set.recalculate()
        child = holiday_set.get("child")
        assert child.trigger_date == date(2025, 3, 7)
        assert child.due_date == date(2025, 3, 11)
        assert holiday_set.get("grandchild").trigger_date == date(2025, 3, 11)
        assert holiday_set.get("grandchild").due_date == date(2025, 3, 12)

    def test_recalculate_keeps_extensions_granted_before_dependent_existed(
        self, deadlines: DeadlineSet
    ) -> None:
        deadlines.extend("parent", 2, "reason", "inv-1")
        late = deadlines.add_custom("Late", StageId.INVESTIGATION, 1, MONDAY, depends_on="parent")
        assert late.trigger_date == NEXT_MONDAY
        assert late.anchor_shift == 2
        assert deadlines.recalculate() == []

        holiday_set = DeadlineSet(deadlines.deadlines, BusinessCalendar([date(2025, 3, 5)]))
        holiday_set.recalculate()
        assert holiday_set.get("parent").due_date == date(2025, 3, 11)
        assert late.trigger_date == date(2025, 3, 11)
        assert late.due_date == date(2025, 3, 12)


class TestCompleteAndCustom:
    def test_complete_is_idempotent(self, deadlines: DeadlineSet) -> None:
        first = deadlines.complete("parent", NOW, "inv-1")
        completed_at = first.completed_at
        again = deadlines.complete("parent", None, "someone-else")
        assert again.completed_at == completed_at
        assert again.completed_by == "inv-1"

    def test_custom_deadline_defaults(self, deadlines: DeadlineSet) -> None:
        custom = deadlines.add_custom("  Call witness  ", StageId.INVESTIGATION, 3, MONDAY)
        assert custom.id.startswith("custom-")
        assert custom.title == "Call witness"
        assert custom.stage_type == StageType.OPTIONAL
        assert custom.is_custom
        assert custom.due_date == THURSDAY

    def test_custom_deadline_can_depend_on_existing(self, deadlines: DeadlineSet) -> None:
        custom = deadlines.add_custom("Follow up", StageId.INVESTIGATION, 1, MONDAY, depends_on="parent")
        assert custom.trigger_date == THURSDAY
        assert custom.id in deadlines.get("parent").dependents

        deadlines.extend("parent", 2, "reason", "inv-1")
        assert deadlines.get(custom.id).due_date == date(2025, 3, 11)

    def test_custom_requires_title(self, deadlines: DeadlineSet) -> None:
        with pytest.raises(ValidationError):
            deadlines.add_custom(" ", StageId.INVESTIGATION, 3, MONDAY)

    def test_custom_rejects_negative_offset(self, deadlines: DeadlineSet) -> None:
        with pytest.raises(InvalidArgumentError):
            deadlines.add_custom("x", StageId.INVESTIGATION, -1, MONDAY)

    def test_custom_does_not_block_template_instantiation(self, calendar: BusinessCalendar) -> None:
        dset = DeadlineSet([], calendar)
        dset.add_custom("Early note", StageId.INVESTIGATION, 2, MONDAY)
        created = dset.instantiate(StageId.INVESTIGATION, _templates(), MONDAY)
        assert len(created) == 3


class TestClassify:
    @pytest.mark.parametrize(
        "offset, level",
        [
            (0, AlertLevel.CRITICAL),
            (1, AlertLevel.CRITICAL),
            (2, AlertLevel.WARNING),
            (3, AlertLevel.WARNING),
            (4, AlertLevel.INFO),
            (5, AlertLevel.INFO),
            (10, AlertLevel.NORMAL),
        ],
    )
    def test_levels(self, calendar: BusinessCalendar, offset: int, level: AlertLevel) -> None:
        dset = DeadlineSet([], calendar)
        deadline = dset.add_custom("x", StageId.INVESTIGATION, offset, MONDAY)
        assert dset.classify(deadline, MONDAY) == level

    def test_overdue(self, calendar: BusinessCalendar) -> None:
        dset = DeadlineSet([], calendar)
        deadline = dset.add_custom("x", StageId.INVESTIGATION, 1, MONDAY)
        assert dset.classify(deadline, date(2025, 3, 5)) == AlertLevel.OVERDUE
        assert dset.days_remaining(deadline, date(2025, 3, 5)) == -1

    def test_completed_wins_over_overdue(self, calendar: BusinessCalendar) -> None:
        dset = DeadlineSet([], calendar)
        deadline = dset.add_custom("x", StageId.INVESTIGATION, 1, MONDAY)
        dset.complete(deadline.id, NOW)
        assert dset.classify(deadline, date(2025, 4, 1)) == AlertLevel.COMPLETED

    def test_calendar_day_deadline_is_judged_in_business_days(self, calendar: BusinessCalendar) -> None:
        dset = DeadlineSet([], calendar)
        # Friday + 3 calendar days = Monday: one business day away on Friday.
        deadline = dset.add_custom(
            "x", StageId.MEASURES_ADOPTION, 3, date(2025, 3, 7), day_unit=DayUnit.CALENDAR_DAYS
        )
        assert deadline.due_date == NEXT_MONDAY
        assert dset.classify(deadline, date(2025, 3, 7)) == AlertLevel.CRITICAL


class TestSummary:
    def test_summary_counts(self, deadlines: DeadlineSet) -> None:
        deadlines.complete("parent", NOW)
        deadlines.extend("child", 1, "reason", "inv-1")
        deadlines.mark_obsolete(lambda d: d.id == "grandchild")

        summary = deadlines.summary(MONDAY)
        assert summary.total == 2
        assert summary.completed == 1
        assert summary.obsolete == 1
        assert summary.extended == 1
        assert summary.completion_rate == 50
        assert summary.next_deadline.id == "child"

    def test_empty_summary(self, calendar: BusinessCalendar) -> None:
        summary = DeadlineSet([], calendar).summary(MONDAY)
        assert summary.total == 0
        assert summary.completion_rate == 0
        assert summary.next_deadline is None


class TestPrecautionaryScenario:
    def test_monday_plus_three_then_extension(self, registry: TemplateRegistry, calendar: BusinessCalendar) -> None:
        dset = DeadlineSet([], calendar)
        (measures,) = dset.instantiate(
            StageId.PRECAUTIONARY_MEASURES, registry.for_stage(StageId.PRECAUTIONARY_MEASURES), MONDAY
        )
        follow_up = dset.add_custom(
            "Verificar medidas", StageId.PRECAUTIONARY_MEASURES, 2, MONDAY, depends_on=measures.id
        )
        assert measures.due_date == THURSDAY
        before = follow_up.due_date

        dset.extend(measures.id, 2, "additional evidence", "inv-1")
        assert measures.due_date == NEXT_MONDAY
        assert calendar.count_days_between(before, follow_up.due_date) == 2

    def test_template_guidance_is_carried_onto_deadlines(
        self, registry: TemplateRegistry, calendar: BusinessCalendar
    ) -> None:
        dset = DeadlineSet([], calendar)
        (pronouncement,) = dset.instantiate(
            StageId.DT_SUBMISSION, registry.for_stage(StageId.DT_SUBMISSION), MONDAY
        )
        assert pronouncement.external_entity is True
        assert pronouncement.next_action == "Esperar pronunciamiento"
