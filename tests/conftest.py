"""Shared test fixtures and helpers."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

import pytest

from karin.calendar.business import BusinessCalendar
from karin.process.controller import CaseProcessController
from karin.process.machine import StageStateMachine
from karin.process.stages import StageId
from karin.process.store import CaseStore
from karin.process.templates import TemplateRegistry

MONDAY = date(2025, 3, 3)
NOW = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)

TENANT = "acme"

# Facts satisfying every exit guard at once (and no branch rule).
ALL_GUARD_FACTS: dict[str, Any] = {
    "requires_subsanation": False,
    "informed_rights": True,
    "subsanation_received": True,
    "precautionary_measures": ["separación de espacios"],
    "investigation_plan": "plan-v1",
    "interviews": [{"id": "int-1", "signed": True}],
    "preliminary_report": "informe-preliminar",
    "report_approved": True,
    "dt_notification_date": "2025-03-10",
    "suseso_notification_date": "2025-03-11",
    "investigation_completed": True,
    "final_report": "informe-final",
    "dt_submission_date": "2025-04-01",
    "dt_resolution_date": "2025-05-01",
    "adopted_measures": [{"id": "m-1", "status": "implemented"}],
}


@pytest.fixture
def calendar() -> BusinessCalendar:
    return BusinessCalendar()


@pytest.fixture
def registry() -> TemplateRegistry:
    return TemplateRegistry.from_yaml()


@pytest.fixture
def machine(registry: TemplateRegistry, calendar: BusinessCalendar) -> StageStateMachine:
    return StageStateMachine(registry, calendar)


@pytest.fixture
def store() -> CaseStore:
    return CaseStore()


@pytest.fixture
def controller(store: CaseStore, machine: StageStateMachine) -> CaseProcessController:
    return CaseProcessController(store, machine)


async def advance_to(
    controller: CaseProcessController,
    case_id: str,
    target: StageId,
    tenant_id: str = TENANT,
    facts: dict[str, Any] | None = None,
) -> None:
    """Walk a case forward until it reaches ``target``.

    Guards are satisfied with ``facts`` (default ALL_GUARD_FACTS) and
    pending mandatory deadlines are completed before each step.
    """
    await controller.record_facts(tenant_id, case_id, facts or ALL_GUARD_FACTS, "tester", now=NOW)
    while True:
        case = await controller.get_case(tenant_id, case_id)
        if case.current_stage == target:
            return
        deadlines = controller.machine.deadline_set(case)
        for deadline in deadlines.pending_mandatory(case.current_stage):
            await controller.complete_deadline(tenant_id, case_id, deadline.id, "tester", now=NOW)
        nxt = controller.machine.next_stage(case)
        assert nxt is not None, f"cannot reach {target} from {case.current_stage}"
        await controller.advance_stage(tenant_id, case_id, nxt, "tester", now=NOW)
