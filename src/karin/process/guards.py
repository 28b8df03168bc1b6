"""Stage exit guards.

Each guard is keyed by the stage being left and inspects the case's
stage facts. A guard returns the list of unmet preconditions; an empty
list means the case may leave the stage.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from karin.process.stages import StageId

Guard = Callable[[dict[str, Any]], list[str]]

# Measure statuses that count as done when leaving measures adoption.
DONE_MEASURE_STATUSES: frozenset[str] = frozenset({"implemented", "verified"})


def _require_flag(fact: str, message: str) -> Guard:
    def guard(facts: dict[str, Any]) -> list[str]:
        return [] if facts.get(fact) is True else [message]
    return guard


def _require_value(fact: str, message: str) -> Guard:
    def guard(facts: dict[str, Any]) -> list[str]:
        return [] if facts.get(fact) else [message]
    return guard


def reception_guard(facts: dict[str, Any]) -> list[str]:
    missing = []
    if facts.get("requires_subsanation") is None:
        missing.append("Decide whether the complaint requires subsanation")
    if facts.get("informed_rights") is not True:
        missing.append("Inform the complainant of their rights")
    return missing


def precautionary_measures_guard(facts: dict[str, Any]) -> list[str]:
    measures = facts.get("precautionary_measures") or []
    if not measures:
        return ["Adopt at least one precautionary measure"]
    return []


def _unsigned(entries: list[Any]) -> list[str]:
    return [
        entry.get("id", str(index)) if isinstance(entry, dict) else str(index)
        for index, entry in enumerate(entries, start=1)
        if not isinstance(entry, dict) or entry.get("signed") is not True
    ]


def investigation_guard(facts: dict[str, Any]) -> list[str]:
    interviews = facts.get("interviews") or []
    if not interviews:
        return ["Record at least one interview"]
    missing = []
    unsigned_interviews = _unsigned(interviews)
    if unsigned_interviews:
        missing.append(f"Interviews pending signature: {', '.join(unsigned_interviews)}")
    unsigned_testimonies = _unsigned(facts.get("testimonies") or [])
    if unsigned_testimonies:
        missing.append(f"Testimonies pending signature: {', '.join(unsigned_testimonies)}")
    return missing


def measures_adoption_guard(facts: dict[str, Any]) -> list[str]:
    measures = facts.get("adopted_measures") or []
    pending = [
        measure.get("id", str(index))
        for index, measure in enumerate(measures, start=1)
        if not isinstance(measure, dict) or measure.get("status") not in DONE_MEASURE_STATUSES
    ]
    if pending:
        return [f"Measures not yet implemented: {', '.join(pending)}"]
    return []


STAGE_GUARDS: dict[StageId, Guard] = {
    StageId.RECEPTION: reception_guard,
    StageId.SUBSANATION: _require_flag(
        "subsanation_received", "Receive the corrected complaint"
    ),
    StageId.PRECAUTIONARY_MEASURES: precautionary_measures_guard,
    StageId.DECISION_TO_INVESTIGATE: _require_value(
        "investigation_plan", "Approve the investigation plan"
    ),
    StageId.INVESTIGATION: investigation_guard,
    StageId.REPORT_CREATION: _require_value(
        "preliminary_report", "Draft the preliminary report"
    ),
    StageId.REPORT_APPROVAL: _require_flag(
        "report_approved", "Approve the report internally"
    ),
    StageId.DT_NOTIFICATION: _require_value(
        "dt_notification_date", "Record the DT notification date"
    ),
    StageId.SUSESO_NOTIFICATION: _require_value(
        "suseso_notification_date", "Record the SUSESO notification date"
    ),
    StageId.INVESTIGATION_COMPLETE: _require_flag(
        "investigation_completed", "Confirm the investigation is complete"
    ),
    StageId.FINAL_REPORT: _require_value(
        "final_report", "Issue the final report"
    ),
    StageId.DT_SUBMISSION: _require_value(
        "dt_submission_date", "Record the DT submission date"
    ),
    StageId.DT_RESOLUTION: _require_value(
        "dt_resolution_date", "Record the DT resolution date"
    ),
    StageId.MEASURES_ADOPTION: measures_adoption_guard,
}


def check_exit(stage: StageId, facts: dict[str, Any]) -> list[str]:
    """Unmet preconditions for leaving ``stage``. Stages without a guard pass."""
    guard = STAGE_GUARDS.get(stage)
    if guard is None:
        return []
    return guard(facts)
