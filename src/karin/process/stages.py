"""Declarative stage graph for the Ley Karin procedure.

The graph is a table of ``stage -> (main successor, branch rules)``.
Branch rules are evaluated in declared order and the first one whose
condition holds wins; otherwise the main-sequence successor applies.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class StageId(StrEnum):
    """Stages of the investigation procedure, plus case-type markers."""

    COMPLAINT_FILED = "complaint_filed"
    RECEPTION = "reception"
    SUBSANATION = "subsanation"
    PRECAUTIONARY_MEASURES = "precautionary_measures"
    DECISION_TO_INVESTIGATE = "decision_to_investigate"
    INVESTIGATION = "investigation"
    REPORT_CREATION = "report_creation"
    REPORT_APPROVAL = "report_approval"
    DT_NOTIFICATION = "dt_notification"
    SUSESO_NOTIFICATION = "suseso_notification"
    INVESTIGATION_COMPLETE = "investigation_complete"
    FINAL_REPORT = "final_report"
    DT_SUBMISSION = "dt_submission"
    DT_RESOLUTION = "dt_resolution"
    MEASURES_ADOPTION = "measures_adoption"
    SANCTIONS = "sanctions"
    CLOSED = "closed"
    # Case-type markers: annotate a case, never part of the path.
    THIRD_PARTY = "third_party"
    SUBCONTRACTING = "subcontracting"


class CloseReason(StrEnum):
    """Variants of the terminal ``closed`` stage."""

    RESOLVED = "resolved"
    NO_SANCTIONS = "no_sanctions"
    WITHDRAWN = "withdrawn"
    FALSE_CLAIM = "false_claim"


MAIN_SEQUENCE: tuple[StageId, ...] = (
    StageId.COMPLAINT_FILED,
    StageId.RECEPTION,
    StageId.PRECAUTIONARY_MEASURES,
    StageId.DECISION_TO_INVESTIGATE,
    StageId.INVESTIGATION,
    StageId.REPORT_CREATION,
    StageId.REPORT_APPROVAL,
    StageId.DT_NOTIFICATION,
    StageId.SUSESO_NOTIFICATION,
    StageId.INVESTIGATION_COMPLETE,
    StageId.FINAL_REPORT,
    StageId.DT_SUBMISSION,
    StageId.DT_RESOLUTION,
    StageId.MEASURES_ADOPTION,
    StageId.SANCTIONS,
    StageId.CLOSED,
)

CASE_MARKERS: frozenset[StageId] = frozenset({StageId.THIRD_PARTY, StageId.SUBCONTRACTING})

TERMINAL_STAGES: frozenset[StageId] = frozenset({StageId.CLOSED})

STAGE_NAMES: dict[StageId, str] = {
    StageId.COMPLAINT_FILED: "Denuncia interpuesta",
    StageId.RECEPTION: "Recepción de denuncia",
    StageId.SUBSANATION: "Subsanación",
    StageId.PRECAUTIONARY_MEASURES: "Medidas precautorias",
    StageId.DECISION_TO_INVESTIGATE: "Decisión de investigar",
    StageId.INVESTIGATION: "Investigación",
    StageId.REPORT_CREATION: "Informe preliminar",
    StageId.REPORT_APPROVAL: "Revisión interna del informe",
    StageId.DT_NOTIFICATION: "Notificación a la DT",
    StageId.SUSESO_NOTIFICATION: "Notificación a SUSESO/Mutualidad",
    StageId.INVESTIGATION_COMPLETE: "Investigación completa",
    StageId.FINAL_REPORT: "Informe final",
    StageId.DT_SUBMISSION: "Envío formal a la DT",
    StageId.DT_RESOLUTION: "Resolución de la DT",
    StageId.MEASURES_ADOPTION: "Adopción de medidas",
    StageId.SANCTIONS: "Sanciones",
    StageId.CLOSED: "Caso cerrado",
    StageId.THIRD_PARTY: "Caso con terceros",
    StageId.SUBCONTRACTING: "Régimen de subcontratación",
}


class FactCondition(BaseModel):
    """Condition over a single stage fact.

    ``equals`` compares with ``==``; ``is_set`` only checks presence
    (a stored ``None`` counts as absent).
    """

    fact: str
    equals: Any = None
    is_set: bool | None = None

    def holds(self, facts: dict[str, Any]) -> bool:
        value = facts.get(self.fact)
        if self.is_set is not None:
            return (value is not None) == self.is_set
        return value is not None and value == self.equals


class BranchRule(BaseModel):
    """Alternative flow: go to ``next_stage`` when ``condition`` holds."""

    condition: FactCondition
    next_stage: StageId
    description: str = ""


class StageNode(BaseModel):
    """One row of the stage graph."""

    stage: StageId
    next_stage: StageId | None
    branches: list[BranchRule] = Field(default_factory=list)


def _main_successors() -> dict[StageId, StageId | None]:
    successors: dict[StageId, StageId | None] = {}
    for current, following in zip(MAIN_SEQUENCE, MAIN_SEQUENCE[1:]):
        successors[current] = following
    successors[StageId.CLOSED] = None
    return successors


def build_stage_graph() -> dict[StageId, StageNode]:
    """Return the fixed Ley Karin stage table."""
    successors = _main_successors()
    graph = {
        stage: StageNode(stage=stage, next_stage=nxt)
        for stage, nxt in successors.items()
    }

    graph[StageId.RECEPTION].branches.append(
        BranchRule(
            condition=FactCondition(fact="requires_subsanation", equals=True),
            next_stage=StageId.SUBSANATION,
            description="La denuncia requiere subsanación",
        )
    )
    # Subsanation always rejoins the main sequence after reception.
    graph[StageId.SUBSANATION] = StageNode(
        stage=StageId.SUBSANATION,
        next_stage=successors[StageId.RECEPTION],
    )
    graph[StageId.MEASURES_ADOPTION].branches.append(
        BranchRule(
            condition=FactCondition(fact="sanctions_applied", equals=False),
            next_stage=StageId.CLOSED,
            description="No se aplicaron sanciones",
        )
    )
    return graph


def stage_position(stage: StageId) -> int:
    """Index of a stage in the main sequence; branch stages map onto their entry point."""
    if stage == StageId.SUBSANATION:
        return MAIN_SEQUENCE.index(StageId.RECEPTION)
    return MAIN_SEQUENCE.index(stage)
