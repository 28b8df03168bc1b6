"""Data models for cases, deadlines and recommendations."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from karin.core.types import AlertLevel, DayUnit, StageType
from karin.process.stages import CloseReason, StageId


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeadlineTemplate(BaseModel):
    """Authoring-time definition of a stage-entry deadline."""

    id: str
    stage: StageId
    title: str
    description: str = ""
    stage_type: StageType = StageType.MANDATORY
    legal_basis: str = ""
    offset: int = Field(ge=0)
    day_unit: DayUnit = DayUnit.BUSINESS_DAYS
    anchor_fact: str | None = None
    depends_on: str | None = None
    max_extension_days: int | None = None
    external_entity: bool = False
    next_action: str = ""


class DeadlineExtension(BaseModel):
    """One shift applied to a deadline.

    ``source_deadline_id`` is set when the shift was propagated from an
    upstream deadline rather than requested directly.
    """

    additional_days: int
    reason: str
    actor_id: str
    applied_at: datetime = Field(default_factory=_utcnow)
    source_deadline_id: str | None = None


class Deadline(BaseModel):
    """A legal deadline owned by exactly one case."""

    id: str
    title: str
    description: str = ""
    stage: StageId
    stage_type: StageType = StageType.MANDATORY
    legal_basis: str = ""
    next_action: str = ""
    # Waiting on an outside authority (DT, SUSESO) rather than the investigator.
    external_entity: bool = False
    trigger_date: date
    day_unit: DayUnit = DayUnit.BUSINESS_DAYS
    offset: int = Field(ge=0)
    due_date: date
    completed: bool = False
    completed_at: datetime | None = None
    completed_by: str | None = None
    extensions: list[DeadlineExtension] = Field(default_factory=list)
    dependents: list[str] = Field(default_factory=list)
    # Upstream shift already folded into trigger_date when this deadline was created.
    anchor_shift: int = 0
    template_id: str | None = None
    max_extension_days: int | None = None
    obsolete: bool = False

    @property
    def total_shift(self) -> int:
        return sum(ext.additional_days for ext in self.extensions)

    @property
    def direct_extension_days(self) -> int:
        return sum(
            ext.additional_days for ext in self.extensions
            if ext.source_deadline_id is None
        )

    @property
    def is_extended(self) -> bool:
        return bool(self.extensions)

    @property
    def is_custom(self) -> bool:
        return self.template_id is None


class StageHistoryEntry(BaseModel):
    """A stage the case entered."""

    stage: StageId
    from_stage: StageId | None = None
    entered_at: datetime = Field(default_factory=_utcnow)
    actor_id: str
    notes: str = ""


class ActivityKind(StrEnum):
    CASE_OPENED = "case_opened"
    STAGE_CHANGED = "stage_changed"
    DEADLINE_COMPLETED = "deadline_completed"
    DEADLINE_EXTENDED = "deadline_extended"
    DEADLINE_ADDED = "deadline_added"
    DEADLINES_RECALCULATED = "deadlines_recalculated"
    FACTS_RECORDED = "facts_recorded"
    CASE_MARKED = "case_marked"


class ActivityRecord(BaseModel):
    """Append-only audit trail entry exposed to reporting."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=_utcnow)
    actor_id: str
    kind: ActivityKind
    description: str
    details: dict[str, Any] = Field(default_factory=dict)


class Case(BaseModel):
    """One Ley Karin investigation record."""

    tenant_id: str
    id: str
    is_legally_regulated: bool = True
    current_stage: StageId = StageId.COMPLAINT_FILED
    stage_history: list[StageHistoryEntry] = Field(default_factory=list)
    stage_facts: dict[str, Any] = Field(default_factory=dict)
    deadlines: list[Deadline] = Field(default_factory=list)
    case_markers: list[StageId] = Field(default_factory=list)
    close_reason: CloseReason | None = None
    activities: list[ActivityRecord] = Field(default_factory=list)
    version: int = 0
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_closed(self) -> bool:
        return self.current_stage == StageId.CLOSED

    @property
    def is_active(self) -> bool:
        return self.is_legally_regulated and not self.is_closed

    def get_deadline(self, deadline_id: str) -> Deadline | None:
        for deadline in self.deadlines:
            if deadline.id == deadline_id:
                return deadline
        return None


class RecommendationStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class Recommendation(BaseModel):
    """Remediation item tracked after an investigation."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tenant_id: str
    case_id: str
    action: str = ""
    due_date: date | None = None
    status: RecommendationStatus = RecommendationStatus.PENDING
    assigned_user_id: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status in (RecommendationStatus.PENDING, RecommendationStatus.IN_PROGRESS)


class ClassifiedDeadline(BaseModel):
    """A deadline together with its alert level on a given day."""

    deadline: Deadline
    alert_level: AlertLevel
    days_remaining: int


class StageTimeline(BaseModel):
    stage: StageId
    name: str
    deadlines: list[ClassifiedDeadline] = Field(default_factory=list)


class CaseTimeline(BaseModel):
    """Stage history plus classified deadlines grouped by stage."""

    tenant_id: str
    case_id: str
    current_stage: StageId
    today: date
    history: list[StageHistoryEntry] = Field(default_factory=list)
    stages: list[StageTimeline] = Field(default_factory=list)


class DeadlineSummary(BaseModel):
    """Aggregate deadline state for dashboards."""

    total: int = 0
    completed: int = 0
    overdue: int = 0
    critical: int = 0
    warning: int = 0
    info: int = 0
    normal: int = 0
    extended: int = 0
    obsolete: int = 0
    completion_rate: int = 0
    next_deadline: Deadline | None = None
    progress: int = 0


class TransitionPreview(BaseModel):
    """What advancing the case would do, without doing it."""

    current_stage: StageId
    next_stage: StageId | None
    can_advance: bool
    missing: list[str] = Field(default_factory=list)
