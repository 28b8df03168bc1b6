"""FastAPI router for case process endpoints."""

from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from karin.core.errors import (
    AlreadyInitializedError,
    HolidayLoadError,
    IllegalTransitionError,
    InvalidArgumentError,
    InvalidDateError,
    KarinError,
    NotFoundError,
    PreconditionNotMetError,
    StaleCaseError,
    ValidationError,
)
from karin.core.types import DayUnit, StageType
from karin.notifications.sweeper import NotificationSweeper
from karin.process.controller import CaseProcessController
from karin.process.models import Recommendation, RecommendationStatus
from karin.process.stages import CloseReason, StageId
from karin.repositories import resolve

router = APIRouter(prefix="/api/tenants/{tenant_id}")
sweep_router = APIRouter()

_STATUS_BY_ERROR: list[tuple[type[KarinError], int]] = [
    (NotFoundError, 404),
    (IllegalTransitionError, 409),
    (PreconditionNotMetError, 409),
    (AlreadyInitializedError, 409),
    (StaleCaseError, 409),
    (ValidationError, 422),
    (InvalidArgumentError, 422),
    (InvalidDateError, 422),
    (HolidayLoadError, 503),
]


def _http_error(exc: KarinError) -> HTTPException:
    status = next((code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)), 500)
    if isinstance(exc, PreconditionNotMetError):
        return HTTPException(status_code=status, detail={"message": str(exc), "missing": exc.missing})
    return HTTPException(status_code=status, detail=str(exc))


def _get_controller(request: Request) -> CaseProcessController:
    controller = getattr(request.app.state, "process_controller", None)
    if controller is None:
        raise HTTPException(status_code=503, detail="Process controller not available")
    return controller


def _get_sweeper(request: Request) -> NotificationSweeper:
    sweeper = getattr(request.app.state, "sweeper", None)
    if sweeper is None:
        raise HTTPException(status_code=503, detail="Notification sweeper not available")
    return sweeper


# --- Request models ---


class OpenCaseRequest(BaseModel):
    case_id: str
    actor_id: str
    is_legally_regulated: bool = True
    facts: dict[str, Any] = Field(default_factory=dict)
    case_markers: list[StageId] = Field(default_factory=list)


class AdvanceRequest(BaseModel):
    target: StageId
    actor_id: str
    notes: str = ""
    close_reason: CloseReason | None = None


class FactsRequest(BaseModel):
    facts: dict[str, Any]
    actor_id: str


class MarkerRequest(BaseModel):
    marker: StageId
    actor_id: str


class CompleteRequest(BaseModel):
    actor_id: str


class ExtendRequest(BaseModel):
    additional_days: int
    reason: str
    actor_id: str


class CustomDeadlineRequest(BaseModel):
    title: str
    offset: int
    actor_id: str
    stage: StageId | None = None
    trigger_date: date | None = None
    day_unit: DayUnit = DayUnit.BUSINESS_DAYS
    stage_type: StageType = StageType.OPTIONAL
    description: str = ""
    legal_basis: str = ""
    depends_on: str | None = None


class RecalculateRequest(BaseModel):
    actor_id: str = "system"


class RecommendationRequest(BaseModel):
    case_id: str
    action: str = ""
    due_date: date | None = None
    status: RecommendationStatus = RecommendationStatus.PENDING
    assigned_user_id: str | None = None


class SweepRequest(BaseModel):
    today: date | None = None


# --- Cases ---


@router.post("/cases", status_code=201)
async def open_case(tenant_id: str, body: OpenCaseRequest, request: Request) -> dict[str, Any]:
    controller = _get_controller(request)
    try:
        case = await controller.open_case(
            tenant_id,
            body.case_id,
            body.actor_id,
            is_legally_regulated=body.is_legally_regulated,
            facts=body.facts,
            case_markers=body.case_markers,
        )
    except KarinError as exc:
        raise _http_error(exc) from exc
    return case.model_dump(mode="json")


@router.get("/cases/{case_id}")
async def get_case(tenant_id: str, case_id: str, request: Request) -> dict[str, Any]:
    controller = _get_controller(request)
    try:
        case = await controller.get_case(tenant_id, case_id)
    except KarinError as exc:
        raise _http_error(exc) from exc
    return case.model_dump(mode="json")


@router.post("/cases/{case_id}/advance")
async def advance_stage(
    tenant_id: str, case_id: str, body: AdvanceRequest, request: Request
) -> dict[str, Any]:
    """Move the case to the next stage."""
    controller = _get_controller(request)
    try:
        case = await controller.advance_stage(
            tenant_id,
            case_id,
            body.target,
            body.actor_id,
            notes=body.notes,
            close_reason=body.close_reason,
        )
    except KarinError as exc:
        raise _http_error(exc) from exc
    return case.model_dump(mode="json")


@router.get("/cases/{case_id}/preview")
async def preview_transition(tenant_id: str, case_id: str, request: Request) -> dict[str, Any]:
    """Next stage and every unmet precondition, without changing anything."""
    controller = _get_controller(request)
    try:
        preview = await controller.preview_transition(tenant_id, case_id)
    except KarinError as exc:
        raise _http_error(exc) from exc
    return preview.model_dump(mode="json")


@router.get("/cases/{case_id}/timeline")
async def get_timeline(
    tenant_id: str, case_id: str, request: Request, today: date | None = None
) -> dict[str, Any]:
    controller = _get_controller(request)
    try:
        timeline = await controller.get_timeline(tenant_id, case_id, today=today)
    except KarinError as exc:
        raise _http_error(exc) from exc
    return timeline.model_dump(mode="json")


@router.get("/cases/{case_id}/summary")
async def get_summary(
    tenant_id: str, case_id: str, request: Request, today: date | None = None
) -> dict[str, Any]:
    controller = _get_controller(request)
    try:
        summary = await controller.get_summary(tenant_id, case_id, today=today)
    except KarinError as exc:
        raise _http_error(exc) from exc
    return summary.model_dump(mode="json")


@router.post("/cases/{case_id}/facts")
async def record_facts(
    tenant_id: str, case_id: str, body: FactsRequest, request: Request
) -> dict[str, Any]:
    controller = _get_controller(request)
    try:
        case = await controller.record_facts(tenant_id, case_id, body.facts, body.actor_id)
    except KarinError as exc:
        raise _http_error(exc) from exc
    return case.model_dump(mode="json")


@router.post("/cases/{case_id}/markers")
async def mark_case_type(
    tenant_id: str, case_id: str, body: MarkerRequest, request: Request
) -> dict[str, Any]:
    controller = _get_controller(request)
    try:
        case = await controller.mark_case_type(tenant_id, case_id, body.marker, body.actor_id)
    except KarinError as exc:
        raise _http_error(exc) from exc
    return case.model_dump(mode="json")


# --- Deadlines ---


@router.post("/cases/{case_id}/deadlines", status_code=201)
async def add_custom_deadline(
    tenant_id: str, case_id: str, body: CustomDeadlineRequest, request: Request
) -> dict[str, Any]:
    controller = _get_controller(request)
    try:
        deadline = await controller.add_custom_deadline(
            tenant_id,
            case_id,
            title=body.title,
            offset=body.offset,
            actor_id=body.actor_id,
            stage=body.stage,
            trigger_date=body.trigger_date,
            day_unit=body.day_unit,
            stage_type=body.stage_type,
            description=body.description,
            legal_basis=body.legal_basis,
            depends_on=body.depends_on,
        )
    except KarinError as exc:
        raise _http_error(exc) from exc
    return deadline.model_dump(mode="json")


@router.post("/cases/{case_id}/deadlines/recalculate")
async def recalculate_deadlines(
    tenant_id: str, case_id: str, body: RecalculateRequest, request: Request
) -> list[dict[str, Any]]:
    """Reload holidays and recompute every due date of the case."""
    controller = _get_controller(request)
    source = getattr(request.app.state, "holiday_source", None)
    try:
        if source is not None:
            machine = controller.machine
            machine.refresh_calendar(machine.calendar.with_holidays(source.load()))
        moved = await controller.recalculate_deadlines(tenant_id, case_id, actor_id=body.actor_id)
    except KarinError as exc:
        raise _http_error(exc) from exc
    return [d.model_dump(mode="json") for d in moved]


@router.post("/cases/{case_id}/deadlines/{deadline_id}/complete")
async def complete_deadline(
    tenant_id: str, case_id: str, deadline_id: str, body: CompleteRequest, request: Request
) -> dict[str, Any]:
    controller = _get_controller(request)
    try:
        deadline = await controller.complete_deadline(tenant_id, case_id, deadline_id, body.actor_id)
    except KarinError as exc:
        raise _http_error(exc) from exc
    return deadline.model_dump(mode="json")


@router.post("/cases/{case_id}/deadlines/{deadline_id}/extend")
async def extend_deadline(
    tenant_id: str, case_id: str, deadline_id: str, body: ExtendRequest, request: Request
) -> list[dict[str, Any]]:
    """Extend a deadline; the response lists it followed by every shifted dependent."""
    controller = _get_controller(request)
    try:
        changed = await controller.extend_deadline(
            tenant_id,
            case_id,
            deadline_id,
            body.additional_days,
            body.reason,
            body.actor_id,
        )
    except KarinError as exc:
        raise _http_error(exc) from exc
    return [d.model_dump(mode="json") for d in changed]


# --- Recommendations ---


@router.post("/recommendations", status_code=201)
async def save_recommendation(
    tenant_id: str, body: RecommendationRequest, request: Request
) -> dict[str, Any]:
    store = getattr(request.app.state, "case_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Case store not available")
    recommendation = Recommendation(tenant_id=tenant_id, **body.model_dump())
    saved = await resolve(store.save_recommendation(recommendation))
    return saved.model_dump(mode="json")


@router.get("/recommendations")
async def list_recommendations(tenant_id: str, request: Request) -> list[dict[str, Any]]:
    store = getattr(request.app.state, "case_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Case store not available")
    recommendations = await resolve(store.list_recommendations(tenant_id))
    return [r.model_dump(mode="json") for r in recommendations]


# --- Sweep ---


@sweep_router.post("/api/sweep")
async def run_sweep(request: Request, body: SweepRequest | None = None) -> dict[str, Any]:
    """Run the notification sweep once (normally triggered by a daily scheduler)."""
    sweeper = _get_sweeper(request)
    try:
        report = await sweeper.run(today=body.today if body else None)
    except KarinError as exc:
        raise _http_error(exc) from exc
    return report.model_dump(mode="json")
