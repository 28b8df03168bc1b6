"""FastAPI application for the Ley Karin process engine.

Wires the calendar, template registry, state machine, controller and
notification sweep together and exposes them through the process router.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from karin import __version__
from karin.calendar.business import BusinessCalendar
from karin.calendar.holidays import HolidaySource, YamlHolidaySource
from karin.core.config import Settings, resolve_config_path
from karin.db.engine import DatabaseManager
from karin.governance.audit import AuditLogger
from karin.notifications.engine import NotificationEngine
from karin.notifications.ledger import DispatchLedger
from karin.notifications.service import MockNotificationService
from karin.notifications.store import NotificationStore
from karin.notifications.sweeper import NotificationSweeper
from karin.process.controller import CaseProcessController
from karin.process.machine import StageStateMachine
from karin.process.store import CaseStore
from karin.process.templates import TemplateRegistry
from karin.repositories.postgres.cases import PostgresCaseRepository
from karin.repositories.postgres.dispatch import PostgresDispatchLedger
from karin.web.process_router import router as process_router
from karin.web.process_router import sweep_router

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str = __version__


def create_app(
    settings: Settings | None = None,
    audit_logger: AuditLogger | None = None,
    holiday_source: HolidaySource | None = None,
    registry: TemplateRegistry | None = None,
    store: Any = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Uses the factory pattern so tests can build isolated app instances
    with their own stores and configuration.

    Args:
        settings: Application settings. Defaults to Settings().
        audit_logger: Optional pre-built AuditLogger.
        holiday_source: Optional holiday collaborator; defaults to the YAML table.
        registry: Optional deadline template registry.
        store: Optional case store. Defaults to a SQL repository when a
            database URL is configured, otherwise the in-memory CaseStore.
    """
    if settings is None:
        settings = Settings()

    if audit_logger is None:
        audit_logger = AuditLogger(config=settings.audit)

    if holiday_source is None:
        holiday_source = YamlHolidaySource(
            resolve_config_path(settings.calendar.holidays_path),
            region=settings.calendar.region,
        )
    if registry is None:
        registry = TemplateRegistry.from_yaml(resolve_config_path(settings.process.templates_path))

    db: DatabaseManager | None = None
    if settings.database.url:
        db = DatabaseManager(
            settings.database.url,
            echo=settings.database.echo,
            pool_size=settings.database.pool_size,
        )
    if store is None:
        store = PostgresCaseRepository(db) if db is not None else CaseStore()
    ledger = PostgresDispatchLedger(db) if db is not None else DispatchLedger()

    calendar = BusinessCalendar(holiday_source.load(), settings.calendar.day_type)
    machine = StageStateMachine(
        registry,
        calendar,
        enforce_mandatory_deadlines=settings.process.enforce_mandatory_deadlines,
    )
    controller = CaseProcessController(
        store,
        machine,
        audit_logger=audit_logger,
        timezone_name=settings.sweep.timezone,
    )

    notification_store = NotificationStore()
    notification_service = MockNotificationService(store=notification_store)
    notification_engine = NotificationEngine(
        service=notification_service,
        audit_logger=audit_logger,
        templates_path=resolve_config_path(settings.notification.templates_path),
        default_channel=settings.notification.default_channel,
    )
    sweeper = NotificationSweeper(
        store,
        notification_engine,
        ledger,
        holiday_source,
        day_type=settings.calendar.day_type,
        max_workers=settings.sweep.max_workers,
        case_timeout_seconds=settings.sweep.case_timeout_seconds,
        timezone_name=settings.sweep.timezone,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if db is not None:
            await db.create_all()
        yield
        if db is not None:
            await db.close()

    app = FastAPI(
        title="Ley Karin Process Engine",
        description="Stage machine, legal deadlines and notification sweep for Ley Karin cases",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.audit_logger = audit_logger
    app.state.holiday_source = holiday_source
    app.state.case_store = store
    app.state.process_controller = controller
    app.state.notification_store = notification_store
    app.state.notification_service = notification_service
    app.state.notification_engine = notification_engine
    app.state.sweeper = sweeper

    app.include_router(process_router)
    app.include_router(sweep_router)

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", service="karin")

    logger.info(
        "Process engine ready: %d templates, %d holidays, store=%s",
        len(registry), len(calendar.holidays), type(store).__name__,
    )
    return app
