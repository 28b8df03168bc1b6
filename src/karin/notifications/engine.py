"""Notification engine: renders sweep requests and hands them to delivery."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml

from karin.core.types import AuditEvent, DataClassification
from karin.governance.audit import AuditLogger
from karin.notifications.models import (
    Notification,
    NotificationChannel,
    NotificationRequest,
    NotificationTemplate,
)
from karin.notifications.service import NotificationService

logger = logging.getLogger(__name__)

_DEFAULT_TEMPLATES_PATH = Path(__file__).resolve().parents[3] / "config" / "notification_templates.yml"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class NotificationEngine:
    """Template rendering over an injected delivery service, with audit logging."""

    def __init__(
        self,
        service: NotificationService,
        audit_logger: AuditLogger | None = None,
        templates_path: str | Path | None = None,
        default_channel: NotificationChannel = NotificationChannel.EMAIL,
    ) -> None:
        self._service = service
        self._audit = audit_logger
        self._default_channel = NotificationChannel(default_channel)
        self._templates: dict[str, NotificationTemplate] = {}
        self._load_templates(Path(templates_path) if templates_path else _DEFAULT_TEMPLATES_PATH)

    def _load_templates(self, path: Path) -> None:
        if not path.exists():
            logger.warning("Notification templates not found at %s; using plain fallbacks", path)
            return
        with open(path) as fh:
            data = yaml.safe_load(fh) or {}
        for tmpl_id, tmpl_data in data.get("templates", {}).items():
            self._templates[tmpl_id] = NotificationTemplate(
                id=tmpl_id,
                subject=tmpl_data.get("subject", ""),
                body=tmpl_data.get("body", ""),
                channel=NotificationChannel(tmpl_data.get("channel", self._default_channel.value)),
            )

    @property
    def service(self) -> NotificationService:
        return self._service

    @property
    def templates(self) -> dict[str, NotificationTemplate]:
        return dict(self._templates)

    def dispatch(self, request: NotificationRequest) -> Notification:
        """Render ``request`` with its kind's template and send it."""
        context = {
            "tenant_id": request.tenant_id,
            "case_id": request.case_id,
            "title": request.title or request.item_id,
            "due_date": request.due_date.isoformat() if request.due_date else "",
            "days": abs(request.threshold_days),
            "recipient_role": request.recipient_role.value,
        }
        template_id = request.kind.value
        template = self._templates.get(template_id)
        if template:
            subject = self._render(template.subject, context)
            body = self._render(template.body, context)
            channel = template.channel
        else:
            subject = template_id.replace("_", " ").title()
            body = f"Notification: {template_id} ({context['title']})"
            channel = self._default_channel

        notification = Notification(
            tenant_id=request.tenant_id,
            case_id=request.case_id,
            channel=channel,
            recipient_role=request.recipient_role,
            recipient=request.recipient_id or f"role:{request.recipient_role.value}",
            subject=subject,
            body=body,
            template_id=template_id,
            dedupe_key=request.dedupe_key,
            metadata={"item_id": request.item_id, "threshold_days": request.threshold_days},
        )
        result = self._service.send(notification)
        self._log_audit(result)
        return result

    def _render(self, template_str: str, context: dict[str, Any]) -> str:
        """Single-pass ``{key}`` substitution; unknown placeholders are kept."""
        str_context = {k: str(v) for k, v in context.items()}

        def _replace(m: re.Match) -> str:
            return str_context.get(m.group(1), m.group(0))

        return _PLACEHOLDER.sub(_replace, template_str)

    def _log_audit(self, notification: Notification) -> None:
        if self._audit is None:
            return
        self._audit.log(
            AuditEvent(
                tenant_id=notification.tenant_id,
                actor="notification_engine",
                action="notification_sent",
                resource=f"notification:{notification.id}",
                classification=DataClassification.INTERNAL,
                details={
                    "case_id": notification.case_id,
                    "template_id": notification.template_id,
                    "channel": notification.channel,
                    "recipient": notification.recipient,
                    "status": notification.status,
                    "dedupe_key": notification.dedupe_key,
                },
            )
        )
