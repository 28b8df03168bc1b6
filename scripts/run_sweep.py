#!/usr/bin/env python3
"""CLI script to run the daily Ley Karin notification sweep once.

Meant to be invoked by an external scheduler (cron, systemd timer, ...).
Exits with status 2 when the holiday table cannot be loaded, so the
scheduler surfaces the skipped day.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path

# Ensure the project source is importable when running the script directly.
_project_root = Path(__file__).resolve().parent.parent
_src = _project_root / "src"
if str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from karin.calendar.holidays import YamlHolidaySource  # noqa: E402
from karin.core.config import Settings, resolve_config_path  # noqa: E402
from karin.core.errors import HolidayLoadError  # noqa: E402
from karin.db.engine import DatabaseManager  # noqa: E402
from karin.governance.audit import AuditLogger  # noqa: E402
from karin.notifications.engine import NotificationEngine  # noqa: E402
from karin.notifications.service import MockNotificationService  # noqa: E402
from karin.notifications.sweeper import NotificationSweeper  # noqa: E402
from karin.repositories.postgres.cases import PostgresCaseRepository  # noqa: E402
from karin.repositories.postgres.dispatch import PostgresDispatchLedger  # noqa: E402

logger = logging.getLogger("karin.sweep")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the Ley Karin deadline and recommendation notification sweep."
    )
    parser.add_argument(
        "--today",
        type=date.fromisoformat,
        default=None,
        help="Sweep as of this ISO date instead of today in the configured timezone.",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override KARIN_DATABASE_URL.",
    )
    return parser.parse_args()


async def main() -> int:
    args = parse_args()
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    database_url = args.database_url or settings.database.url
    if not database_url:
        logger.error("No database configured; set KARIN_DATABASE_URL or pass --database-url")
        return 1

    db = DatabaseManager(database_url, echo=settings.database.echo, pool_size=settings.database.pool_size)
    audit_logger = AuditLogger(config=settings.audit)
    engine = NotificationEngine(
        service=MockNotificationService(),
        audit_logger=audit_logger,
        templates_path=resolve_config_path(settings.notification.templates_path),
        default_channel=settings.notification.default_channel,
    )
    sweeper = NotificationSweeper(
        PostgresCaseRepository(db),
        engine,
        PostgresDispatchLedger(db),
        YamlHolidaySource(
            resolve_config_path(settings.calendar.holidays_path),
            region=settings.calendar.region,
        ),
        day_type=settings.calendar.day_type,
        max_workers=settings.sweep.max_workers,
        case_timeout_seconds=settings.sweep.case_timeout_seconds,
        timezone_name=settings.sweep.timezone,
    )

    try:
        await db.create_all()
        report = await sweeper.run(today=args.today)
    except HolidayLoadError as exc:
        logger.error("Sweep aborted: %s", exc)
        return 2
    finally:
        await db.close()

    print(json.dumps(report.model_dump(mode="json"), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
