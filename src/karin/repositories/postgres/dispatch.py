"""PostgreSQL dispatch ledger: one claim per dedupe key per day."""

from __future__ import annotations

from datetime import date

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from karin.db.engine import DatabaseManager
from karin.db.models import NotificationDispatchRow


class PostgresDispatchLedger:
    """Claims rely on the (dedupe_key, day) primary key, so concurrent
    sweeps racing on the same key still emit at most once."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def claim(self, dedupe_key: str, day: date) -> bool:
        async with self._db.session() as db:
            db.add(NotificationDispatchRow(dedupe_key=dedupe_key, day=day))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                return False
        return True

    async def release(self, dedupe_key: str, day: date) -> None:
        async with self._db.session() as db:
            await db.execute(
                delete(NotificationDispatchRow).where(
                    NotificationDispatchRow.dedupe_key == dedupe_key,
                    NotificationDispatchRow.day == day,
                )
            )
            await db.commit()

    async def is_claimed(self, dedupe_key: str, day: date) -> bool:
        async with self._db.session() as db:
            row = await db.get(NotificationDispatchRow, (dedupe_key, day))
            return row is not None

    async def purge_before(self, day: date) -> int:
        async with self._db.session() as db:
            result = await db.execute(
                delete(NotificationDispatchRow).where(NotificationDispatchRow.day < day)
            )
            await db.commit()
            return result.rowcount

    @property
    def count(self) -> int:
        raise NotImplementedError("Use async_count() instead for Postgres")

    async def async_count(self) -> int:
        async with self._db.session() as db:
            result = await db.execute(select(func.count()).select_from(NotificationDispatchRow))
            return result.scalar_one()
