"""PostgreSQL case and recommendation repository."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from karin.core.errors import StaleCaseError
from karin.db.engine import DatabaseManager
from karin.db.models import CaseRow, RecommendationRow
from karin.process.models import Case, Recommendation, RecommendationStatus


class PostgresCaseRepository:
    """Postgres-backed case storage with optimistic version checks."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get_case(self, tenant_id: str, case_id: str) -> Case | None:
        async with self._db.session() as db:
            row = await db.get(CaseRow, (tenant_id, case_id))
            if row is None:
                return None
            return self._row_to_case(row)

    async def save_case(self, case: Case) -> Case:
        stored = case.model_copy(deep=True, update={"version": case.version + 1})
        document = stored.model_dump(mode="json")
        now = datetime.now(timezone.utc)

        async with self._db.session() as db:
            if case.version == 0:
                db.add(
                    CaseRow(
                        tenant_id=case.tenant_id,
                        case_id=case.id,
                        current_stage=stored.current_stage.value,
                        is_legally_regulated=stored.is_legally_regulated,
                        version=stored.version,
                        document=document,
                        updated_at=now,
                    )
                )
                try:
                    await db.commit()
                except IntegrityError as exc:
                    await db.rollback()
                    raise StaleCaseError(
                        f"Case {case.tenant_id}/{case.id} already exists"
                    ) from exc
                return stored

            result = await db.execute(
                update(CaseRow)
                .where(
                    CaseRow.tenant_id == case.tenant_id,
                    CaseRow.case_id == case.id,
                    CaseRow.version == case.version,
                )
                .values(
                    current_stage=stored.current_stage.value,
                    is_legally_regulated=stored.is_legally_regulated,
                    version=stored.version,
                    document=document,
                    updated_at=now,
                )
            )
            if result.rowcount != 1:
                await db.rollback()
                raise StaleCaseError(
                    f"Case {case.tenant_id}/{case.id} changed since version {case.version}"
                )
            await db.commit()
        return stored

    async def list_tenants(self) -> list[str]:
        async with self._db.session() as db:
            cases = await db.execute(select(CaseRow.tenant_id).distinct())
            recs = await db.execute(select(RecommendationRow.tenant_id).distinct())
            return sorted(set(cases.scalars().all()) | set(recs.scalars().all()))

    async def list_cases(self, tenant_id: str) -> list[Case]:
        async with self._db.session() as db:
            result = await db.execute(
                select(CaseRow).where(CaseRow.tenant_id == tenant_id).order_by(CaseRow.case_id)
            )
            return [self._row_to_case(r) for r in result.scalars().all()]

    async def save_recommendation(self, recommendation: Recommendation) -> Recommendation:
        async with self._db.session() as db:
            existing = await db.get(RecommendationRow, recommendation.id)
            if existing:
                existing.tenant_id = recommendation.tenant_id
                existing.case_id = recommendation.case_id
                existing.action = recommendation.action
                existing.due_date = recommendation.due_date
                existing.status = recommendation.status.value
                existing.assigned_user_id = recommendation.assigned_user_id
            else:
                db.add(
                    RecommendationRow(
                        id=recommendation.id,
                        tenant_id=recommendation.tenant_id,
                        case_id=recommendation.case_id,
                        action=recommendation.action,
                        due_date=recommendation.due_date,
                        status=recommendation.status.value,
                        assigned_user_id=recommendation.assigned_user_id,
                    )
                )
            await db.commit()
        return recommendation

    async def get_recommendation(self, recommendation_id: str) -> Recommendation | None:
        async with self._db.session() as db:
            row = await db.get(RecommendationRow, recommendation_id)
            if row is None:
                return None
            return self._row_to_recommendation(row)

    async def list_recommendations(self, tenant_id: str) -> list[Recommendation]:
        async with self._db.session() as db:
            result = await db.execute(
                select(RecommendationRow).where(RecommendationRow.tenant_id == tenant_id)
            )
            return [self._row_to_recommendation(r) for r in result.scalars().all()]

    @property
    def case_count(self) -> int:
        raise NotImplementedError("Use async_case_count() instead for Postgres")

    async def async_case_count(self) -> int:
        async with self._db.session() as db:
            result = await db.execute(select(func.count()).select_from(CaseRow))
            return result.scalar_one()

    @staticmethod
    def _row_to_case(row: CaseRow) -> Case:
        case = Case.model_validate(row.document)
        case.version = row.version
        return case

    @staticmethod
    def _row_to_recommendation(row: RecommendationRow) -> Recommendation:
        return Recommendation(
            id=row.id,
            tenant_id=row.tenant_id,
            case_id=row.case_id,
            action=row.action,
            due_date=row.due_date,
            status=RecommendationStatus(row.status),
            assigned_user_id=row.assigned_user_id,
        )
