"""Tests for PostgresCaseRepository with SQLite async."""

from __future__ import annotations

from datetime import date

import pytest

from karin.core.errors import StaleCaseError
from karin.db.engine import DatabaseManager
from karin.process.controller import CaseProcessController
from karin.process.models import Case, Recommendation, RecommendationStatus
from karin.process.stages import StageId
from karin.repositories.postgres.cases import PostgresCaseRepository

from conftest import NOW, TENANT


@pytest.fixture
async def repo():
    db = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await db.create_all()
    yield PostgresCaseRepository(db)
    await db.close()


async def test_save_and_get(repo):
    saved = await repo.save_case(Case(tenant_id=TENANT, id="c-1", stage_facts={"informed_rights": True}))
    assert saved.version == 1

    found = await repo.get_case(TENANT, "c-1")
    assert found is not None
    assert found.version == 1
    assert found.stage_facts == {"informed_rights": True}
    assert await repo.get_case("other", "c-1") is None


async def test_update_bumps_version(repo):
    saved = await repo.save_case(Case(tenant_id=TENANT, id="c-1"))
    saved.current_stage = StageId.RECEPTION
    updated = await repo.save_case(saved)
    assert updated.version == 2
    assert (await repo.get_case(TENANT, "c-1")).current_stage == StageId.RECEPTION


async def test_stale_version_is_rejected(repo):
    saved = await repo.save_case(Case(tenant_id=TENANT, id="c-1"))
    await repo.save_case(saved)
    with pytest.raises(StaleCaseError):
        await repo.save_case(saved)


async def test_duplicate_insert_is_rejected(repo):
    await repo.save_case(Case(tenant_id=TENANT, id="c-1"))
    with pytest.raises(StaleCaseError):
        await repo.save_case(Case(tenant_id=TENANT, id="c-1"))


async def test_list_tenants_and_cases(repo):
    await repo.save_case(Case(tenant_id="globex", id="c-9"))
    await repo.save_case(Case(tenant_id=TENANT, id="c-2"))
    await repo.save_case(Case(tenant_id=TENANT, id="c-1"))
    await repo.save_recommendation(Recommendation(tenant_id="initech", case_id="x"))

    assert await repo.list_tenants() == [TENANT, "globex", "initech"]
    assert [c.id for c in await repo.list_cases(TENANT)] == ["c-1", "c-2"]
    assert await repo.async_case_count() == 3


async def test_recommendation_round_trip(repo):
    rec = Recommendation(
        tenant_id=TENANT, case_id="c-1", action="Capacitación", due_date=date(2025, 4, 1),
        assigned_user_id="user-3",
    )
    await repo.save_recommendation(rec)
    rec.status = RecommendationStatus.CLOSED
    await repo.save_recommendation(rec)

    found = await repo.get_recommendation(rec.id)
    assert found.status == RecommendationStatus.CLOSED
    assert found.due_date == date(2025, 4, 1)
    assert [r.id for r in await repo.list_recommendations(TENANT)] == [rec.id]


async def test_case_count_property_raises(repo):
    with pytest.raises(NotImplementedError):
        _ = repo.case_count


async def test_controller_over_sql_store(repo, machine):
    controller = CaseProcessController(repo, machine)
    await controller.open_case(TENANT, "c-1", "admin-1", now=NOW)
    await controller.advance_stage(TENANT, "c-1", StageId.RECEPTION, "inv-1", now=NOW)

    case = await repo.get_case(TENANT, "c-1")
    assert case.version == 2
    assert case.current_stage == StageId.RECEPTION
    assert case.get_deadline("dt_initial_notification").due_date == date(2025, 3, 6)
    assert len(case.activities) == 2
