"""In-memory case and recommendation store."""

from __future__ import annotations

from karin.core.errors import StaleCaseError
from karin.process.models import Case, Recommendation


class CaseStore:
    """In-memory store for cases and recommendations.

    Cases are copied on the way in and out, so callers never share
    mutable state with the store. ``save_case`` rejects a case whose
    ``version`` does not match the stored one.
    """

    def __init__(self) -> None:
        self._cases: dict[tuple[str, str], Case] = {}
        self._recommendations: dict[str, Recommendation] = {}

    def get_case(self, tenant_id: str, case_id: str) -> Case | None:
        case = self._cases.get((tenant_id, case_id))
        return case.model_copy(deep=True) if case is not None else None

    def save_case(self, case: Case) -> Case:
        key = (case.tenant_id, case.id)
        current = self._cases.get(key)
        current_version = current.version if current is not None else 0
        if case.version != current_version:
            raise StaleCaseError(
                f"Case {case.tenant_id}/{case.id} is at version {current_version}, "
                f"got {case.version}"
            )
        stored = case.model_copy(deep=True, update={"version": current_version + 1})
        self._cases[key] = stored
        return stored.model_copy(deep=True)

    def list_tenants(self) -> list[str]:
        tenants = {tenant for tenant, _ in self._cases}
        tenants.update(rec.tenant_id for rec in self._recommendations.values())
        return sorted(tenants)

    def list_cases(self, tenant_id: str) -> list[Case]:
        return [
            case.model_copy(deep=True)
            for (tenant, _), case in self._cases.items()
            if tenant == tenant_id
        ]

    def save_recommendation(self, recommendation: Recommendation) -> Recommendation:
        self._recommendations[recommendation.id] = recommendation.model_copy(deep=True)
        return recommendation

    def get_recommendation(self, recommendation_id: str) -> Recommendation | None:
        rec = self._recommendations.get(recommendation_id)
        return rec.model_copy(deep=True) if rec is not None else None

    def list_recommendations(self, tenant_id: str) -> list[Recommendation]:
        return [
            rec.model_copy(deep=True)
            for rec in self._recommendations.values()
            if rec.tenant_id == tenant_id
        ]

    @property
    def case_count(self) -> int:
        return len(self._cases)
