"""Tests for the SQLAlchemy policy store against in-memory SQLite."""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from policy_engine.core.enums import DecisionStatus, LoanType, PolicyCategory, PolicyStatus
from policy_engine.core.exceptions import ConcurrencyConflictError, PolicyNotFoundError
from policy_engine.db.base import Base
from policy_engine.models.domain.policy import Policy
from policy_engine.repositories import SqlAlchemyPolicyStore
from policy_engine.services import PolicyEvaluationService, PolicyLifecycleManager

from conftest import FIXED_NOW, make_definition, make_rule


@pytest.fixture
async def sql_store():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield SqlAlchemyPolicyStore(session)
    await engine.dispose()


@pytest.fixture
def sql_manager(sql_store) -> PolicyLifecycleManager:
    return PolicyLifecycleManager(sql_store, clock=lambda: FIXED_NOW)


def sample_policy(**overrides) -> Policy:
    values = {
        "name": "Vehicle eligibility",
        "category": PolicyCategory.ELIGIBILITY,
        "loan_type": LoanType.VEHICLE_LOAN,
        "policy_code": "POL-2026-000042",
        "rules": [
            make_rule(
                "Age band",
                conditions=[{"field": "applicant.age", "operator": "BETWEEN", "minValue": "21", "maxValue": "65"}],
                actions=[{"type": "APPROVE"}, {"type": "SET_MAX_TENURE", "parameters": {"months": "84"}}],
            )
        ],
        "tags": {"vehicle", "retail"},
    }
    values.update(overrides)
    return Policy(**values)


class TestSqlStoreWrites:
    """Tests for insert, compare-and-swap update and delete."""

    async def test_round_trip(self, sql_store):
        """A saved policy reads back with rules, tags and lock version 0."""
        saved = await sql_store.save(sample_policy(description="Two-wheelers and cars"))
        loaded = await sql_store.get_by_id(saved.id)
        assert loaded.lock_version == 0
        assert loaded.policy_code == "POL-2026-000042"
        assert loaded.rules == saved.rules
        assert loaded.tags == {"vehicle", "retail"}
        assert loaded.description == "Two-wheelers and cars"
        assert loaded.created_at is not None

    async def test_update_increments_lock_version(self, sql_store):
        """Each successful save bumps the lock version by one."""
        saved = await sql_store.save(sample_policy())
        saved.priority = 5
        updated = await sql_store.save(saved, expected_lock_version=0)
        assert updated.lock_version == 1
        reloaded = await sql_store.get_by_id(saved.id)
        assert reloaded.priority == 5
        assert reloaded.lock_version == 1

    async def test_stale_update_conflicts(self, sql_store):
        """A save against an outdated lock version is rejected."""
        saved = await sql_store.save(sample_policy())
        await sql_store.save(saved, expected_lock_version=0)
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await sql_store.save(saved, expected_lock_version=0)
        assert exc_info.value.actual_lock_version == 1

    async def test_update_of_missing_policy(self, sql_store):
        """Updating an unknown id is a not-found error."""
        with pytest.raises(PolicyNotFoundError):
            await sql_store.save(sample_policy(), expected_lock_version=0)

    async def test_delete(self, sql_store):
        """Delete honours the lock version and removes the row."""
        saved = await sql_store.save(sample_policy())
        with pytest.raises(ConcurrencyConflictError):
            await sql_store.delete(saved.id, expected_lock_version=3)
        await sql_store.delete(saved.id, expected_lock_version=0)
        assert await sql_store.get_by_id(saved.id) is None
        with pytest.raises(PolicyNotFoundError):
            await sql_store.delete(saved.id)

    async def test_policy_code_sequence(self, sql_store):
        """Codes are allocated per year from a stored sequence."""
        assert await sql_store.next_policy_code(2026) == "POL-2026-000001"
        assert await sql_store.next_policy_code(2026) == "POL-2026-000002"
        assert await sql_store.next_policy_code(2027, prefix="LP") == "LP-2027-000001"

    async def test_sequence_opened_concurrently(self, sql_store, monkeypatch):
        """Losing the race to open a year retries on the existing row instead of failing."""
        assert await sql_store.next_policy_code(2026) == "POL-2026-000001"
        await sql_store.db.commit()
        sql_store.db.expunge_all()

        # The first read misses the row, as if another transaction inserted it just after
        reads = []
        original = sql_store._read_sequence

        async def stale_first_read(year):
            reads.append(year)
            return None if len(reads) == 1 else await original(year)

        monkeypatch.setattr(sql_store, "_read_sequence", stale_first_read)

        assert await sql_store.next_policy_code(2026) == "POL-2026-000002"
        assert reads == [2026, 2026]
        saved = await sql_store.save(sample_policy(policy_code="POL-2026-000002"))
        assert (await sql_store.get_by_id(saved.id)).policy_code == "POL-2026-000002"


class TestSqlStoreQueries:
    """Tests for lookups, filters and counts."""

    async def test_versions(self, sql_store):
        """Versions are listed newest first and the latest wins code lookups."""
        v1 = await sql_store.save(sample_policy(status=PolicyStatus.INACTIVE))
        v2 = await sql_store.save(sample_policy(version_number=2, previous_version_id=v1.id))
        assert [p.version_number for p in await sql_store.list_versions("POL-2026-000042")] == [2, 1]
        assert (await sql_store.get_latest_by_code("POL-2026-000042")).id == v2.id
        assert (await sql_store.get_version("POL-2026-000042", 1)).id == v1.id
        assert await sql_store.get_version("POL-2026-000042", 3) is None

    async def test_find_active_effective(self, sql_store):
        """Only ACTIVE policies for the loan type or ALL, inside their window, are returned."""
        await sql_store.save(sample_policy(status=PolicyStatus.ACTIVE))
        await sql_store.save(
            sample_policy(name="All loans", policy_code="POL-2026-000043", loan_type=LoanType.ALL, status=PolicyStatus.ACTIVE)
        )
        await sql_store.save(
            sample_policy(
                name="Expired",
                policy_code="POL-2026-000044",
                status=PolicyStatus.ACTIVE,
                effective_until=FIXED_NOW - timedelta(days=1),
            )
        )
        await sql_store.save(sample_policy(name="Draft", policy_code="POL-2026-000045"))
        await sql_store.save(
            sample_policy(
                name="Pricing",
                policy_code="POL-2026-000046",
                category=PolicyCategory.PRICING,
                status=PolicyStatus.ACTIVE,
            )
        )

        found = await sql_store.find_active_effective(LoanType.VEHICLE_LOAN, PolicyCategory.ELIGIBILITY, FIXED_NOW)
        assert sorted(p.name for p in found) == ["All loans", "Vehicle eligibility"]

    async def test_filters_and_counts(self, sql_store):
        """Tag, text, name and count queries."""
        await sql_store.save(sample_policy(status=PolicyStatus.ACTIVE, description="Cars"))
        await sql_store.save(
            sample_policy(name="Gold rates", policy_code="POL-2026-000050", loan_type=LoanType.GOLD_LOAN, category=PolicyCategory.PRICING, tags={"gold"})
        )
        assert [p.name for p in await sql_store.find_by_tag("gold")] == ["Gold rates"]
        assert [p.name for p in await sql_store.search_by_text("CARS")] == ["Vehicle eligibility"]
        assert [p.name for p in await sql_store.find_by_loan_type(LoanType.GOLD_LOAN)] == ["Gold rates"]
        assert [p.name for p in await sql_store.find_by_status(PolicyStatus.ACTIVE)] == ["Vehicle eligibility"]
        assert await sql_store.exists_by_name("GOLD RATES")
        assert not await sql_store.exists_by_name("Gold rates", exclude_code="POL-2026-000050")
        assert await sql_store.count() == 2
        assert await sql_store.count_by_status(PolicyStatus.DRAFT) == 1
        assert await sql_store.count_by_category_and_status(PolicyCategory.ELIGIBILITY, PolicyStatus.ACTIVE) == 1
        assert await sql_store.ping()


class TestSqlStoreWithServices:
    """End-to-end lifecycle and evaluation over the SQL store."""

    async def test_lifecycle_and_evaluation(self, sql_store, sql_manager):
        """Create, activate and evaluate a policy stored in SQL."""
        policy = await sql_manager.create(
            make_definition(
                "Vehicle approval",
                loan_type=LoanType.VEHICLE_LOAN,
                rules=[
                    make_rule(
                        "Good score",
                        conditions=[{"field": "applicant.cibilScore", "operator": "GREATER_THAN_OR_EQUAL", "value": "700"}],
                        actions=[{"type": "APPROVE"}, {"type": "SET_INTEREST_RATE", "parameters": {"rate": "9.25"}}],
                    )
                ],
            )
        )
        assert policy.policy_code == "POL-2026-000001"
        await sql_manager.activate(policy.id, expected_lock_version=0)

        service = PolicyEvaluationService(sql_store)
        decision = await service.evaluate(LoanType.VEHICLE_LOAN, None, {"applicant": {"cibilScore": 712}})
        assert decision.status == DecisionStatus.APPROVED
        assert str(decision.interest_rate) == "9.25"

        v2 = await sql_manager.create_new_version(policy.id)
        assert v2.version_number == 2
        assert (await sql_manager.get(policy.id)).status == PolicyStatus.ACTIVE
