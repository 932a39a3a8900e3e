"""SQLAlchemy-backed policy store."""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Select, delete, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from policy_engine.core.enums import LoanType, PolicyCategory, PolicyStatus
from policy_engine.core.exceptions import ConcurrencyConflictError, PolicyNotFoundError
from policy_engine.db.models import PolicyCodeSequence, PolicyRecord
from policy_engine.models.domain.policy import Policy, PolicyRule, as_utc, utcnow
from policy_engine.repositories.base import PolicyStore

logger = logging.getLogger(__name__)


def record_values(policy: Policy) -> dict[str, Any]:
    """Column values for a policy (everything except id and lock_version)."""
    return {
        "policy_code": policy.policy_code,
        "name": policy.name,
        "description": policy.description,
        "category": policy.category.value,
        "loan_type": policy.loan_type.value,
        "status": policy.status.value,
        "version_number": policy.version_number,
        "previous_version_id": policy.previous_version_id,
        "rules": [rule.to_dict() for rule in policy.rules],
        "priority": policy.priority,
        "effective_from": policy.effective_from,
        "effective_until": policy.effective_until,
        "tags": sorted(policy.tags),
        "created_by": policy.created_by,
        "modified_by": policy.modified_by,
    }


def to_domain(record: PolicyRecord) -> Policy:
    """Build a detached domain Policy from a stored record."""
    return Policy(
        id=record.id,
        policy_code=record.policy_code,
        name=record.name,
        description=record.description,
        category=PolicyCategory(record.category),
        loan_type=LoanType(record.loan_type),
        status=PolicyStatus(record.status),
        version_number=record.version_number,
        previous_version_id=record.previous_version_id,
        rules=[PolicyRule.from_dict(rule) for rule in record.rules or []],
        priority=record.priority,
        effective_from=as_utc(record.effective_from),
        effective_until=as_utc(record.effective_until),
        tags=set(record.tags or []),
        created_by=record.created_by,
        modified_by=record.modified_by,
        created_at=as_utc(record.created_at),
        updated_at=as_utc(record.updated_at),
        lock_version=record.lock_version,
    )


class SqlAlchemyPolicyStore(PolicyStore):
    """
    PolicyStore over an AsyncSession.

    Updates are a single ``UPDATE ... WHERE id = :id AND lock_version = :expected``;
    a zero row count means the policy is gone or was changed by someone
    else. The session is committed by the caller (see ``get_db``).
    """

    SEQUENCE_ATTEMPTS = 5

    def __init__(self, db: AsyncSession):
        """
        Initialize the store.

        Args:
            db: Async database session
        """
        self.db = db

    def _select(self) -> Select:
        # Always reload rows: bulk UPDATEs bypass the identity map
        return (
            select(PolicyRecord)
            .execution_options(populate_existing=True)
            .order_by(PolicyRecord.policy_code, PolicyRecord.version_number.desc())
        )

    async def _all(self, stmt: Select) -> list[Policy]:
        result = await self.db.execute(stmt)
        return [to_domain(record) for record in result.scalars().all()]

    async def _one(self, stmt: Select) -> Optional[Policy]:
        result = await self.db.execute(stmt)
        record = result.scalars().first()
        return to_domain(record) if record else None

    async def _current_lock_version(self, policy_id: str) -> Optional[int]:
        return await self.db.scalar(
            select(PolicyRecord.lock_version).where(PolicyRecord.id == policy_id)
        )

    # ===== Lookup =====

    async def get_by_id(self, policy_id: str) -> Optional[Policy]:
        return await self._one(self._select().where(PolicyRecord.id == policy_id))

    async def get_latest_by_code(self, policy_code: str) -> Optional[Policy]:
        return await self._one(self._select().where(PolicyRecord.policy_code == policy_code))

    async def get_version(self, policy_code: str, version_number: int) -> Optional[Policy]:
        return await self._one(
            self._select().where(
                PolicyRecord.policy_code == policy_code,
                PolicyRecord.version_number == version_number,
            )
        )

    async def list_versions(self, policy_code: str) -> list[Policy]:
        return await self._all(self._select().where(PolicyRecord.policy_code == policy_code))

    # ===== Writes =====

    async def save(self, policy: Policy, expected_lock_version: Optional[int] = None) -> Policy:
        now = utcnow()
        values = record_values(policy)
        stored = policy.copy()
        stored.updated_at = now

        if expected_lock_version is None:
            stored.created_at = policy.created_at or now
            stored.lock_version = 0
            self.db.add(
                PolicyRecord(
                    id=policy.id,
                    created_at=stored.created_at,
                    updated_at=now,
                    lock_version=0,
                    **values,
                )
            )
            try:
                await self.db.flush()
            except IntegrityError:
                logger.info(f"Insert of policy {policy.id} rejected as a duplicate")
                raise ConcurrencyConflictError(policy.id, None)
            return stored

        stmt = (
            update(PolicyRecord)
            .where(
                PolicyRecord.id == policy.id,
                PolicyRecord.lock_version == expected_lock_version,
            )
            .values(updated_at=now, lock_version=expected_lock_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            actual = await self._current_lock_version(policy.id)
            if actual is None:
                raise PolicyNotFoundError.for_id(policy.id)
            raise ConcurrencyConflictError(policy.id, expected_lock_version, actual)

        stored.lock_version = expected_lock_version + 1
        return stored

    async def delete(self, policy_id: str, expected_lock_version: Optional[int] = None) -> None:
        stmt = delete(PolicyRecord).where(PolicyRecord.id == policy_id)
        if expected_lock_version is not None:
            stmt = stmt.where(PolicyRecord.lock_version == expected_lock_version)
        result = await self.db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 0:
            actual = await self._current_lock_version(policy_id)
            if actual is None:
                raise PolicyNotFoundError.for_id(policy_id)
            raise ConcurrencyConflictError(policy_id, expected_lock_version, actual)

    # ===== Queries =====

    async def find_active_effective(
        self,
        loan_type: LoanType,
        category: Optional[PolicyCategory] = None,
        now: Optional[datetime] = None,
    ) -> list[Policy]:
        now = as_utc(now) or utcnow()
        stmt = self._select().where(
            PolicyRecord.status == PolicyStatus.ACTIVE.value,
            PolicyRecord.loan_type.in_([loan_type.value, LoanType.ALL.value]),
        )
        if category is not None:
            stmt = stmt.where(PolicyRecord.category == category.value)
        # The effective window is checked in Python: SQLite drops time zones
        return [policy for policy in await self._all(stmt) if policy.is_effective(now)]

    async def find_all(self) -> list[Policy]:
        return await self._all(self._select())

    async def find_by_status(self, status: PolicyStatus) -> list[Policy]:
        return await self._all(self._select().where(PolicyRecord.status == status.value))

    async def find_by_category(self, category: PolicyCategory) -> list[Policy]:
        return await self._all(self._select().where(PolicyRecord.category == category.value))

    async def find_by_loan_type(self, loan_type: LoanType) -> list[Policy]:
        return await self._all(self._select().where(PolicyRecord.loan_type == loan_type.value))

    async def find_by_tag(self, tag: str) -> list[Policy]:
        # Tags live in a JSON array; filter portably after loading
        return [policy for policy in await self.find_all() if tag in policy.tags]

    async def search_by_text(self, query: str) -> list[Policy]:
        pattern = f"%{query.lower()}%"
        return await self._all(
            self._select().where(
                or_(
                    func.lower(PolicyRecord.name).like(pattern),
                    func.lower(func.coalesce(PolicyRecord.description, "")).like(pattern),
                )
            )
        )

    async def exists_by_name(self, name: str, exclude_code: Optional[str] = None) -> bool:
        stmt = select(PolicyRecord.id).where(
            func.lower(PolicyRecord.name) == name.strip().lower()
        )
        if exclude_code is not None:
            stmt = stmt.where(PolicyRecord.policy_code != exclude_code)
        return await self.db.scalar(stmt.limit(1)) is not None

    async def count(self) -> int:
        return await self.db.scalar(select(func.count()).select_from(PolicyRecord))

    async def count_by_status(self, status: PolicyStatus) -> int:
        return await self.db.scalar(
            select(func.count())
            .select_from(PolicyRecord)
            .where(PolicyRecord.status == status.value)
        )

    async def count_by_category_and_status(
        self, category: PolicyCategory, status: PolicyStatus
    ) -> int:
        return await self.db.scalar(
            select(func.count())
            .select_from(PolicyRecord)
            .where(
                PolicyRecord.category == category.value,
                PolicyRecord.status == status.value,
            )
        )

    async def ping(self) -> bool:
        await self.db.execute(text("SELECT 1"))
        return True

    async def _read_sequence(self, year: int) -> Optional[int]:
        return await self.db.scalar(
            select(PolicyCodeSequence.value).where(PolicyCodeSequence.year == year)
        )

    async def _next_sequence_value(self, year: int) -> int:
        for _ in range(self.SEQUENCE_ATTEMPTS):
            current = await self._read_sequence(year)
            if current is None:
                try:
                    # Savepoint keeps the request transaction usable if the insert loses
                    async with self.db.begin_nested():
                        self.db.add(PolicyCodeSequence(year=year, value=1))
                except IntegrityError:
                    logger.debug(f"Policy code sequence for {year} opened concurrently, retrying")
                    continue
                return 1

            result = await self.db.execute(
                update(PolicyCodeSequence)
                .where(PolicyCodeSequence.year == year, PolicyCodeSequence.value == current)
                .values(value=current + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return current + 1
            logger.debug(f"Policy code sequence for {year} moved, retrying")

        raise ConcurrencyConflictError(f"policy-code-sequence/{year}", None)
