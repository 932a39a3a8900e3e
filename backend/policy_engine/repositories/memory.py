"""Process-local policy store for tests and single-instance runs."""

import asyncio
from datetime import datetime
from typing import Callable, Optional

from policy_engine.core.enums import LoanType, PolicyCategory, PolicyStatus
from policy_engine.core.exceptions import ConcurrencyConflictError, PolicyNotFoundError
from policy_engine.models.domain.policy import Policy, as_utc, utcnow
from policy_engine.repositories.base import PolicyStore


def _listing_order(policy: Policy) -> tuple:
    return (policy.policy_code or "", -policy.version_number)


class InMemoryPolicyStore(PolicyStore):
    """
    Dictionary-backed PolicyStore.

    Writes are serialized with an ``asyncio.Lock`` so the lock-version
    compare-and-swap is atomic across tasks on one event loop. Policies are
    copied on the way in and on the way out.
    """

    def __init__(self):
        self._policies: dict[str, Policy] = {}
        self._sequences: dict[int, int] = {}
        self._lock = asyncio.Lock()

    # ===== Lookup =====

    async def get_by_id(self, policy_id: str) -> Optional[Policy]:
        policy = self._policies.get(policy_id)
        return policy.copy() if policy else None

    async def get_latest_by_code(self, policy_code: str) -> Optional[Policy]:
        versions = await self.list_versions(policy_code)
        return versions[0] if versions else None

    async def get_version(self, policy_code: str, version_number: int) -> Optional[Policy]:
        for policy in self._policies.values():
            if policy.policy_code == policy_code and policy.version_number == version_number:
                return policy.copy()
        return None

    async def list_versions(self, policy_code: str) -> list[Policy]:
        return self._select(lambda p: p.policy_code == policy_code)

    # ===== Writes =====

    async def save(self, policy: Policy, expected_lock_version: Optional[int] = None) -> Policy:
        async with self._lock:
            if expected_lock_version is None:
                self._check_insert(policy)
                stored = policy.copy()
                stored.lock_version = 0
            else:
                current = self._policies.get(policy.id)
                if current is None:
                    raise PolicyNotFoundError.for_id(policy.id)
                if current.lock_version != expected_lock_version:
                    raise ConcurrencyConflictError(
                        policy.id, expected_lock_version, current.lock_version
                    )
                stored = policy.copy()
                stored.lock_version = expected_lock_version + 1

            now = utcnow()
            stored.created_at = stored.created_at or now
            stored.updated_at = now
            self._policies[stored.id] = stored
            return stored.copy()

    def _check_insert(self, policy: Policy) -> None:
        if policy.id in self._policies:
            raise ConcurrencyConflictError(policy.id, None, self._policies[policy.id].lock_version)
        for existing in self._policies.values():
            if (
                existing.policy_code == policy.policy_code
                and existing.version_number == policy.version_number
            ):
                raise ConcurrencyConflictError(existing.id, None, existing.lock_version)

    async def delete(self, policy_id: str, expected_lock_version: Optional[int] = None) -> None:
        async with self._lock:
            current = self._policies.get(policy_id)
            if current is None:
                raise PolicyNotFoundError.for_id(policy_id)
            if expected_lock_version is not None and current.lock_version != expected_lock_version:
                raise ConcurrencyConflictError(
                    policy_id, expected_lock_version, current.lock_version
                )
            del self._policies[policy_id]

    # ===== Queries =====

    async def find_active_effective(
        self,
        loan_type: LoanType,
        category: Optional[PolicyCategory] = None,
        now: Optional[datetime] = None,
    ) -> list[Policy]:
        now = as_utc(now) or utcnow()
        return self._select(
            lambda p: p.is_effective(now) and p.applies_to(loan_type, category)
        )

    async def find_all(self) -> list[Policy]:
        return self._select(lambda p: True)

    async def find_by_status(self, status: PolicyStatus) -> list[Policy]:
        return self._select(lambda p: p.status == status)

    async def find_by_category(self, category: PolicyCategory) -> list[Policy]:
        return self._select(lambda p: p.category == category)

    async def find_by_loan_type(self, loan_type: LoanType) -> list[Policy]:
        return self._select(lambda p: p.loan_type == loan_type)

    async def find_by_tag(self, tag: str) -> list[Policy]:
        return self._select(lambda p: tag in p.tags)

    async def search_by_text(self, query: str) -> list[Policy]:
        needle = query.lower()
        return self._select(
            lambda p: needle in p.name.lower() or needle in (p.description or "").lower()
        )

    async def exists_by_name(self, name: str, exclude_code: Optional[str] = None) -> bool:
        wanted = name.strip().lower()
        return any(
            p.name.strip().lower() == wanted and (exclude_code is None or p.policy_code != exclude_code)
            for p in self._policies.values()
        )

    async def count(self) -> int:
        return len(self._policies)

    async def count_by_status(self, status: PolicyStatus) -> int:
        return sum(1 for p in self._policies.values() if p.status == status)

    async def count_by_category_and_status(
        self, category: PolicyCategory, status: PolicyStatus
    ) -> int:
        return sum(
            1 for p in self._policies.values() if p.category == category and p.status == status
        )

    async def ping(self) -> bool:
        return True

    async def _next_sequence_value(self, year: int) -> int:
        async with self._lock:
            value = self._sequences.get(year, 0) + 1
            self._sequences[year] = value
            return value

    def _select(self, predicate: Callable[[Policy], bool]) -> list[Policy]:
        matches = [p.copy() for p in self._policies.values() if predicate(p)]
        return sorted(matches, key=_listing_order)
