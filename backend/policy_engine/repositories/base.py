"""Policy store interface shared by the in-memory and SQL implementations."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from policy_engine.core.enums import LoanType, PolicyCategory, PolicyStatus
from policy_engine.models.domain.policy import Policy


def format_policy_code(prefix: str, year: int, sequence: int) -> str:
    """``POL``, 2026, 7 -> ``POL-2026-000007``."""
    return f"{prefix}-{year}-{sequence:06d}"


class PolicyStore(ABC):
    """
    Durable storage for policies, keyed by id and by (code, version).

    Every policy returned is a detached copy: mutating it has no effect on
    the store until it is passed back to ``save``. ``lock_version`` is owned
    by the store (0 after insert, +1 per successful save).

    List methods return policies ordered by policy code, then newest
    version first.
    """

    # ===== Lookup =====

    @abstractmethod
    async def get_by_id(self, policy_id: str) -> Optional[Policy]:
        """Return the policy with this id, or None."""

    @abstractmethod
    async def get_latest_by_code(self, policy_code: str) -> Optional[Policy]:
        """Return the highest version of a policy code, or None."""

    @abstractmethod
    async def get_version(self, policy_code: str, version_number: int) -> Optional[Policy]:
        """Return one specific version of a policy code, or None."""

    @abstractmethod
    async def list_versions(self, policy_code: str) -> list[Policy]:
        """All versions of a policy code, newest first (empty if unknown)."""

    # ===== Writes =====

    @abstractmethod
    async def save(self, policy: Policy, expected_lock_version: Optional[int] = None) -> Policy:
        """
        Insert or update a policy.

        Args:
            policy: The policy to store
            expected_lock_version: None inserts a new policy; otherwise the
                stored lock version must equal this value

        Returns:
            The stored copy with its new lock_version

        Raises:
            PolicyNotFoundError: Updating a policy that does not exist
            ConcurrencyConflictError: Stale lock version, duplicate id or
                duplicate (code, version)
        """

    @abstractmethod
    async def delete(self, policy_id: str, expected_lock_version: Optional[int] = None) -> None:
        """
        Remove a policy.

        Raises:
            PolicyNotFoundError: If the policy does not exist
            ConcurrencyConflictError: If expected_lock_version is stale
        """

    # ===== Queries =====

    @abstractmethod
    async def find_active_effective(
        self,
        loan_type: LoanType,
        category: Optional[PolicyCategory] = None,
        now: Optional[datetime] = None,
    ) -> list[Policy]:
        """ACTIVE policies effective at ``now`` for the loan type (or ALL) and category."""

    @abstractmethod
    async def find_all(self) -> list[Policy]:
        """Every stored policy version."""

    @abstractmethod
    async def find_by_status(self, status: PolicyStatus) -> list[Policy]:
        pass

    @abstractmethod
    async def find_by_category(self, category: PolicyCategory) -> list[Policy]:
        pass

    @abstractmethod
    async def find_by_loan_type(self, loan_type: LoanType) -> list[Policy]:
        """Policies targeting exactly this loan type (ALL is not expanded)."""

    @abstractmethod
    async def find_by_tag(self, tag: str) -> list[Policy]:
        pass

    @abstractmethod
    async def search_by_text(self, query: str) -> list[Policy]:
        """Case-insensitive substring match on name or description."""

    @abstractmethod
    async def exists_by_name(self, name: str, exclude_code: Optional[str] = None) -> bool:
        """
        Case-insensitive name check.

        Args:
            name: Name to look for
            exclude_code: Ignore versions of this policy code (a policy may
                keep its own name across versions)
        """

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def count_by_status(self, status: PolicyStatus) -> int:
        pass

    @abstractmethod
    async def count_by_category_and_status(
        self, category: PolicyCategory, status: PolicyStatus
    ) -> int:
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the backing storage is reachable."""

    # ===== Code allocation =====

    async def next_policy_code(self, year: int, prefix: str = "POL") -> str:
        """
        Allocate the next policy code for a year.

        Codes are unique and never reused; a failed save may leave a gap.
        """
        sequence = await self._next_sequence_value(year)
        return format_policy_code(prefix, year, sequence)

    @abstractmethod
    async def _next_sequence_value(self, year: int) -> int:
        """Atomically advance and return the per-year counter (first value is 1)."""
