"""Policy lifecycle manager: versioned CRUD and state transitions over a PolicyStore."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from policy_engine.core.enums import LoanType, PolicyCategory, PolicyStatus
from policy_engine.core.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    PolicyNotFoundError,
    PolicyValidationError,
)
from policy_engine.models.domain.policy import (
    DEFAULT_PRIORITY,
    Policy,
    PolicyDefinition,
    PolicyRule,
    utcnow,
)
from policy_engine.repositories.base import PolicyStore
from policy_engine.services.validation import PolicyValidator

logger = logging.getLogger(__name__)


@dataclass
class PolicyStats:
    """Policy counts for dashboards."""

    total: int = 0
    active: int = 0
    draft: int = 0
    inactive: int = 0
    archived: int = 0
    active_by_category: dict[str, int] = field(default_factory=dict)


class PolicyLifecycleManager:
    """
    Lifecycle manager for policies.

    Every mutation reads the policy, checks the caller's expected lock
    version (when given), applies the change on the domain object and
    writes it back with a compare-and-swap on the lock version read. A
    conflict at either step raises ConcurrencyConflictError; nothing is
    retried here.
    """

    def __init__(
        self,
        store: PolicyStore,
        validator: Optional[PolicyValidator] = None,
        code_prefix: str = "POL",
        default_priority: int = DEFAULT_PRIORITY,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the lifecycle manager.

        Args:
            store: Policy store
            validator: Structural validator (a default one is created if omitted)
            code_prefix: Prefix for newly allocated policy codes
            default_priority: Priority for definitions that do not set one
            clock: Source of the current time (the year goes into policy codes)
        """
        self.store = store
        self.validator = validator or PolicyValidator()
        self.code_prefix = code_prefix
        self.default_priority = default_priority
        self.clock = clock

    # ===== Create / Update =====

    async def create(self, definition: PolicyDefinition, author: str = "system") -> Policy:
        """
        Create a DRAFT version 1 policy with a freshly allocated code.

        Args:
            definition: Policy content
            author: Acting user, recorded as creator and modifier

        Returns:
            The stored policy

        Raises:
            PolicyValidationError: If the policy is malformed or the name is taken
            ConcurrencyConflictError: If the policy code sequence kept moving
                under concurrent creates; safe to retry
        """
        policy = definition.to_policy(self.default_priority)
        policy.created_by = author
        policy.modified_by = author

        self.validator.validate(policy)
        if await self.store.exists_by_name(policy.name):
            raise PolicyValidationError(f"A policy named '{policy.name}' already exists")

        policy.policy_code = await self.store.next_policy_code(
            self.clock().year, self.code_prefix
        )
        saved = await self.store.save(policy)
        logger.info(f"Created policy {saved.policy_code} v1 '{saved.name}' by {author}")
        return saved

    async def update(
        self,
        policy_id: str,
        definition: PolicyDefinition,
        author: str = "system",
        expected_lock_version: Optional[int] = None,
    ) -> Policy:
        """
        Replace the content of a DRAFT or INACTIVE policy.

        Args:
            policy_id: Policy to update
            definition: New content (replaces the old content entirely)
            author: Acting user
            expected_lock_version: Lock version the caller last read

        Returns:
            The stored policy

        Raises:
            PolicyNotFoundError: If the policy does not exist
            InvalidStateError: If the policy is ACTIVE or ARCHIVED
            PolicyValidationError: If the new content is malformed or the
                new name belongs to another policy
            ConcurrencyConflictError: If the policy changed since it was read
        """
        policy = await self._load_for_update(policy_id, expected_lock_version)
        policy.ensure_mutable()

        previous_name = policy.name
        definition.apply_to(policy, self.default_priority)
        self.validator.validate(policy)
        if policy.name.lower() != previous_name.lower() and await self.store.exists_by_name(
            policy.name, exclude_code=policy.policy_code
        ):
            raise PolicyValidationError(f"A policy named '{policy.name}' already exists")

        saved = await self._save(policy, author)
        logger.info(f"Updated policy {saved.policy_code} v{saved.version_number} by {author}")
        return saved

    async def create_new_version(self, policy_id: str, author: str = "system") -> Policy:
        """
        Create the next DRAFT version of a policy.

        The new version shares the policy code, copies rules and tags and
        links back to the source. The source keeps its status.

        Raises:
            PolicyNotFoundError: If the policy does not exist
            InvalidStateError: If the next version number is already taken
        """
        source = await self.get(policy_id)
        next_number = source.version_number + 1
        if await self.store.get_version(source.policy_code, next_number) is not None:
            raise InvalidStateError(
                f"Version {next_number} of {source.policy_code} already exists; "
                f"create new versions from the latest version"
            )

        saved = await self.store.save(source.create_new_version(author))
        logger.info(
            f"Created version {saved.version_number} of {saved.policy_code} "
            f"from v{source.version_number} by {author}"
        )
        return saved

    # ===== State transitions =====

    async def activate(
        self,
        policy_id: str,
        author: str = "system",
        expected_lock_version: Optional[int] = None,
    ) -> Policy:
        """
        DRAFT or INACTIVE -> ACTIVE.

        Raises:
            InvalidStateError: On an illegal transition or when the policy
                has no enabled rules
        """
        policy = await self._load_for_update(policy_id, expected_lock_version)
        policy.activate()

        others = [
            version.version_number
            for version in await self.store.list_versions(policy.policy_code)
            if version.status == PolicyStatus.ACTIVE and version.id != policy.id
        ]
        if others:
            logger.warning(
                f"Activating {policy.policy_code} v{policy.version_number} while "
                f"version(s) {others} are still ACTIVE"
            )

        saved = await self._save(policy, author)
        logger.info(f"Activated policy {saved.policy_code} v{saved.version_number} by {author}")
        return saved

    async def deactivate(
        self,
        policy_id: str,
        author: str = "system",
        expected_lock_version: Optional[int] = None,
    ) -> Policy:
        """ACTIVE -> INACTIVE."""
        policy = await self._load_for_update(policy_id, expected_lock_version)
        policy.deactivate()
        saved = await self._save(policy, author)
        logger.info(f"Deactivated policy {saved.policy_code} v{saved.version_number} by {author}")
        return saved

    async def archive(
        self,
        policy_id: str,
        author: str = "system",
        expected_lock_version: Optional[int] = None,
    ) -> Policy:
        """DRAFT, ACTIVE or INACTIVE -> ARCHIVED."""
        policy = await self._load_for_update(policy_id, expected_lock_version)
        policy.archive()
        saved = await self._save(policy, author)
        logger.info(f"Archived policy {saved.policy_code} v{saved.version_number} by {author}")
        return saved

    async def delete(self, policy_id: str, expected_lock_version: Optional[int] = None) -> None:
        """
        Delete a DRAFT policy.

        Raises:
            PolicyNotFoundError: If the policy does not exist
            InvalidStateError: If the policy is not DRAFT
            ConcurrencyConflictError: If the policy changed since it was read
        """
        policy = await self._load_for_update(policy_id, expected_lock_version)
        policy.ensure_deletable()
        await self.store.delete(policy.id, policy.lock_version)
        logger.info(f"Deleted policy {policy.policy_code} v{policy.version_number}")

    # ===== Rule editing =====

    async def add_rule(
        self,
        policy_id: str,
        rule: PolicyRule,
        author: str = "system",
        expected_lock_version: Optional[int] = None,
    ) -> Policy:
        """Append a rule to a DRAFT or INACTIVE policy."""
        self.validator.validate_rule(rule)
        policy = await self._load_for_update(policy_id, expected_lock_version)
        policy.add_rule(rule)
        self.validator.validate(policy)
        saved = await self._save(policy, author)
        logger.info(f"Added rule '{rule.name}' to {saved.policy_code} v{saved.version_number}")
        return saved

    async def remove_rule(
        self,
        policy_id: str,
        rule_name: str,
        author: str = "system",
        expected_lock_version: Optional[int] = None,
    ) -> Policy:
        """
        Remove a rule by name from a DRAFT or INACTIVE policy.

        Raises:
            PolicyNotFoundError: If the policy or the rule does not exist
        """
        policy = await self._load_for_update(policy_id, expected_lock_version)
        if not policy.remove_rule(rule_name):
            raise PolicyNotFoundError(
                f"Rule '{rule_name}' not found in policy {policy.policy_code}",
                policy_id=policy.id,
                policy_code=policy.policy_code,
            )
        saved = await self._save(policy, author)
        logger.info(f"Removed rule '{rule_name}' from {saved.policy_code} v{saved.version_number}")
        return saved

    # ===== Reads =====

    async def get(self, policy_id: str) -> Policy:
        policy = await self.store.get_by_id(policy_id)
        if policy is None:
            raise PolicyNotFoundError.for_id(policy_id)
        return policy

    async def get_by_code(self, policy_code: str) -> Policy:
        """Latest version of a policy code."""
        policy = await self.store.get_latest_by_code(policy_code)
        if policy is None:
            raise PolicyNotFoundError.for_code(policy_code)
        return policy

    async def get_version(self, policy_code: str, version_number: int) -> Policy:
        policy = await self.store.get_version(policy_code, version_number)
        if policy is None:
            raise PolicyNotFoundError.for_code(policy_code, version_number)
        return policy

    async def get_version_history(self, policy_code: str) -> list[Policy]:
        """
        All versions of a policy code, newest first.

        Raises:
            PolicyNotFoundError: If the code is unknown
        """
        versions = await self.store.list_versions(policy_code)
        if not versions:
            raise PolicyNotFoundError.for_code(policy_code)
        return versions

    async def active_versions(self, policy_code: str) -> list[Policy]:
        """ACTIVE versions of a code; more than one means an old version was left active."""
        return [
            version
            for version in await self.store.list_versions(policy_code)
            if version.status == PolicyStatus.ACTIVE
        ]

    async def list_all(self) -> list[Policy]:
        return await self.store.find_all()

    async def list_by_status(self, status: PolicyStatus) -> list[Policy]:
        return await self.store.find_by_status(status)

    async def list_by_category(self, category: PolicyCategory) -> list[Policy]:
        return await self.store.find_by_category(category)

    async def list_by_loan_type(self, loan_type: LoanType) -> list[Policy]:
        return await self.store.find_by_loan_type(loan_type)

    async def list_by_tag(self, tag: str) -> list[Policy]:
        return await self.store.find_by_tag(tag)

    async def search(self, query: Optional[str]) -> list[Policy]:
        """Case-insensitive search on name and description; blank lists everything."""
        if not query or not query.strip():
            return await self.store.find_all()
        return await self.store.search_by_text(query.strip())

    async def get_stats(self) -> PolicyStats:
        stats = PolicyStats(
            total=await self.store.count(),
            active=await self.store.count_by_status(PolicyStatus.ACTIVE),
            draft=await self.store.count_by_status(PolicyStatus.DRAFT),
            inactive=await self.store.count_by_status(PolicyStatus.INACTIVE),
            archived=await self.store.count_by_status(PolicyStatus.ARCHIVED),
        )
        for category in PolicyCategory:
            count = await self.store.count_by_category_and_status(category, PolicyStatus.ACTIVE)
            if count:
                stats.active_by_category[category.value] = count
        return stats

    # ===== Helpers =====

    async def _load_for_update(
        self, policy_id: str, expected_lock_version: Optional[int]
    ) -> Policy:
        policy = await self.get(policy_id)
        if expected_lock_version is not None and expected_lock_version != policy.lock_version:
            raise ConcurrencyConflictError(
                policy.id, expected_lock_version, policy.lock_version
            )
        return policy

    async def _save(self, policy: Policy, author: str) -> Policy:
        policy.modified_by = author
        return await self.store.save(policy, expected_lock_version=policy.lock_version)
