"""Error taxonomy for policy management.

All of these propagate to the caller unchanged; nothing is retried
internally. Evaluation never raises them for well-formed requests.
"""

from typing import Optional


class PolicyEngineError(Exception):
    """Base class for all policy engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PolicyNotFoundError(PolicyEngineError):
    """Lookup by id, code or (code, version) found nothing."""

    def __init__(
        self,
        message: str,
        policy_id: Optional[str] = None,
        policy_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.policy_id = policy_id
        self.policy_code = policy_code

    @classmethod
    def for_id(cls, policy_id: str) -> "PolicyNotFoundError":
        return cls(f"Policy not found with id: {policy_id}", policy_id=policy_id)

    @classmethod
    def for_code(
        cls, policy_code: str, version_number: Optional[int] = None
    ) -> "PolicyNotFoundError":
        if version_number is None:
            return cls(
                f"Policy not found with code: {policy_code}", policy_code=policy_code
            )
        return cls(
            f"Policy {policy_code} has no version {version_number}",
            policy_code=policy_code,
        )


class InvalidStateError(PolicyEngineError):
    """Operation violates the policy lifecycle state machine."""


class PolicyValidationError(PolicyEngineError):
    """Malformed policy, rule, condition or action detected at save time.

    Attributes:
        errors: Individual problems, each prefixed with its location
            (e.g. ``rules[0].conditions[1]: BETWEEN requires minValue``)
    """

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class ConcurrencyConflictError(PolicyEngineError):
    """Stale ``lock_version`` on write; the caller must re-read and retry."""

    def __init__(
        self,
        policy_id: str,
        expected_lock_version: Optional[int],
        actual_lock_version: Optional[int] = None,
    ):
        detail = f"expected lock version {expected_lock_version}"
        if actual_lock_version is not None:
            detail += f", found {actual_lock_version}"
        super().__init__(f"Policy {policy_id} was modified concurrently ({detail})")
        self.policy_id = policy_id
        self.expected_lock_version = expected_lock_version
        self.actual_lock_version = actual_lock_version
