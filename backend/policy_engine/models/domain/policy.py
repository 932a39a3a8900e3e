"""Policy aggregate and its rule, condition and action value objects."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Optional

from policy_engine.core.enums import (
    ActionType,
    ConditionOperator,
    LoanType,
    LogicalOperator,
    PolicyCategory,
    PolicyStatus,
)
from policy_engine.core.exceptions import InvalidStateError, PolicyValidationError
from policy_engine.models.domain.actions import (
    ActionParameters,
    parse_action_parameters,
    parse_flag,
)

DEFAULT_PRIORITY = 100


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Interpret naive datetimes as UTC so bounds compare safely."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def parse_enum(enum_type: type, value: Any, label: str):
    """Convert a raw value to ``enum_type`` or raise PolicyValidationError."""
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).strip().upper())
    except (ValueError, AttributeError):
        allowed = ", ".join(member.value for member in enum_type)
        raise PolicyValidationError(f"Unknown {label} '{value}' (expected one of: {allowed})")


def stringify(value: Any) -> Optional[str]:
    """Render a condition operand in its stored string form."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


@dataclass(frozen=True)
class Condition:
    """
    A single predicate over a fact-bag field.

    Example: ``applicant.age BETWEEN 21 and 58`` or
    ``employment.type IN [SALARIED, PROFESSIONAL]``.

    Attributes:
        field: Dot path into the fact bag (e.g. "applicant.cibilScore")
        operator: Comparison operator
        value: Operand for single-value operators
        values: Operands for IN / NOT_IN
        min_value: Lower bound for BETWEEN (inclusive)
        max_value: Upper bound for BETWEEN (inclusive)
    """

    field: str
    operator: ConditionOperator
    value: Optional[str] = None
    values: Optional[tuple[str, ...]] = None
    min_value: Optional[str] = None
    max_value: Optional[str] = None

    @classmethod
    def create(
        cls,
        field: str,
        operator: Any,
        value: Any = None,
        values: Optional[list[Any]] = None,
        min_value: Any = None,
        max_value: Any = None,
    ) -> "Condition":
        return cls(
            field=(field or "").strip(),
            operator=parse_enum(ConditionOperator, operator, "condition operator"),
            value=stringify(value),
            values=None if values is None else tuple(stringify(v) for v in values),
            min_value=stringify(min_value),
            max_value=stringify(max_value),
        )

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Condition":
        return cls.create(
            field=raw.get("field"),
            operator=raw.get("operator"),
            value=raw.get("value"),
            values=raw.get("values"),
            min_value=raw.get("minValue"),
            max_value=raw.get("maxValue"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"field": self.field, "operator": self.operator.value}
        if self.value is not None:
            data["value"] = self.value
        if self.values is not None:
            data["values"] = list(self.values)
        if self.min_value is not None:
            data["minValue"] = self.min_value
        if self.max_value is not None:
            data["maxValue"] = self.max_value
        return data

    def expected_display(self) -> str:
        """Expected operand rendered for traces and logs."""
        if self.operator == ConditionOperator.BETWEEN:
            return f"[{self.min_value}, {self.max_value}]"
        if self.operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            return "[" + ", ".join(self.values or ()) + "]"
        return self.value or ""


@dataclass(frozen=True)
class Action:
    """An effect triggered when a rule fires, with its typed payload."""

    type: ActionType
    parameters: ActionParameters
    description: Optional[str] = None

    @classmethod
    def create(
        cls,
        type: Any,
        parameters: Optional[Mapping[str, Any]] = None,
        description: Optional[str] = None,
    ) -> "Action":
        action_type = parse_enum(ActionType, type, "action type")
        return cls(
            type=action_type,
            parameters=parse_action_parameters(action_type, parameters),
            description=description,
        )

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Action":
        return cls.create(
            type=raw.get("type"),
            parameters=raw.get("parameters"),
            description=raw.get("description"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value,
            "parameters": self.parameters.to_parameters(),
        }
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass(frozen=True)
class PolicyRule:
    """
    A named condition + action unit within a policy.

    Example: "Personal Loan Eligibility - Salaried"
        Conditions (AND):
            applicant.employmentType EQUALS SALARIED
            applicant.age BETWEEN 21, 58
        Actions:
            APPROVE
            SET_MAX_AMOUNT {amount: 2000000}
    """

    name: str
    conditions: tuple[Condition, ...] = ()
    actions: tuple[Action, ...] = ()
    logical_operator: LogicalOperator = LogicalOperator.AND
    priority: int = DEFAULT_PRIORITY
    enabled: bool = True
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "PolicyRule":
        priority = raw.get("priority")
        return cls(
            name=(raw.get("name") or "").strip(),
            description=raw.get("description"),
            logical_operator=parse_enum(
                LogicalOperator, raw.get("logicalOperator") or "AND", "logical operator"
            ),
            conditions=tuple(Condition.from_dict(c) for c in raw.get("conditions") or ()),
            actions=tuple(Action.from_dict(a) for a in raw.get("actions") or ()),
            priority=DEFAULT_PRIORITY if priority is None else int(priority),
            enabled=parse_flag(raw, "enabled", default=True),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "logicalOperator": self.logical_operator.value,
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "priority": self.priority,
            "enabled": self.enabled,
        }


@dataclass
class Policy:
    """
    Policy aggregate root.

    A policy is a versioned, named container of rules governing one
    loan-decision category. ``policy_code`` is stable across versions;
    ``lock_version`` is the optimistic-concurrency token maintained by the
    store (None until first saved).
    """

    name: str
    category: PolicyCategory
    loan_type: LoanType
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    policy_code: Optional[str] = None
    description: Optional[str] = None
    status: PolicyStatus = PolicyStatus.DRAFT
    version_number: int = 1
    previous_version_id: Optional[str] = None
    rules: list[PolicyRule] = field(default_factory=list)
    priority: int = DEFAULT_PRIORITY
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None
    tags: set[str] = field(default_factory=set)
    created_by: Optional[str] = None
    modified_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    lock_version: Optional[int] = None

    # ===== Lifecycle =====

    @property
    def is_mutable(self) -> bool:
        return self.status in (PolicyStatus.DRAFT, PolicyStatus.INACTIVE)

    def ensure_mutable(self) -> None:
        """Raise InvalidStateError for ACTIVE and ARCHIVED policies."""
        if not self.is_mutable:
            raise InvalidStateError(
                f"Cannot modify an {self.status.value} policy. Create a new version first."
            )

    def activate(self) -> None:
        """DRAFT or INACTIVE -> ACTIVE; requires at least one enabled rule."""
        if self.status not in (PolicyStatus.DRAFT, PolicyStatus.INACTIVE):
            raise InvalidStateError(
                f"Cannot activate a policy in status {self.status.value}"
            )
        if not self.enabled_rules():
            raise InvalidStateError("Cannot activate a policy with no enabled rules")
        self.status = PolicyStatus.ACTIVE

    def deactivate(self) -> None:
        """ACTIVE -> INACTIVE."""
        if self.status != PolicyStatus.ACTIVE:
            raise InvalidStateError(
                f"Only ACTIVE policies can be deactivated. Current status: {self.status.value}"
            )
        self.status = PolicyStatus.INACTIVE

    def archive(self) -> None:
        """Any non-archived status -> ARCHIVED (terminal)."""
        if self.status == PolicyStatus.ARCHIVED:
            raise InvalidStateError("Policy is already archived")
        self.status = PolicyStatus.ARCHIVED

    def ensure_deletable(self) -> None:
        if self.status != PolicyStatus.DRAFT:
            raise InvalidStateError(
                f"Only DRAFT policies can be deleted. Current status: {self.status.value}"
            )

    def create_new_version(self, author: Optional[str] = None) -> "Policy":
        """
        Build the next DRAFT version of this policy.

        The copy shares ``policy_code``, bumps ``version_number`` and links back
        through ``previous_version_id``. This policy's own status is left as is,
        so the caller decides what happens to the version being superseded.
        """
        return Policy(
            name=self.name,
            category=self.category,
            loan_type=self.loan_type,
            policy_code=self.policy_code,
            description=self.description,
            status=PolicyStatus.DRAFT,
            version_number=self.version_number + 1,
            previous_version_id=self.id,
            rules=list(self.rules),
            priority=self.priority,
            effective_from=self.effective_from,
            effective_until=self.effective_until,
            tags=set(self.tags),
            created_by=author or self.modified_by,
            modified_by=author or self.modified_by,
        )

    # ===== Rules =====

    def add_rule(self, rule: PolicyRule) -> None:
        self.ensure_mutable()
        self.rules.append(rule)

    def remove_rule(self, rule_name: str) -> bool:
        self.ensure_mutable()
        remaining = [rule for rule in self.rules if rule.name != rule_name]
        removed = len(remaining) != len(self.rules)
        self.rules = remaining
        return removed

    def enabled_rules(self) -> list[PolicyRule]:
        """Enabled rules ordered by priority; ties keep definition order."""
        return sorted(
            (rule for rule in self.rules if rule.enabled), key=lambda rule: rule.priority
        )

    @property
    def rule_count(self) -> int:
        return len(self.rules)

    # ===== Effectiveness =====

    def is_effective(self, now: Optional[datetime] = None) -> bool:
        """ACTIVE and ``now`` within [effective_from, effective_until]."""
        if self.status != PolicyStatus.ACTIVE:
            return False
        now = as_utc(now) or utcnow()
        start = as_utc(self.effective_from)
        end = as_utc(self.effective_until)
        after_start = start is None or now >= start
        before_end = end is None or now <= end
        return after_start and before_end

    def applies_to(
        self, loan_type: Optional[LoanType], category: Optional[PolicyCategory] = None
    ) -> bool:
        """Loan type matches (or the policy is for ALL) and category matches if given."""
        if loan_type is not None and self.loan_type not in (loan_type, LoanType.ALL):
            return False
        return category is None or self.category == category

    def copy(self) -> "Policy":
        """Independent copy; rules are immutable so a shallow list copy suffices."""
        return replace(self, rules=list(self.rules), tags=set(self.tags))

    def __repr__(self) -> str:
        return (
            f"<Policy(id={self.id}, code={self.policy_code!r}, v{self.version_number}, "
            f"status={self.status.value}, priority={self.priority})>"
        )


@dataclass
class PolicyDefinition:
    """
    Caller-supplied content of a policy, used for create and full update.

    Status, version, code and audit fields are owned by the lifecycle
    manager and are not part of a definition.
    """

    name: str
    category: Any
    loan_type: Any
    description: Optional[str] = None
    rules: list[PolicyRule] = field(default_factory=list)
    priority: Optional[int] = None
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None
    tags: set[str] = field(default_factory=set)

    def apply_to(self, policy: Policy, default_priority: int = DEFAULT_PRIORITY) -> None:
        """Copy this definition onto ``policy``, normalizing enums and tags."""
        policy.name = (self.name or "").strip()
        policy.description = self.description
        policy.category = parse_enum(PolicyCategory, self.category, "category")
        policy.loan_type = parse_enum(LoanType, self.loan_type, "loan type")
        policy.rules = list(self.rules)
        policy.priority = default_priority if self.priority is None else self.priority
        policy.effective_from = as_utc(self.effective_from)
        policy.effective_until = as_utc(self.effective_until)
        policy.tags = {tag.strip() for tag in self.tags if tag and tag.strip()}

    def to_policy(self, default_priority: int = DEFAULT_PRIORITY) -> Policy:
        policy = Policy(
            name="",
            category=PolicyCategory.ELIGIBILITY,
            loan_type=LoanType.ALL,
        )
        self.apply_to(policy, default_priority)
        return policy
