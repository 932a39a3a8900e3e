"""Pydantic schemas for policy management endpoints."""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from policy_engine.config import settings
from policy_engine.core.enums import (
    ActionType,
    ConditionOperator,
    LoanType,
    LogicalOperator,
    PolicyCategory,
    PolicyStatus,
)
from policy_engine.models.domain.policy import (
    Action,
    Condition,
    Policy,
    PolicyDefinition,
    PolicyRule,
)

# JSON scalars accepted as condition operands; stored as strings
Operand = Union[bool, int, float, str]


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==================== Rule Schemas ====================


class ConditionSchema(CamelModel):
    """A single predicate, e.g. ``applicant.age BETWEEN 21 and 60``."""

    field: str = Field(..., min_length=1, description="Dot path into the facts (e.g. 'applicant.cibilScore')")
    operator: ConditionOperator
    value: Optional[Operand] = None
    values: Optional[list[Operand]] = Field(None, description="Operands for IN / NOT_IN")
    min_value: Optional[Operand] = Field(None, description="Inclusive lower bound for BETWEEN")
    max_value: Optional[Operand] = Field(None, description="Inclusive upper bound for BETWEEN")

    def to_domain(self) -> Condition:
        return Condition.create(
            field=self.field,
            operator=self.operator,
            value=self.value,
            values=self.values,
            min_value=self.min_value,
            max_value=self.max_value,
        )

    @classmethod
    def from_domain(cls, condition: Condition) -> "ConditionSchema":
        return cls(
            field=condition.field,
            operator=condition.operator,
            value=condition.value,
            values=None if condition.values is None else list(condition.values),
            min_value=condition.min_value,
            max_value=condition.max_value,
        )


class ActionSchema(CamelModel):
    """An action and its raw parameters (validated per action type)."""

    type: ActionType
    parameters: dict[str, Any] = Field(
        default_factory=dict, description="e.g. {'rate': '12.5', 'type': 'FIXED'}"
    )
    description: Optional[str] = None

    def to_domain(self) -> Action:
        return Action.create(self.type, self.parameters, self.description)

    @classmethod
    def from_domain(cls, action: Action) -> "ActionSchema":
        return cls(
            type=action.type,
            parameters=action.parameters.to_parameters(),
            description=action.description,
        )


class RuleSchema(CamelModel):
    """A named condition + action unit."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    logical_operator: LogicalOperator = LogicalOperator.AND
    conditions: list[ConditionSchema] = Field(default_factory=list)
    actions: list[ActionSchema] = Field(default_factory=list)
    priority: int = Field(default_factory=lambda: settings.DEFAULT_RULE_PRIORITY)
    enabled: bool = True

    def to_domain(self) -> PolicyRule:
        return PolicyRule(
            name=self.name.strip(),
            description=self.description,
            logical_operator=self.logical_operator,
            conditions=tuple(condition.to_domain() for condition in self.conditions),
            actions=tuple(action.to_domain() for action in self.actions),
            priority=self.priority,
            enabled=self.enabled,
        )

    @classmethod
    def from_domain(cls, rule: PolicyRule) -> "RuleSchema":
        return cls(
            name=rule.name,
            description=rule.description,
            logical_operator=rule.logical_operator,
            conditions=[ConditionSchema.from_domain(c) for c in rule.conditions],
            actions=[ActionSchema.from_domain(a) for a in rule.actions],
            priority=rule.priority,
            enabled=rule.enabled,
        )


# ==================== Policy Schemas ====================


class PolicyBase(CamelModel):
    """Fields shared by create, update and response schemas."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: PolicyCategory
    loan_type: LoanType
    priority: Optional[int] = Field(None, description="Lower evaluates first (default 100)")
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None
    tags: list[str] = Field(default_factory=list)


class PolicyCreate(PolicyBase):
    """Schema for creating a policy."""

    rules: list[RuleSchema] = Field(default_factory=list)

    def to_definition(self) -> PolicyDefinition:
        return PolicyDefinition(
            name=self.name,
            description=self.description,
            category=self.category,
            loan_type=self.loan_type,
            rules=[rule.to_domain() for rule in self.rules],
            priority=self.priority,
            effective_from=self.effective_from,
            effective_until=self.effective_until,
            tags=set(self.tags),
        )


class PolicyUpdate(PolicyCreate):
    """Schema for replacing the content of a DRAFT or INACTIVE policy."""

    lock_version: Optional[int] = Field(
        None, ge=0, description="Lock version last read; stale values are rejected with 409"
    )


class LockVersionRequest(CamelModel):
    """Optional body for state transitions."""

    lock_version: Optional[int] = Field(None, ge=0)


class RuleCreate(RuleSchema):
    """Schema for appending a rule to a policy."""

    lock_version: Optional[int] = Field(None, ge=0)


class PolicyResponse(PolicyBase):
    """Schema for policy response."""

    id: str
    policy_code: str
    status: PolicyStatus
    version_number: int
    previous_version_id: Optional[str] = None
    priority: int
    rules: list[RuleSchema] = Field(default_factory=list)
    rule_count: int = 0
    created_by: Optional[str] = None
    modified_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    lock_version: Optional[int] = None

    @classmethod
    def from_domain(cls, policy: Policy) -> "PolicyResponse":
        return cls(
            id=policy.id,
            policy_code=policy.policy_code,
            name=policy.name,
            description=policy.description,
            category=policy.category,
            loan_type=policy.loan_type,
            status=policy.status,
            version_number=policy.version_number,
            previous_version_id=policy.previous_version_id,
            priority=policy.priority,
            effective_from=policy.effective_from,
            effective_until=policy.effective_until,
            tags=sorted(policy.tags),
            rules=[RuleSchema.from_domain(rule) for rule in policy.rules],
            rule_count=policy.rule_count,
            created_by=policy.created_by,
            modified_by=policy.modified_by,
            created_at=policy.created_at,
            updated_at=policy.updated_at,
            lock_version=policy.lock_version,
        )


class PolicyStatsResponse(CamelModel):
    """Policy counts by status plus ACTIVE counts per category."""

    total: int
    active: int
    draft: int
    inactive: int
    archived: int
    active_by_category: dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PolicyListResponse(CamelModel):
    """Schema for paginated list of policies."""

    items: list[PolicyResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
