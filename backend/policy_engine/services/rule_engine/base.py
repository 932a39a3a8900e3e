"""Rule engine records: condition/rule results, fired actions and the Decision."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from policy_engine.core.enums import (
    ActionType,
    ConditionOperator,
    DecisionStatus,
    LogicalOperator,
    RiskSeverity,
)
from policy_engine.models.domain.policy import Action


@dataclass
class ConditionResult:
    """
    Result of evaluating a single condition against a fact bag.

    Attributes:
        field: The condition's fact path
        operator: The condition's operator
        expected: Expected operand as displayed in traces
        actual: Resolved fact rendered as text (None when the path is null)
        matched: Whether the condition holds
        reason: Human-readable explanation
        warning: Set when the condition could not be meaningfully evaluated
            (type mismatch, unsupported operand); such a condition never matches
    """

    field: str
    operator: ConditionOperator
    expected: str
    actual: Optional[str]
    matched: bool
    reason: str
    warning: Optional[str] = None


@dataclass
class RuleMatchResult:
    """Outcome of matching one rule; only evaluated conditions are listed."""

    rule_name: str
    matched: bool
    logical_operator: LogicalOperator
    condition_results: list[ConditionResult] = field(default_factory=list)
    enabled: bool = True

    @property
    def warnings(self) -> list[ConditionResult]:
        return [result for result in self.condition_results if result.warning]


@dataclass(frozen=True)
class FiredAction:
    """An action emitted by a matched rule, tagged with where it came from."""

    policy_id: str
    policy_code: Optional[str]
    rule_name: str
    action: Action

    @property
    def action_type(self) -> ActionType:
        return self.action.type


@dataclass
class TraceEntry:
    """One action considered during aggregation; ``applied`` is False when superseded."""

    policy_id: str
    policy_code: Optional[str]
    rule_name: str
    action_type: ActionType
    applied: bool = True
    note: Optional[str] = None
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "policyId": self.policy_id,
            "policyCode": self.policy_code,
            "ruleName": self.rule_name,
            "actionType": self.action_type.value,
            "applied": self.applied,
            "note": self.note,
            "parameters": dict(self.parameters),
        }


@dataclass(frozen=True)
class EvaluationWarning:
    """A condition or rule that could not be evaluated cleanly."""

    policy_id: str
    policy_code: Optional[str]
    rule_name: str
    message: str
    field: Optional[str] = None
    operator: Optional[ConditionOperator] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "policyId": self.policy_id,
            "policyCode": self.policy_code,
            "ruleName": self.rule_name,
            "field": self.field,
            "operator": None if self.operator is None else self.operator.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class RiskFlag:
    reason: str
    severity: RiskSeverity
    policy_code: Optional[str]
    rule_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "reason": self.reason,
            "severity": self.severity.value,
            "policyCode": self.policy_code,
            "ruleName": self.rule_name,
        }


@dataclass(frozen=True)
class NotificationRequest:
    message: str
    recipient: Optional[str]
    channel: Optional[str]
    policy_code: Optional[str]
    rule_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "recipient": self.recipient,
            "channel": self.channel,
            "policyCode": self.policy_code,
            "ruleName": self.rule_name,
        }


def _number(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else float(value)


@dataclass
class Decision:
    """
    Aggregated, traceable outcome of evaluating all applicable policies.

    ``trace`` lists every action considered, including superseded ones, so the
    decision can be explained field by field.
    """

    status: DecisionStatus = DecisionStatus.UNDECIDED
    interest_rate: Optional[Decimal] = None
    interest_rate_type: Optional[str] = None
    processing_fee: Optional[Decimal] = None
    processing_fee_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    max_tenure_months: Optional[int] = None
    required_documents: list[str] = field(default_factory=list)
    risk_flags: list[RiskFlag] = field(default_factory=list)
    assigned_role: Optional[str] = None
    notifications: list[NotificationRequest] = field(default_factory=list)
    trace: list[TraceEntry] = field(default_factory=list)
    warnings: list[EvaluationWarning] = field(default_factory=list)
    policies_evaluated: int = 0
    rules_evaluated: int = 0
    rules_matched: int = 0
    evaluated_at: Optional[datetime] = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable representation with camelCase keys."""
        return {
            "status": self.status.value,
            "interestRate": _number(self.interest_rate),
            "interestRateType": self.interest_rate_type,
            "processingFee": _number(self.processing_fee),
            "processingFeeAmount": _number(self.processing_fee_amount),
            "maxAmount": _number(self.max_amount),
            "maxTenureMonths": self.max_tenure_months,
            "requiredDocuments": list(self.required_documents),
            "riskFlags": [flag.to_dict() for flag in self.risk_flags],
            "assignedRole": self.assigned_role,
            "notifications": [n.to_dict() for n in self.notifications],
            "trace": [entry.to_dict() for entry in self.trace],
            "warnings": [w.to_dict() for w in self.warnings],
            "policiesEvaluated": self.policies_evaluated,
            "rulesEvaluated": self.rules_evaluated,
            "rulesMatched": self.rules_matched,
            "evaluatedAt": None if self.evaluated_at is None else self.evaluated_at.isoformat(),
            "durationMs": self.duration_ms,
        }
