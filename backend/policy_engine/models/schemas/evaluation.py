"""Pydantic schemas for the evaluation endpoint."""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from policy_engine.core.enums import (
    ActionType,
    ConditionOperator,
    DecisionStatus,
    LoanType,
    PolicyCategory,
    RiskSeverity,
)
from policy_engine.models.schemas.policy import CamelModel


class EvaluationRequest(CamelModel):
    """Facts of one loan application to evaluate against ACTIVE policies."""

    application_id: Optional[str] = None
    loan_type: LoanType
    category: Optional[PolicyCategory] = None
    facts: dict[str, Any] = Field(
        default_factory=dict,
        description="Flat dotted keys or nested objects, e.g. {'applicant': {'cibilScore': 720}}",
    )
    as_of: Optional[datetime] = Field(
        None, description="Evaluate as of this instant instead of now"
    )


class TraceEntryResponse(CamelModel):
    policy_id: str
    policy_code: Optional[str] = None
    rule_name: str
    action_type: ActionType
    applied: bool
    note: Optional[str] = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class EvaluationWarningResponse(CamelModel):
    policy_id: str
    policy_code: Optional[str] = None
    rule_name: str
    field: Optional[str] = None
    operator: Optional[ConditionOperator] = None
    message: str


class RiskFlagResponse(CamelModel):
    reason: str
    severity: RiskSeverity
    policy_code: Optional[str] = None
    rule_name: str


class NotificationResponse(CamelModel):
    message: str
    recipient: Optional[str] = None
    channel: Optional[str] = None
    policy_code: Optional[str] = None
    rule_name: str


class DecisionResponse(CamelModel):
    """Aggregated decision with the trace explaining it."""

    status: DecisionStatus
    interest_rate: Optional[float] = None
    interest_rate_type: Optional[str] = None
    processing_fee: Optional[float] = None
    processing_fee_amount: Optional[float] = None
    max_amount: Optional[float] = None
    max_tenure_months: Optional[int] = None
    required_documents: list[str] = Field(default_factory=list)
    risk_flags: list[RiskFlagResponse] = Field(default_factory=list)
    assigned_role: Optional[str] = None
    notifications: list[NotificationResponse] = Field(default_factory=list)
    trace: list[TraceEntryResponse] = Field(default_factory=list)
    warnings: list[EvaluationWarningResponse] = Field(default_factory=list)
    policies_evaluated: int = 0
    rules_evaluated: int = 0
    rules_matched: int = 0
    evaluated_at: Optional[datetime] = None
    duration_ms: float = 0.0
    application_id: Optional[str] = None
