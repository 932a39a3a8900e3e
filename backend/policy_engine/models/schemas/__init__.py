"""Pydantic schemas for API validation and serialization."""

from policy_engine.models.schemas.evaluation import DecisionResponse, EvaluationRequest
from policy_engine.models.schemas.policy import (
    ActionSchema,
    ConditionSchema,
    LockVersionRequest,
    PolicyCreate,
    PolicyListResponse,
    PolicyResponse,
    PolicyStatsResponse,
    PolicyUpdate,
    RuleCreate,
    RuleSchema,
)

__all__ = [
    # Policy schemas
    "ActionSchema",
    "ConditionSchema",
    "LockVersionRequest",
    "PolicyCreate",
    "PolicyListResponse",
    "PolicyResponse",
    "PolicyStatsResponse",
    "PolicyUpdate",
    "RuleCreate",
    "RuleSchema",
    # Evaluation schemas
    "DecisionResponse",
    "EvaluationRequest",
]
