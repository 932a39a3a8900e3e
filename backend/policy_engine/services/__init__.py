"""Service layer for business logic."""

from policy_engine.services.evaluation_service import PolicyEvaluationService
from policy_engine.services.policy_service import PolicyLifecycleManager, PolicyStats
from policy_engine.services.validation import PolicyValidator

__all__ = [
    "PolicyEvaluationService",
    "PolicyLifecycleManager",
    "PolicyStats",
    "PolicyValidator",
]
