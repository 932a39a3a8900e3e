"""Domain models for the policy engine."""

from policy_engine.models.domain.actions import (
    ActionParameters,
    DecisionParameters,
    DocumentParameters,
    InterestRateParameters,
    MaxAmountParameters,
    MaxTenureParameters,
    NotificationParameters,
    ProcessingFeeParameters,
    RiskFlagParameters,
    RoleParameters,
    parse_action_parameters,
)
from policy_engine.models.domain.policy import (
    Action,
    Condition,
    Policy,
    PolicyDefinition,
    PolicyRule,
)

__all__ = [
    "Action",
    "ActionParameters",
    "Condition",
    "DecisionParameters",
    "DocumentParameters",
    "InterestRateParameters",
    "MaxAmountParameters",
    "MaxTenureParameters",
    "NotificationParameters",
    "Policy",
    "PolicyDefinition",
    "PolicyRule",
    "ProcessingFeeParameters",
    "RiskFlagParameters",
    "RoleParameters",
    "parse_action_parameters",
]
