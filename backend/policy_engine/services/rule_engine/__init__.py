"""Policy rule engine: fact model, condition evaluation, matching and aggregation."""

from policy_engine.services.rule_engine.aggregator import ActionAggregator, aggregate
from policy_engine.services.rule_engine.base import (
    ConditionResult,
    Decision,
    EvaluationWarning,
    FiredAction,
    RuleMatchResult,
    TraceEntry,
)
from policy_engine.services.rule_engine.conditions import ConditionEvaluator
from policy_engine.services.rule_engine.engine import PolicyEvaluator
from policy_engine.services.rule_engine.facts import FactBag, FactKind, FactValue
from policy_engine.services.rule_engine.matcher import RuleMatcher

__all__ = [
    "ActionAggregator",
    "aggregate",
    "ConditionEvaluator",
    "ConditionResult",
    "Decision",
    "EvaluationWarning",
    "FactBag",
    "FactKind",
    "FactValue",
    "FiredAction",
    "PolicyEvaluator",
    "RuleMatcher",
    "RuleMatchResult",
    "TraceEntry",
]
