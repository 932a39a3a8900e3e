"""Rule matcher combining condition results with AND / OR."""

import logging
from typing import Optional

from policy_engine.core.enums import LogicalOperator
from policy_engine.models.domain.policy import PolicyRule
from policy_engine.services.rule_engine.base import ConditionResult, RuleMatchResult
from policy_engine.services.rule_engine.conditions import ConditionEvaluator
from policy_engine.services.rule_engine.facts import FactBag

logger = logging.getLogger(__name__)


class RuleMatcher:
    """
    Decides whether a rule fires for a fact bag.

    AND stops at the first false condition and OR at the first true one, so
    conditions after the deciding one are never evaluated (and cannot add
    warnings). An empty AND matches; an empty OR does not.
    """

    def __init__(self, condition_evaluator: Optional[ConditionEvaluator] = None):
        self.condition_evaluator = condition_evaluator or ConditionEvaluator()

    def match(self, rule: PolicyRule, facts: FactBag) -> RuleMatchResult:
        """
        Match a rule against the facts.

        Args:
            rule: The rule to match
            facts: Fact bag for the application

        Returns:
            RuleMatchResult with the condition results actually evaluated
        """
        if not rule.enabled:
            return RuleMatchResult(
                rule_name=rule.name,
                matched=False,
                logical_operator=rule.logical_operator,
                enabled=False,
            )

        results: list[ConditionResult] = []
        if rule.logical_operator == LogicalOperator.OR:
            matched = False
            for condition in rule.conditions:
                result = self.condition_evaluator.evaluate(condition, facts)
                results.append(result)
                if result.matched:
                    matched = True
                    break
        else:
            matched = True
            for condition in rule.conditions:
                result = self.condition_evaluator.evaluate(condition, facts)
                results.append(result)
                if not result.matched:
                    matched = False
                    break

        logger.debug(
            f"Rule '{rule.name}' {'matched' if matched else 'did not match'} "
            f"({rule.logical_operator.value}, {len(results)} of {len(rule.conditions)} "
            f"conditions evaluated)"
        )
        return RuleMatchResult(
            rule_name=rule.name,
            matched=matched,
            logical_operator=rule.logical_operator,
            condition_results=results,
        )
