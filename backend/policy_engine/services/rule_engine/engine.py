"""Pure policy evaluator: policies + facts -> Decision, no I/O."""

import logging
import time
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from policy_engine.core.enums import LoanType, PolicyCategory
from policy_engine.models.domain.policy import Policy, as_utc, utcnow
from policy_engine.services.rule_engine.aggregator import ActionAggregator
from policy_engine.services.rule_engine.base import (
    Decision,
    EvaluationWarning,
    FiredAction,
)
from policy_engine.services.rule_engine.facts import FactBag
from policy_engine.services.rule_engine.matcher import RuleMatcher

logger = logging.getLogger(__name__)


def evaluation_order(policy: Policy) -> tuple:
    """Sort key: policy priority, then code and version for a stable tie-break."""
    return (policy.priority, policy.policy_code or "", policy.version_number, policy.id)


class PolicyEvaluator:
    """
    Evaluates a set of policies against one fact bag.

    This class:
    - Filters policies to those ACTIVE, effective and applicable
    - Orders policies by priority and their enabled rules by rule priority
    - Streams actions of matched rules into an ActionAggregator
    - Isolates failures per rule so one bad rule cannot abort the evaluation

    It holds no per-evaluation state and is safe to share between
    concurrent evaluations.
    """

    def __init__(
        self,
        matcher: Optional[RuleMatcher] = None,
        refer_on_risk_flag: bool = False,
    ):
        self.matcher = matcher or RuleMatcher()
        self.refer_on_risk_flag = refer_on_risk_flag

    def select_applicable(
        self,
        policies: Iterable[Policy],
        loan_type: Optional[LoanType] = None,
        category: Optional[PolicyCategory] = None,
        now: Optional[datetime] = None,
    ) -> list[Policy]:
        """
        Filter and order the policies that take part in an evaluation.

        Args:
            policies: Candidate policies (any status)
            loan_type: Loan type of the application; None skips the loan type filter
            category: Optional category filter
            now: Evaluation instant (defaults to the current UTC time)

        Returns:
            Effective policies in evaluation order
        """
        now = as_utc(now) or utcnow()
        applicable = [
            policy
            for policy in policies
            if policy.is_effective(now) and policy.applies_to(loan_type, category)
        ]
        return sorted(applicable, key=evaluation_order)

    def evaluate(
        self,
        policies: Iterable[Policy],
        facts: Union[FactBag, Mapping[str, Any], None],
        loan_type: Optional[LoanType] = None,
        category: Optional[PolicyCategory] = None,
        now: Optional[datetime] = None,
    ) -> Decision:
        """
        Evaluate policies against the facts and aggregate the result.

        Args:
            policies: Candidate policies; filtered through select_applicable
            facts: Fact bag or plain mapping describing the application
            loan_type: Loan type of the application
            category: Optional category filter
            now: Evaluation instant (defaults to the current UTC time)

        Returns:
            Decision with status, values, trace and warnings. With no
            applicable policy the status is UNDECIDED and the trace is empty.
        """
        started = time.perf_counter()
        now = as_utc(now) or utcnow()
        facts = FactBag.of(facts)
        aggregator = ActionAggregator(refer_on_risk_flag=self.refer_on_risk_flag)

        applicable = self.select_applicable(policies, loan_type, category, now)
        rules_evaluated = 0
        rules_matched = 0

        for policy in applicable:
            for rule in policy.enabled_rules():
                rules_evaluated += 1
                try:
                    result = self.matcher.match(rule, facts)
                except Exception as e:
                    logger.warning(
                        f"Rule '{rule.name}' of policy {policy.policy_code} failed during evaluation",
                        exc_info=True,
                    )
                    aggregator.add_warning(
                        EvaluationWarning(
                            policy_id=policy.id,
                            policy_code=policy.policy_code,
                            rule_name=rule.name,
                            message=f"Rule skipped: {e}",
                        )
                    )
                    continue

                for condition_result in result.warnings:
                    aggregator.add_warning(
                        EvaluationWarning(
                            policy_id=policy.id,
                            policy_code=policy.policy_code,
                            rule_name=rule.name,
                            message=condition_result.warning,
                            field=condition_result.field,
                            operator=condition_result.operator,
                        )
                    )

                if not result.matched:
                    continue

                rules_matched += 1
                for action in rule.actions:
                    aggregator.add(
                        FiredAction(
                            policy_id=policy.id,
                            policy_code=policy.policy_code,
                            rule_name=rule.name,
                            action=action,
                        )
                    )

        decision = aggregator.build()
        decision.policies_evaluated = len(applicable)
        decision.rules_evaluated = rules_evaluated
        decision.rules_matched = rules_matched
        decision.evaluated_at = now
        decision.duration_ms = round((time.perf_counter() - started) * 1000, 3)

        logger.debug(
            f"Evaluated {decision.policies_evaluated} policies, {rules_evaluated} rules "
            f"({rules_matched} matched) -> {decision.status.value}"
        )
        return decision
