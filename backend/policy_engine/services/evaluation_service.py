"""Policy evaluation service: loads applicable policies and runs the evaluator."""

import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Union

from policy_engine.core.enums import LoanType, PolicyCategory
from policy_engine.models.domain.policy import parse_enum
from policy_engine.repositories.base import PolicyStore
from policy_engine.services.rule_engine import Decision, FactBag, PolicyEvaluator

logger = logging.getLogger(__name__)


class PolicyEvaluationService:
    """
    Evaluates a loan application's facts against the stored policies.

    Policies are fetched once per call; everything after that is done by
    the pure PolicyEvaluator.
    """

    def __init__(self, store: PolicyStore, evaluator: Optional[PolicyEvaluator] = None):
        """
        Initialize the evaluation service.

        Args:
            store: Policy store to load ACTIVE policies from
            evaluator: Pure evaluator (a default one is created if omitted)
        """
        self.store = store
        self.evaluator = evaluator or PolicyEvaluator()

    async def evaluate(
        self,
        loan_type: Union[LoanType, str],
        category: Union[PolicyCategory, str, None],
        facts: Union[FactBag, Mapping[str, Any], None],
        now: Optional[datetime] = None,
        application_id: Optional[str] = None,
    ) -> Decision:
        """
        Evaluate the facts of one application.

        Args:
            loan_type: Loan type of the application
            category: Restrict evaluation to one policy category (None for all)
            facts: Fact bag describing the application
            now: Evaluation instant (defaults to the current UTC time)
            application_id: Optional id used only for logging

        Returns:
            The aggregated Decision

        Raises:
            PolicyValidationError: If loan_type or category is not a known value
        """
        loan_type = parse_enum(LoanType, loan_type, "loan type")
        if category is not None:
            category = parse_enum(PolicyCategory, category, "category")

        policies = await self.store.find_active_effective(loan_type, category, now)
        decision = self.evaluator.evaluate(policies, facts, loan_type, category, now)

        logger.info(
            f"Evaluated application {application_id or '-'} ({loan_type.value}"
            f"{'/' + category.value if category else ''}): {decision.status.value}, "
            f"{decision.rules_matched}/{decision.rules_evaluated} rules matched across "
            f"{decision.policies_evaluated} policies in {decision.duration_ms}ms"
        )
        if decision.warnings:
            logger.warning(
                f"Evaluation of application {application_id or '-'} produced "
                f"{len(decision.warnings)} warning(s)"
            )
        return decision
