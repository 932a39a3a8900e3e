"""Action aggregator merging fired actions into a single Decision.

Actions arrive in evaluation order: ascending policy priority, then
ascending rule priority, then the order actions are listed in the rule.
"Earlier" therefore always means "higher priority".

Conflict resolution:

- APPROVE / REJECT / REFER: REJECT beats REFER beats APPROVE, whatever the
  order. The first action of the winning type is applied.
- SET_INTEREST_RATE, SET_PROCESSING_FEE, SET_MAX_AMOUNT, SET_MAX_TENURE and
  ASSIGN_TO_ROLE: first one wins.
- REQUIRE_DOCUMENT: de-duplicated by document type.
- NOTIFY, FLAG_RISK: all kept.

Every action considered lands in the trace with ``applied`` set accordingly.
"""

import logging
from typing import Iterable, Optional

from policy_engine.core.enums import (
    DECISION_ACTIONS,
    SINGLETON_ACTIONS,
    ActionType,
    DecisionStatus,
)
from policy_engine.models.domain.actions import (
    DocumentParameters,
    InterestRateParameters,
    MaxAmountParameters,
    MaxTenureParameters,
    NotificationParameters,
    ProcessingFeeParameters,
    RiskFlagParameters,
    RoleParameters,
)
from policy_engine.services.rule_engine.base import (
    Decision,
    EvaluationWarning,
    FiredAction,
    NotificationRequest,
    RiskFlag,
    TraceEntry,
)

logger = logging.getLogger(__name__)

# Higher wins
DECISION_PRECEDENCE = {
    ActionType.APPROVE: 1,
    ActionType.REFER: 2,
    ActionType.REJECT: 3,
}

DECISION_STATUS = {
    ActionType.APPROVE: DecisionStatus.APPROVED,
    ActionType.REFER: DecisionStatus.REFERRED,
    ActionType.REJECT: DecisionStatus.REJECTED,
}


def _source(fired: FiredAction) -> str:
    return f"{fired.policy_code or fired.policy_id}/{fired.rule_name}"


class ActionAggregator:
    """
    Accumulates fired actions for one evaluation and builds the Decision.

    Instances are single-use: create one per evaluation.
    """

    def __init__(self, refer_on_risk_flag: bool = False):
        self.refer_on_risk_flag = refer_on_risk_flag
        self._decision = Decision()
        # (trace index, fired action) for every decision action seen
        self._decision_actions: list[tuple[int, FiredAction]] = []
        # action type -> source of the value currently applied
        self._singletons: dict[ActionType, str] = {}
        self._documents: dict[str, str] = {}

    def add(self, fired: FiredAction) -> TraceEntry:
        """Fold one fired action into the decision and record it in the trace."""
        entry = TraceEntry(
            policy_id=fired.policy_id,
            policy_code=fired.policy_code,
            rule_name=fired.rule_name,
            action_type=fired.action_type,
            parameters=fired.action.parameters.to_parameters(),
        )
        self._decision.trace.append(entry)

        action_type = fired.action_type
        if action_type in DECISION_ACTIONS:
            self._decision_actions.append((len(self._decision.trace) - 1, fired))
        elif action_type in SINGLETON_ACTIONS or action_type == ActionType.ASSIGN_TO_ROLE:
            self._apply_singleton(fired, entry)
        elif action_type == ActionType.REQUIRE_DOCUMENT:
            self._apply_document(fired, entry)
        elif action_type == ActionType.NOTIFY:
            self._apply_notification(fired)
        elif action_type == ActionType.FLAG_RISK:
            self._apply_risk_flag(fired)
        return entry

    def add_all(self, fired_actions: Iterable[FiredAction]) -> None:
        for fired in fired_actions:
            self.add(fired)

    def add_warning(self, warning: EvaluationWarning) -> None:
        self._decision.warnings.append(warning)

    def build(self) -> Decision:
        """Resolve the decision status and return the Decision."""
        decision = self._decision
        winner = self._resolve_status()
        if winner is not None:
            decision.status = DECISION_STATUS[winner]

        if (
            self.refer_on_risk_flag
            and decision.risk_flags
            and decision.status in (DecisionStatus.APPROVED, DecisionStatus.UNDECIDED)
        ):
            logger.info(
                f"Escalating {decision.status.value} decision to REFERRED: "
                f"{len(decision.risk_flags)} risk flag(s) raised"
            )
            decision.status = DecisionStatus.REFERRED
        return decision

    # ===== Conflict resolution =====

    def _resolve_status(self) -> Optional[ActionType]:
        if not self._decision_actions:
            return None

        winner = max(
            (fired.action_type for _, fired in self._decision_actions),
            key=DECISION_PRECEDENCE.__getitem__,
        )
        winning_source: Optional[str] = None
        for index, fired in self._decision_actions:
            entry = self._decision.trace[index]
            if fired.action_type != winner:
                entry.applied = False
                entry.note = f"Overridden by {winner.value}"
            elif winning_source is None:
                winning_source = _source(fired)
            else:
                entry.applied = False
                entry.note = f"Already decided by {winning_source}"
        return winner

    def _apply_singleton(self, fired: FiredAction, entry: TraceEntry) -> None:
        action_type = fired.action_type
        if action_type in self._singletons:
            entry.applied = False
            entry.note = f"Superseded by {self._singletons[action_type]}"
            return
        self._singletons[action_type] = _source(fired)

        decision = self._decision
        params = fired.action.parameters
        if isinstance(params, InterestRateParameters):
            decision.interest_rate = params.rate
            decision.interest_rate_type = params.rate_type.value
        elif isinstance(params, ProcessingFeeParameters):
            decision.processing_fee = params.percentage
            decision.processing_fee_amount = params.amount
        elif isinstance(params, MaxAmountParameters):
            decision.max_amount = params.amount
        elif isinstance(params, MaxTenureParameters):
            decision.max_tenure_months = params.months
        elif isinstance(params, RoleParameters):
            decision.assigned_role = params.role

    def _apply_document(self, fired: FiredAction, entry: TraceEntry) -> None:
        params: DocumentParameters = fired.action.parameters
        if params.document_type in self._documents:
            entry.applied = False
            entry.note = f"Already required by {self._documents[params.document_type]}"
            return
        self._documents[params.document_type] = _source(fired)
        self._decision.required_documents = sorted(self._documents)

    def _apply_notification(self, fired: FiredAction) -> None:
        params: NotificationParameters = fired.action.parameters
        self._decision.notifications.append(
            NotificationRequest(
                message=params.message,
                recipient=params.recipient,
                channel=params.channel,
                policy_code=fired.policy_code,
                rule_name=fired.rule_name,
            )
        )

    def _apply_risk_flag(self, fired: FiredAction) -> None:
        params: RiskFlagParameters = fired.action.parameters
        self._decision.risk_flags.append(
            RiskFlag(
                reason=params.reason,
                severity=params.severity,
                policy_code=fired.policy_code,
                rule_name=fired.rule_name,
            )
        )


def aggregate(
    fired_actions: Iterable[FiredAction], refer_on_risk_flag: bool = False
) -> Decision:
    """Aggregate an ordered sequence of fired actions into a Decision."""
    aggregator = ActionAggregator(refer_on_risk_flag=refer_on_risk_flag)
    aggregator.add_all(fired_actions)
    return aggregator.build()
