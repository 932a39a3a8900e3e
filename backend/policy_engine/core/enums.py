"""Core enums for type safety across the policy engine."""

from enum import Enum


class PolicyCategory(str, Enum):
    """Categories of loan policies."""

    ELIGIBILITY = "ELIGIBILITY"
    PRICING = "PRICING"
    CREDIT_LIMIT = "CREDIT_LIMIT"
    DOCUMENT_REQUIREMENT = "DOCUMENT_REQUIREMENT"
    WORKFLOW = "WORKFLOW"
    RISK_SCORING = "RISK_SCORING"


class LoanType(str, Enum):
    """Loan products a policy can target."""

    PERSONAL_LOAN = "PERSONAL_LOAN"
    HOME_LOAN = "HOME_LOAN"
    VEHICLE_LOAN = "VEHICLE_LOAN"
    EDUCATION_LOAN = "EDUCATION_LOAN"
    GOLD_LOAN = "GOLD_LOAN"
    BUSINESS_LOAN = "BUSINESS_LOAN"
    KCC = "KCC"  # Kisan Credit Card
    LAP = "LAP"  # Loan Against Property

    # Wildcard: applies to every loan type
    ALL = "ALL"


class PolicyStatus(str, Enum):
    """Policy lifecycle states."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class LogicalOperator(str, Enum):
    """How the conditions of a rule are combined."""

    AND = "AND"
    OR = "OR"


class ConditionOperator(str, Enum):
    """Operators for policy condition evaluation."""

    # Comparison
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"
    LESS_THAN = "LESS_THAN"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"

    # Collection
    IN = "IN"
    NOT_IN = "NOT_IN"

    # Range
    BETWEEN = "BETWEEN"

    # String
    CONTAINS = "CONTAINS"
    STARTS_WITH = "STARTS_WITH"

    # Boolean
    IS_TRUE = "IS_TRUE"
    IS_FALSE = "IS_FALSE"

    # Null checks
    IS_NULL = "IS_NULL"
    IS_NOT_NULL = "IS_NOT_NULL"


class ActionType(str, Enum):
    """Fixed catalogue of actions a rule can trigger."""

    # Decision actions
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REFER = "REFER"

    # Singleton value actions
    SET_INTEREST_RATE = "SET_INTEREST_RATE"
    SET_PROCESSING_FEE = "SET_PROCESSING_FEE"
    SET_MAX_AMOUNT = "SET_MAX_AMOUNT"
    SET_MAX_TENURE = "SET_MAX_TENURE"

    # Accumulating actions
    REQUIRE_DOCUMENT = "REQUIRE_DOCUMENT"
    ASSIGN_TO_ROLE = "ASSIGN_TO_ROLE"
    NOTIFY = "NOTIFY"
    FLAG_RISK = "FLAG_RISK"


class DecisionStatus(str, Enum):
    """Outcome of evaluating all applicable policies."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REFERRED = "REFERRED"
    UNDECIDED = "UNDECIDED"


class RateType(str, Enum):
    """Interest rate types for SET_INTEREST_RATE."""

    FIXED = "FIXED"
    FLOATING = "FLOATING"


class RiskSeverity(str, Enum):
    """Severity attached to FLAG_RISK actions."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# Operator groups used by validation and evaluation
NUMERIC_OPERATORS = frozenset(
    {
        ConditionOperator.GREATER_THAN,
        ConditionOperator.GREATER_THAN_OR_EQUAL,
        ConditionOperator.LESS_THAN,
        ConditionOperator.LESS_THAN_OR_EQUAL,
    }
)
VALUE_OPERATORS = NUMERIC_OPERATORS | {
    ConditionOperator.EQUALS,
    ConditionOperator.NOT_EQUALS,
    ConditionOperator.CONTAINS,
    ConditionOperator.STARTS_WITH,
}
LIST_OPERATORS = frozenset({ConditionOperator.IN, ConditionOperator.NOT_IN})

DECISION_ACTIONS = frozenset({ActionType.APPROVE, ActionType.REJECT, ActionType.REFER})
SINGLETON_ACTIONS = frozenset(
    {
        ActionType.SET_INTEREST_RATE,
        ActionType.SET_PROCESSING_FEE,
        ActionType.SET_MAX_AMOUNT,
        ActionType.SET_MAX_TENURE,
    }
)
