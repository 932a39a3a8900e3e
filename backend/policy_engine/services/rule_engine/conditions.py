"""Condition evaluator: applies one operator to one resolved fact."""

import logging
from decimal import Decimal
from typing import Callable, Dict, Optional

from policy_engine.core.enums import ConditionOperator
from policy_engine.models.domain.policy import Condition
from policy_engine.services.rule_engine.base import ConditionResult
from policy_engine.services.rule_engine.facts import (
    FactBag,
    FactKind,
    FactValue,
    normalize_text,
    parse_bool,
    parse_decimal,
)

logger = logging.getLogger(__name__)

OperatorHandler = Callable[[FactValue, Condition], bool]


class UnevaluableCondition(Exception):
    """Raised by operator handlers when the operands cannot be compared."""


class ConditionEvaluator:
    """
    Evaluates a single condition against a fact bag.

    This class:
    - Maintains a registry of operator handlers
    - Resolves the condition's field through the fact bag
    - Turns type mismatches into a non-matching result with a warning

    ``evaluate`` never raises.
    """

    def __init__(self):
        self._handlers: Dict[ConditionOperator, OperatorHandler] = {}
        self._register_default_handlers()

    def _register_default_handlers(self):
        # Equality
        self._handlers[ConditionOperator.EQUALS] = self._equals
        self._handlers[ConditionOperator.NOT_EQUALS] = self._not_equals

        # Numeric comparison
        self._handlers[ConditionOperator.GREATER_THAN] = lambda a, c: self._compare(a, c) > 0
        self._handlers[ConditionOperator.GREATER_THAN_OR_EQUAL] = (
            lambda a, c: self._compare(a, c) >= 0
        )
        self._handlers[ConditionOperator.LESS_THAN] = lambda a, c: self._compare(a, c) < 0
        self._handlers[ConditionOperator.LESS_THAN_OR_EQUAL] = (
            lambda a, c: self._compare(a, c) <= 0
        )
        self._handlers[ConditionOperator.BETWEEN] = self._between

        # Membership and text
        self._handlers[ConditionOperator.IN] = self._in
        self._handlers[ConditionOperator.NOT_IN] = lambda a, c: not self._in(a, c)
        self._handlers[ConditionOperator.CONTAINS] = lambda a, c: c.value in self._text(a, c)
        self._handlers[ConditionOperator.STARTS_WITH] = (
            lambda a, c: self._text(a, c).startswith(c.value)
        )

        # Boolean
        self._handlers[ConditionOperator.IS_TRUE] = lambda a, c: self._bool(a) is True
        self._handlers[ConditionOperator.IS_FALSE] = lambda a, c: self._bool(a) is False

    def register_operator(
        self, operator: ConditionOperator, handler: OperatorHandler
    ) -> None:
        """
        Replace the handler for an operator.

        Args:
            operator: The operator to handle
            handler: Callable taking the resolved fact and the condition
        """
        self._handlers[operator] = handler

    def evaluate(self, condition: Condition, facts: FactBag) -> ConditionResult:
        """
        Evaluate a condition against the facts.

        Args:
            condition: The condition to evaluate
            facts: Fact bag for the application

        Returns:
            ConditionResult; ``warning`` is set when the operands could not
            be compared, in which case ``matched`` is False
        """
        actual = facts.resolve(condition.field)
        expected = condition.expected_display()

        def result(matched: bool, reason: str, warning: Optional[str] = None):
            return ConditionResult(
                field=condition.field,
                operator=condition.operator,
                expected=expected,
                actual=actual.display(),
                matched=matched,
                reason=reason,
                warning=warning,
            )

        if condition.operator == ConditionOperator.IS_NULL:
            state = "null" if actual.is_null else "not null"
            return result(actual.is_null, f"{condition.field} is {state}")
        if condition.operator == ConditionOperator.IS_NOT_NULL:
            return result(
                not actual.is_null, f"{condition.field} is {'null' if actual.is_null else 'present'}"
            )

        if actual.is_null:
            return result(False, f"Field '{condition.field}' not found in facts")

        handler = self._handlers.get(condition.operator)
        if handler is None:
            message = f"Unsupported operator {condition.operator.value}"
            logger.warning(f"{message} for field {condition.field}")
            return result(False, message, warning=message)

        try:
            matched = handler(actual, condition)
        except UnevaluableCondition as e:
            message = str(e)
            logger.warning(
                f"Condition {condition.field} {condition.operator.value} "
                f"could not be evaluated: {message}"
            )
            return result(False, message, warning=message)
        except Exception as e:
            message = f"Evaluation error: {e}"
            logger.warning(
                f"Condition {condition.field} {condition.operator.value} raised", exc_info=True
            )
            return result(False, message, warning=message)

        verb = "matches" if matched else "does not match"
        return result(
            matched,
            f"{condition.field}={actual.display()} {verb} {condition.operator.value} {expected}",
        )

    # ===== Operator handlers =====

    def _equals(self, actual: FactValue, condition: Condition) -> bool:
        expected = self._required(condition.value, "value")

        if actual.kind == FactKind.BOOLEAN:
            return actual.raw == parse_bool(expected)

        actual_number = actual.as_number()
        expected_number = parse_decimal(expected)
        if actual_number is not None and expected_number is not None:
            return actual_number == expected_number

        return self._text(actual, condition) == expected

    def _not_equals(self, actual: FactValue, condition: Condition) -> bool:
        return not self._equals(actual, condition)

    def _compare(self, actual: FactValue, condition: Condition) -> int:
        left = self._number(actual, condition.field)
        right = self._operand_number(condition.value, "value")
        return (left > right) - (left < right)

    def _between(self, actual: FactValue, condition: Condition) -> bool:
        value = self._number(actual, condition.field)
        low = self._operand_number(condition.min_value, "minValue")
        high = self._operand_number(condition.max_value, "maxValue")
        return low <= value <= high

    def _in(self, actual: FactValue, condition: Condition) -> bool:
        if condition.values is None:
            raise UnevaluableCondition(f"{condition.operator.value} requires 'values'")
        candidates = {normalize_text(value) for value in condition.values if value is not None}
        return normalize_text(self._text(actual, condition)) in candidates

    # ===== Coercion helpers =====

    @staticmethod
    def _required(operand: Optional[str], name: str) -> str:
        if operand is None:
            raise UnevaluableCondition(f"Condition has no '{name}' to compare against")
        return operand

    def _operand_number(self, operand: Optional[str], name: str) -> Decimal:
        number = parse_decimal(self._required(operand, name))
        if number is None:
            raise UnevaluableCondition(f"Expected {name} '{operand}' is not numeric")
        return number

    @staticmethod
    def _number(actual: FactValue, field: str) -> Decimal:
        number = actual.as_number()
        if number is None:
            raise UnevaluableCondition(
                f"Field '{field}' value '{actual.display()}' is not numeric"
            )
        return number

    @staticmethod
    def _text(actual: FactValue, condition: Condition) -> str:
        text = actual.as_text()
        if text is None:
            raise UnevaluableCondition(
                f"Field '{condition.field}' is a {actual.kind.value.lower()} and has no text form"
            )
        if condition.operator in (ConditionOperator.CONTAINS, ConditionOperator.STARTS_WITH):
            ConditionEvaluator._required(condition.value, "value")
        return text

    @staticmethod
    def _bool(actual: FactValue) -> bool:
        value = actual.as_bool()
        if value is None:
            raise UnevaluableCondition(f"Value '{actual.display()}' is not a boolean")
        return value
