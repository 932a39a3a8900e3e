"""Structural validation of policies before they are saved."""

from policy_engine.core.enums import (
    LIST_OPERATORS,
    NUMERIC_OPERATORS,
    VALUE_OPERATORS,
    ConditionOperator,
)
from policy_engine.core.exceptions import PolicyValidationError
from policy_engine.models.domain.policy import Condition, Policy, PolicyRule, as_utc
from policy_engine.services.rule_engine.facts import parse_decimal


class PolicyValidator:
    """
    Collects every structural problem in a policy and raises them together.

    Typed action payloads are already checked when actions are built, so
    this covers names, conditions and the effective window. Name uniqueness
    across policies needs the store and is checked by the lifecycle manager.
    """

    def validate(self, policy: Policy) -> None:
        """
        Validate a policy.

        Args:
            policy: The policy to check

        Raises:
            PolicyValidationError: With one located entry per problem
        """
        errors: list[str] = []

        if not (policy.name or "").strip():
            errors.append("name: must not be blank")

        start = as_utc(policy.effective_from)
        end = as_utc(policy.effective_until)
        if start is not None and end is not None and start > end:
            errors.append("effectiveFrom: must not be after effectiveUntil")

        seen: set[str] = set()
        for index, rule in enumerate(policy.rules):
            location = f"rules[{index}]"
            errors.extend(self._rule_errors(rule, location))
            key = (rule.name or "").strip().lower()
            if key and key in seen:
                errors.append(f"{location}.name: duplicate rule name '{rule.name}'")
            seen.add(key)

        if errors:
            raise PolicyValidationError(
                f"Policy is invalid: {errors[0]}"
                + (f" (and {len(errors) - 1} more)" if len(errors) > 1 else ""),
                errors=errors,
            )

    def validate_rule(self, rule: PolicyRule) -> None:
        """Validate a single rule on its own, before it is added to a policy."""
        errors = self._rule_errors(rule, "rule")
        if errors:
            raise PolicyValidationError(f"Rule is invalid: {errors[0]}", errors=errors)

    def _rule_errors(self, rule: PolicyRule, location: str) -> list[str]:
        errors: list[str] = []
        if not (rule.name or "").strip():
            errors.append(f"{location}.name: must not be blank")
        for index, condition in enumerate(rule.conditions):
            errors.extend(
                self._condition_errors(condition, f"{location}.conditions[{index}]")
            )
        return errors

    def _condition_errors(self, condition: Condition, location: str) -> list[str]:
        errors: list[str] = []
        operator = condition.operator

        if not condition.field:
            errors.append(f"{location}.field: must not be blank")

        if operator in VALUE_OPERATORS:
            if condition.value is None:
                errors.append(f"{location}: {operator.value} requires 'value'")
            elif operator in NUMERIC_OPERATORS and parse_decimal(condition.value) is None:
                errors.append(
                    f"{location}: {operator.value} requires a numeric value, "
                    f"got '{condition.value}'"
                )
        elif operator in LIST_OPERATORS:
            if not condition.values:
                errors.append(f"{location}: {operator.value} requires non-empty 'values'")
        elif operator == ConditionOperator.BETWEEN:
            errors.extend(self._between_errors(condition, location))

        return errors

    @staticmethod
    def _between_errors(condition: Condition, location: str) -> list[str]:
        if condition.min_value is None or condition.max_value is None:
            return [f"{location}: BETWEEN requires both 'minValue' and 'maxValue'"]
        low = parse_decimal(condition.min_value)
        high = parse_decimal(condition.max_value)
        if low is None or high is None:
            return [f"{location}: BETWEEN bounds must be numeric"]
        if low > high:
            return [
                f"{location}: BETWEEN minValue {condition.min_value} "
                f"exceeds maxValue {condition.max_value}"
            ]
        return []
