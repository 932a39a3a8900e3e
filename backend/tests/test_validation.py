"""Tests for save-time policy validation and typed action parameters."""

from datetime import timedelta
from decimal import Decimal

import pytest

from policy_engine.core.enums import ActionType, RateType
from policy_engine.core.exceptions import PolicyValidationError
from policy_engine.models.domain.actions import (
    DocumentParameters,
    InterestRateParameters,
    MaxTenureParameters,
    parse_action_parameters,
)
from policy_engine.models.domain.policy import Action, Condition, PolicyRule
from policy_engine.services.validation import PolicyValidator

from conftest import FIXED_NOW, make_definition, make_rule


def validate(**definition):
    PolicyValidator().validate(make_definition(**definition).to_policy())


def condition_errors(condition: dict) -> list[str]:
    with pytest.raises(PolicyValidationError) as exc_info:
        validate(rules=[make_rule("R", conditions=[condition])])
    return exc_info.value.errors


class TestPolicyValidator:
    """Tests for PolicyValidator."""

    def test_valid_policy_passes(self):
        """A well-formed policy raises nothing."""
        validate(
            rules=[
                make_rule(
                    "Age band",
                    conditions=[{"field": "age", "operator": "BETWEEN", "minValue": 21, "maxValue": 60}],
                )
            ]
        )

    def test_blank_name(self):
        """Policy names must not be blank."""
        with pytest.raises(PolicyValidationError) as exc_info:
            validate(name="   ")
        assert exc_info.value.errors == ["name: must not be blank"]

    def test_comparison_without_value(self):
        """Comparison operators need a value."""
        errors = condition_errors({"field": "age", "operator": "GREATER_THAN"})
        assert errors == ["rules[0].conditions[0]: GREATER_THAN requires 'value'"]

    def test_numeric_comparison_with_text_value(self):
        """Numeric comparisons need a numeric value."""
        errors = condition_errors({"field": "age", "operator": "LESS_THAN", "value": "old"})
        assert "requires a numeric value" in errors[0]

    def test_equals_accepts_text(self):
        """EQUALS takes any value."""
        validate(rules=[make_rule("R", conditions=[{"field": "type", "operator": "EQUALS", "value": "SALARIED"}])])

    def test_in_without_values(self):
        """IN / NOT_IN need a non-empty values list."""
        errors = condition_errors({"field": "type", "operator": "IN", "values": []})
        assert "non-empty 'values'" in errors[0]

    def test_between_bounds(self):
        """BETWEEN needs both bounds, numeric, and in order."""
        assert "both 'minValue' and 'maxValue'" in condition_errors(
            {"field": "age", "operator": "BETWEEN", "minValue": "21"}
        )[0]
        assert "must be numeric" in condition_errors(
            {"field": "age", "operator": "BETWEEN", "minValue": "a", "maxValue": "b"}
        )[0]
        assert "exceeds maxValue" in condition_errors(
            {"field": "age", "operator": "BETWEEN", "minValue": "60", "maxValue": "21"}
        )[0]

    def test_blank_condition_field(self):
        """Condition fields must not be blank."""
        errors = condition_errors({"field": " ", "operator": "IS_NULL"})
        assert errors == ["rules[0].conditions[0].field: must not be blank"]

    def test_effective_window(self):
        """effectiveFrom must not be after effectiveUntil."""
        with pytest.raises(PolicyValidationError):
            validate(effective_from=FIXED_NOW, effective_until=FIXED_NOW - timedelta(days=1))

    def test_all_errors_are_collected(self):
        """Every problem is reported with its location."""
        with pytest.raises(PolicyValidationError) as exc_info:
            validate(
                name="",
                rules=[
                    make_rule("Dup"),
                    make_rule("dup", conditions=[{"field": "x", "operator": "NOT_IN"}]),
                    make_rule(""),
                ],
            )
        errors = exc_info.value.errors
        assert "name: must not be blank" in errors
        assert "rules[1].name: duplicate rule name 'dup'" in errors
        assert "rules[1].conditions[0]: NOT_IN requires non-empty 'values'" in errors
        assert "rules[2].name: must not be blank" in errors
        assert "(and 3 more)" in exc_info.value.message

    def test_validate_rule(self):
        """A single rule can be validated on its own."""
        with pytest.raises(PolicyValidationError):
            PolicyValidator().validate_rule(make_rule("R", conditions=[{"field": "x", "operator": "EQUALS"}]))


class TestActionParameters:
    """Tests for typed action payload parsing."""

    def test_interest_rate(self):
        """SET_INTEREST_RATE parses the rate and its type."""
        params = parse_action_parameters(ActionType.SET_INTEREST_RATE, {"rate": "8.5", "type": "floating"})
        assert params == InterestRateParameters(rate=Decimal("8.5"), rate_type=RateType.FLOATING)
        assert params.to_parameters() == {"rate": "8.5", "type": "FLOATING"}

    def test_interest_rate_defaults_to_fixed(self):
        """The rate type defaults to FIXED."""
        assert parse_action_parameters(ActionType.SET_INTEREST_RATE, {"rate": 12}).rate_type == RateType.FIXED

    @pytest.mark.parametrize(
        "action_type,parameters",
        [
            (ActionType.SET_INTEREST_RATE, {}),
            (ActionType.SET_INTEREST_RATE, {"rate": "abc"}),
            (ActionType.SET_INTEREST_RATE, {"rate": "-1"}),
            (ActionType.SET_INTEREST_RATE, {"rate": "9", "type": "VARIABLE"}),
            (ActionType.SET_MAX_AMOUNT, {"amount": "0"}),
            (ActionType.SET_MAX_TENURE, {"months": "12.5"}),
            (ActionType.SET_PROCESSING_FEE, {}),
            (ActionType.REQUIRE_DOCUMENT, {"documentType": " "}),
            (ActionType.REQUIRE_DOCUMENT, {"documentType": "PAN", "mandatory": "sometimes"}),
            (ActionType.ASSIGN_TO_ROLE, {}),
            (ActionType.NOTIFY, {"recipient": "ops"}),
            (ActionType.FLAG_RISK, {"reason": "x", "severity": "CRITICAL"}),
        ],
    )
    def test_invalid_parameters(self, action_type, parameters):
        """Missing or malformed parameters are validation errors naming the action."""
        with pytest.raises(PolicyValidationError) as exc_info:
            parse_action_parameters(action_type, parameters)
        assert exc_info.value.message.startswith(action_type.value)

    def test_tenure_and_document(self):
        """Whole-number tenures and document flags parse."""
        assert parse_action_parameters(ActionType.SET_MAX_TENURE, {"months": "360"}) == MaxTenureParameters(360)
        assert parse_action_parameters(
            ActionType.REQUIRE_DOCUMENT, {"documentType": "ITR", "mandatory": "false"}
        ) == DocumentParameters("ITR", False)

    def test_decision_actions_take_optional_reason(self):
        """APPROVE / REJECT / REFER need no parameters."""
        action = Action.create("reject", None)
        assert action.type == ActionType.REJECT
        assert action.parameters.reason is None

    def test_parameters_must_be_a_mapping(self):
        """Non-mapping parameters are rejected."""
        with pytest.raises(PolicyValidationError):
            parse_action_parameters(ActionType.APPROVE, ["reason"])

    def test_unknown_action_type(self):
        """Unknown action types are rejected when the action is built."""
        with pytest.raises(PolicyValidationError):
            Action.create("LAUNCH_ROCKET", {})


class TestConditionModel:
    """Tests for condition construction and serialization."""

    def test_operands_are_stored_as_text(self):
        """JSON scalars become their string form."""
        condition = Condition.create("owner", "equals", value=True)
        assert condition.value == "true"
        condition = Condition.create("age", "BETWEEN", min_value=21, max_value=58.5)
        assert (condition.min_value, condition.max_value) == ("21", "58.5")

    def test_to_dict_uses_camel_case(self):
        """Serialized conditions use minValue / maxValue."""
        condition = Condition.create("age", "BETWEEN", min_value="21", max_value="58")
        assert condition.to_dict() == {"field": "age", "operator": "BETWEEN", "minValue": "21", "maxValue": "58"}
        assert Condition.from_dict(condition.to_dict()) == condition

    def test_unknown_operator(self):
        """Unknown operators are rejected."""
        with pytest.raises(PolicyValidationError):
            Condition.create("age", "ROUGHLY")


class TestRuleModel:
    """Tests for rule construction from raw mappings."""

    @pytest.mark.parametrize(
        "raw, expected",
        [(None, True), (True, True), (False, False), ("false", False), ("FALSE", False), ("true", True), ("0", False)],
    )
    def test_enabled_flag(self, raw, expected):
        """Text flags are read as booleans, so "false" disables the rule."""
        data = {"name": "Rule"}
        if raw is not None:
            data["enabled"] = raw
        assert PolicyRule.from_dict(data).enabled is expected

    def test_enabled_must_be_boolean(self):
        """Anything that is not a boolean flag is rejected."""
        with pytest.raises(PolicyValidationError):
            PolicyRule.from_dict({"name": "Rule", "enabled": "maybe"})
