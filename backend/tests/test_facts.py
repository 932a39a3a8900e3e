"""Tests for fact values and fact bag path resolution."""

from decimal import Decimal

from policy_engine.services.rule_engine.facts import (
    FactBag,
    FactKind,
    FactValue,
    canonical_number,
    normalize_text,
    parse_decimal,
)


class TestFactValue:
    """Tests for tagging and coercion of raw fact values."""

    def test_kinds(self):
        """Raw Python values are tagged with the right kind."""
        assert FactValue.of(None).kind == FactKind.NULL
        assert FactValue.of(True).kind == FactKind.BOOLEAN
        assert FactValue.of(700).kind == FactKind.NUMBER
        assert FactValue.of(12.5).kind == FactKind.NUMBER
        assert FactValue.of("SALARIED").kind == FactKind.STRING
        assert FactValue.of({"age": 30}).kind == FactKind.MAPPING

    def test_bool_is_not_a_number(self):
        """True is a boolean, not the number 1."""
        assert FactValue.of(True).as_number() is None

    def test_numeric_string_coerces_to_number(self):
        """A string holding a decimal literal has a numeric view."""
        assert FactValue.of(" 720 ").as_number() == Decimal("720")
        assert FactValue.of("seven hundred").as_number() is None

    def test_float_keeps_its_decimal_text(self):
        """Floats go through their repr, so 0.1 stays 0.1."""
        assert FactValue.of(0.1).as_number() == Decimal("0.1")

    def test_text_view_is_canonical_for_numbers(self):
        """700, 700.0 and 700.00 all render as 700."""
        assert FactValue.of(700.0).as_text() == "700"
        assert FactValue.of(Decimal("700.00")).as_text() == "700"
        assert FactValue.of(12.50).as_text() == "12.5"

    def test_bool_view(self):
        """Booleans accept true/false strings in any case and 1/0."""
        assert FactValue.of("TRUE").as_bool() is True
        assert FactValue.of("false").as_bool() is False
        assert FactValue.of(1).as_bool() is True
        assert FactValue.of("yes").as_bool() is None


class TestNumberHelpers:
    """Tests for decimal parsing and canonical number text."""

    def test_parse_decimal_rejects_non_finite(self):
        """NaN and Infinity are not usable operands."""
        assert parse_decimal("NaN") is None
        assert parse_decimal("Infinity") is None
        assert parse_decimal("1e3") == Decimal("1000")

    def test_canonical_number(self):
        """Exponent and trailing zeros do not change the canonical form."""
        assert canonical_number(Decimal("7E+2")) == "700"
        assert canonical_number(Decimal("1.2300")) == "1.23"

    def test_canonical_number_beyond_context_precision(self):
        """Integers wider than 28 digits render without rounding or raising."""
        assert canonical_number(Decimal(10**30)) == "1" + "0" * 30
        assert canonical_number(Decimal("1E+30")) == "1" + "0" * 30
        assert canonical_number(Decimal("-0.00")) == "0"
        assert FactValue.of(10**30).display() == "1" + "0" * 30

    def test_normalize_text(self):
        """Numeric text is canonicalized and other text is only stripped."""
        assert normalize_text(" 700.0 ") == "700"
        assert normalize_text(" Salaried ") == "Salaried"


class TestFactBag:
    """Tests for dot-path resolution."""

    def test_nested_path(self):
        """Nested mappings resolve segment by segment."""
        facts = FactBag({"applicant": {"age": 30, "address": {"state": "KA"}}})
        assert facts.resolve("applicant.age").as_number() == Decimal("30")
        assert facts.resolve("applicant.address.state").as_text() == "KA"

    def test_flat_dotted_key(self):
        """A flat dotted key is matched before any nesting."""
        facts = FactBag({"applicant.age": 41})
        assert facts.resolve("applicant.age").as_number() == Decimal("41")

    def test_mixed_flat_and_nested(self):
        """A dotted key can live inside a nested mapping."""
        facts = FactBag({"loan": {"details.amount": 500000}})
        assert facts.resolve("loan.details.amount").as_number() == Decimal("500000")

    def test_missing_paths_are_null(self):
        """Unknown paths and paths through scalars resolve to NULL without raising."""
        facts = FactBag({"applicant": {"age": 30}})
        assert facts.resolve("applicant.income").is_null
        assert facts.resolve("applicant.age.years").is_null
        assert facts.resolve("").is_null
        assert "applicant.age" in facts
        assert "applicant.income" not in facts

    def test_explicit_none_is_null(self):
        """A key present with a None value is NULL."""
        assert FactBag({"applicant": {"cropType": None}}).resolve("applicant.cropType").is_null

    def test_of_passes_through_existing_bag(self):
        """FactBag.of does not re-wrap a bag."""
        facts = FactBag({"a": 1})
        assert FactBag.of(facts) is facts
        assert len(FactBag.of(None)) == 0
