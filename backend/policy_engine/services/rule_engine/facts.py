"""Typed fact values and dot-path resolution over a caller-supplied fact bag.

Every fact is tagged as NUMBER, STRING, BOOLEAN, NULL or MAPPING. Operators
never look at raw Python values directly; they use one of three coercion
views:

- ``as_number``: NUMBER as Decimal, or a STRING holding a finite decimal literal
- ``as_text``: STRING as-is, NUMBER in canonical form (``700.0`` -> ``700``),
  BOOLEAN as ``true``/``false``
- ``as_bool``: BOOLEAN, STRING ``true``/``false`` (any case), NUMBER 1/0

A path that cannot be resolved is NULL; resolution never raises.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional, Union


class FactKind(str, Enum):
    NUMBER = "NUMBER"
    STRING = "STRING"
    BOOLEAN = "BOOLEAN"
    NULL = "NULL"
    MAPPING = "MAPPING"


def parse_decimal(text: Optional[str]) -> Optional[Decimal]:
    """Parse a finite decimal literal; None for anything else."""
    if text is None:
        return None
    try:
        number = Decimal(text.strip())
    except (InvalidOperation, AttributeError):
        return None
    return number if number.is_finite() else None


def canonical_number(number: Decimal) -> str:
    """Precision-independent text for a number: 700, 700.0 and 7E+2 all give '700'.

    Trailing zeros are stripped from the coefficient directly, so no
    context arithmetic (and no 28-digit precision limit) is involved.
    """
    sign, digits, exponent = number.as_tuple()
    digits = list(digits)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    if digits == [0]:
        return "0"
    return format(Decimal((sign, tuple(digits), exponent)), "f")


def normalize_text(text: str) -> str:
    """Normalization applied to both sides of IN / NOT_IN."""
    text = text.strip()
    number = parse_decimal(text)
    return canonical_number(number) if number is not None else text


@dataclass(frozen=True)
class FactValue:
    """A fact tagged with its kind."""

    kind: FactKind
    raw: Any = None

    @classmethod
    def of(cls, value: Any) -> "FactValue":
        if isinstance(value, FactValue):
            return value
        if value is None:
            return NULL
        # bool is an int subclass, so it must be checked first
        if isinstance(value, bool):
            return cls(FactKind.BOOLEAN, value)
        if isinstance(value, int):
            return cls(FactKind.NUMBER, Decimal(value))
        if isinstance(value, (float, Decimal)):
            try:
                number = Decimal(str(value))
            except InvalidOperation:
                return cls(FactKind.STRING, str(value))
            return cls(FactKind.NUMBER, number)
        if isinstance(value, str):
            return cls(FactKind.STRING, value)
        if isinstance(value, Mapping):
            return cls(FactKind.MAPPING, value)
        if isinstance(value, Enum):
            return cls.of(value.value)
        return cls(FactKind.STRING, str(value))

    @property
    def is_null(self) -> bool:
        return self.kind == FactKind.NULL

    def as_number(self) -> Optional[Decimal]:
        if self.kind == FactKind.NUMBER:
            return self.raw if self.raw.is_finite() else None
        if self.kind == FactKind.STRING:
            return parse_decimal(self.raw)
        return None

    def as_text(self) -> Optional[str]:
        if self.kind == FactKind.STRING:
            return self.raw
        if self.kind == FactKind.NUMBER:
            return canonical_number(self.raw) if self.raw.is_finite() else str(self.raw)
        if self.kind == FactKind.BOOLEAN:
            return "true" if self.raw else "false"
        return None

    def as_bool(self) -> Optional[bool]:
        if self.kind == FactKind.BOOLEAN:
            return self.raw
        if self.kind == FactKind.STRING:
            return parse_bool(self.raw)
        if self.kind == FactKind.NUMBER:
            if self.raw == 1:
                return True
            if self.raw == 0:
                return False
        return None

    def display(self) -> Optional[str]:
        """Text used in traces; mappings are summarized rather than dumped."""
        if self.kind == FactKind.MAPPING:
            return "{" + ", ".join(sorted(str(key) for key in self.raw)) + "}"
        return self.as_text()


NULL = FactValue(FactKind.NULL)


def parse_bool(text: Optional[str]) -> Optional[bool]:
    if text is None:
        return None
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


_MISSING = object()


class FactBag:
    """
    Read-only view over the facts describing one loan application.

    Keys may be flat dotted paths (``{"applicant.age": 30}``), nested
    mappings (``{"applicant": {"age": 30}}``) or a mix of both.
    """

    def __init__(self, facts: Optional[Mapping[str, Any]] = None):
        self._facts: dict[str, Any] = dict(facts or {})

    @classmethod
    def of(cls, facts: Union["FactBag", Mapping[str, Any], None]) -> "FactBag":
        if isinstance(facts, FactBag):
            return facts
        return cls(facts)

    def resolve(self, path: str) -> FactValue:
        """Resolve a dot path to a typed value; unknown paths give NULL."""
        if not path:
            return NULL
        found = _lookup(self._facts, path)
        if found is _MISSING:
            return NULL
        return FactValue.of(found)

    def __contains__(self, path: str) -> bool:
        return not self.resolve(path).is_null

    def __len__(self) -> int:
        return len(self._facts)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._facts)


def _lookup(mapping: Mapping[str, Any], path: str) -> Any:
    if path in mapping:
        return mapping[path]

    segments = path.split(".")
    # Try every split point so "loan.details.amount" can live under
    # {"loan": {"details.amount": ...}} as well as fully nested.
    for index in range(1, len(segments)):
        head = ".".join(segments[:index])
        child = mapping.get(head, _MISSING)
        if isinstance(child, Mapping):
            found = _lookup(child, ".".join(segments[index:]))
            if found is not _MISSING:
                return found
    return _MISSING
