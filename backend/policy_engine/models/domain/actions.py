"""Typed parameter payloads for policy actions.

Each ``ActionType`` maps to exactly one payload class. Raw parameter maps
(the loosely-typed ``{"rate": "12.5", "type": "FIXED"}`` form used on the
wire and in storage) are parsed into these payloads when a policy is saved,
so a malformed action is a ``PolicyValidationError`` at definition time
rather than a cast failure during evaluation.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Union

from policy_engine.core.enums import ActionType, RateType, RiskSeverity
from policy_engine.core.exceptions import PolicyValidationError


@dataclass(frozen=True)
class DecisionParameters:
    """APPROVE / REJECT / REFER."""

    reason: Optional[str] = None

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "DecisionParameters":
        return cls(reason=_text(raw, "reason", required=False))

    def to_parameters(self) -> dict[str, Any]:
        return _compact({"reason": self.reason})


@dataclass(frozen=True)
class InterestRateParameters:
    """SET_INTEREST_RATE: annual rate in percent."""

    rate: Decimal
    rate_type: RateType = RateType.FIXED

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "InterestRateParameters":
        rate = _decimal(raw, "rate", minimum=Decimal("0"))
        rate_type = raw.get("type") or RateType.FIXED.value
        try:
            rate_type = RateType(str(rate_type).upper())
        except ValueError:
            raise PolicyValidationError(
                f"Unknown interest rate type '{raw.get('type')}'"
            )
        return cls(rate=rate, rate_type=rate_type)

    def to_parameters(self) -> dict[str, Any]:
        return {"rate": str(self.rate), "type": self.rate_type.value}


@dataclass(frozen=True)
class ProcessingFeeParameters:
    """SET_PROCESSING_FEE: a percentage of the loan, a flat amount, or both."""

    percentage: Optional[Decimal] = None
    amount: Optional[Decimal] = None

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "ProcessingFeeParameters":
        percentage = _decimal(raw, "percentage", required=False, minimum=Decimal("0"))
        amount = _decimal(raw, "amount", required=False, minimum=Decimal("0"))
        if percentage is None and amount is None:
            raise PolicyValidationError(
                "SET_PROCESSING_FEE requires 'percentage' or 'amount'"
            )
        return cls(percentage=percentage, amount=amount)

    def to_parameters(self) -> dict[str, Any]:
        return _compact(
            {
                "percentage": None if self.percentage is None else str(self.percentage),
                "amount": None if self.amount is None else str(self.amount),
            }
        )


@dataclass(frozen=True)
class MaxAmountParameters:
    """SET_MAX_AMOUNT."""

    amount: Decimal

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "MaxAmountParameters":
        return cls(amount=_decimal(raw, "amount", minimum=Decimal("0"), exclusive=True))

    def to_parameters(self) -> dict[str, Any]:
        return {"amount": str(self.amount)}


@dataclass(frozen=True)
class MaxTenureParameters:
    """SET_MAX_TENURE in months."""

    months: int

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "MaxTenureParameters":
        value = _decimal(raw, "months", minimum=Decimal("0"), exclusive=True)
        if value != value.to_integral_value():
            raise PolicyValidationError("'months' must be a whole number")
        return cls(months=int(value))

    def to_parameters(self) -> dict[str, Any]:
        return {"months": str(self.months)}


@dataclass(frozen=True)
class DocumentParameters:
    """REQUIRE_DOCUMENT."""

    document_type: str
    mandatory: bool = True

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "DocumentParameters":
        return cls(
            document_type=_text(raw, "documentType"),
            mandatory=parse_flag(raw, "mandatory", default=True),
        )

    def to_parameters(self) -> dict[str, Any]:
        return {
            "documentType": self.document_type,
            "mandatory": "true" if self.mandatory else "false",
        }


@dataclass(frozen=True)
class RoleParameters:
    """ASSIGN_TO_ROLE."""

    role: str

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "RoleParameters":
        return cls(role=_text(raw, "role"))

    def to_parameters(self) -> dict[str, Any]:
        return {"role": self.role}


@dataclass(frozen=True)
class NotificationParameters:
    """NOTIFY."""

    message: str
    recipient: Optional[str] = None
    channel: Optional[str] = None

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "NotificationParameters":
        return cls(
            message=_text(raw, "message"),
            recipient=_text(raw, "recipient", required=False),
            channel=_text(raw, "channel", required=False),
        )

    def to_parameters(self) -> dict[str, Any]:
        return _compact(
            {"message": self.message, "recipient": self.recipient, "channel": self.channel}
        )


@dataclass(frozen=True)
class RiskFlagParameters:
    """FLAG_RISK."""

    reason: str
    severity: RiskSeverity = RiskSeverity.MEDIUM

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "RiskFlagParameters":
        severity = raw.get("severity") or RiskSeverity.MEDIUM.value
        try:
            severity = RiskSeverity(str(severity).upper())
        except ValueError:
            raise PolicyValidationError(f"Unknown risk severity '{raw.get('severity')}'")
        return cls(reason=_text(raw, "reason"), severity=severity)

    def to_parameters(self) -> dict[str, Any]:
        return {"reason": self.reason, "severity": self.severity.value}


ActionParameters = Union[
    DecisionParameters,
    InterestRateParameters,
    ProcessingFeeParameters,
    MaxAmountParameters,
    MaxTenureParameters,
    DocumentParameters,
    RoleParameters,
    NotificationParameters,
    RiskFlagParameters,
]

ACTION_PARAMETER_TYPES: dict[ActionType, type] = {
    ActionType.APPROVE: DecisionParameters,
    ActionType.REJECT: DecisionParameters,
    ActionType.REFER: DecisionParameters,
    ActionType.SET_INTEREST_RATE: InterestRateParameters,
    ActionType.SET_PROCESSING_FEE: ProcessingFeeParameters,
    ActionType.SET_MAX_AMOUNT: MaxAmountParameters,
    ActionType.SET_MAX_TENURE: MaxTenureParameters,
    ActionType.REQUIRE_DOCUMENT: DocumentParameters,
    ActionType.ASSIGN_TO_ROLE: RoleParameters,
    ActionType.NOTIFY: NotificationParameters,
    ActionType.FLAG_RISK: RiskFlagParameters,
}


def parse_action_parameters(
    action_type: ActionType, raw: Optional[Mapping[str, Any]]
) -> ActionParameters:
    """
    Parse a raw parameter map into the typed payload for ``action_type``.

    Args:
        action_type: The action's type
        raw: Raw parameters (string or JSON scalar values), may be None

    Returns:
        The typed payload

    Raises:
        PolicyValidationError: If a required parameter is missing or invalid
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise PolicyValidationError(f"{action_type.value} parameters must be a mapping")

    payload_type = ACTION_PARAMETER_TYPES[action_type]
    try:
        return payload_type.parse(raw)
    except PolicyValidationError as e:
        raise PolicyValidationError(f"{action_type.value}: {e.message}")


# ===== Parsing helpers =====


def _text(raw: Mapping[str, Any], key: str, required: bool = True) -> Optional[str]:
    value = raw.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise PolicyValidationError(f"'{key}' is required")
        return None
    return str(value).strip()


def _decimal(
    raw: Mapping[str, Any],
    key: str,
    required: bool = True,
    minimum: Optional[Decimal] = None,
    exclusive: bool = False,
) -> Optional[Decimal]:
    value = raw.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise PolicyValidationError(f"'{key}' is required")
        return None
    if isinstance(value, bool):
        raise PolicyValidationError(f"'{key}' must be a number")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise PolicyValidationError(f"'{key}' must be a number, got '{value}'")
    if not number.is_finite():
        raise PolicyValidationError(f"'{key}' must be a finite number")
    if minimum is not None:
        if exclusive and number <= minimum:
            raise PolicyValidationError(f"'{key}' must be greater than {minimum}")
        if not exclusive and number < minimum:
            raise PolicyValidationError(f"'{key}' must be at least {minimum}")
    return number


def parse_flag(raw: Mapping[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise PolicyValidationError(f"'{key}' must be a boolean, got '{value}'")


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}
