"""Typed requests for the conversational action contract.

Actions arrive as a name plus a list of positional string parameters. Each
name maps to a pydantic model and the order of its positional fields, so
arity and formats are validated once here instead of in every handler.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class ActionValidationError(ValueError):
    """Action parameters are missing or malformed."""

    pass


def _positive_decimal(value: Any, name: str) -> Decimal:
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"{name} must be a number, got '{value}'")
    if not amount.is_finite() or amount <= 0:
        raise ValueError(f"{name} must be greater than zero")
    return amount


class ActionRequest(BaseModel):
    """Base for action parameter models."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    wallet_address: str

    @field_validator("wallet_address")
    @classmethod
    def check_address(cls, value: str) -> str:
        if not ADDRESS_RE.match(value):
            raise ValueError(f"'{value}' is not a valid wallet address")
        return value


class GetQuoteForSwapCryptoRequest(ActionRequest):
    """Quote a swap before asking the user for approval."""

    from_currency: str
    to_currency: str
    amount: Decimal

    @field_validator("from_currency", "to_currency")
    @classmethod
    def upper_symbol(cls, value: str) -> str:
        if not value:
            raise ValueError("currency must not be empty")
        return value.upper()

    @field_validator("amount", mode="before")
    @classmethod
    def check_amount(cls, value: Any) -> Decimal:
        return _positive_decimal(value, "amount")


class SwapCryptoRequest(GetQuoteForSwapCryptoRequest):
    """Execute a swap at a rate the user approved."""

    rate_approved: Decimal

    @field_validator("rate_approved", mode="before")
    @classmethod
    def check_rate(cls, value: Any) -> Decimal:
        return _positive_decimal(value, "rate_approved")


class GetWalletBalanceRequest(ActionRequest):
    """Balance of one currency in a wallet."""

    currency: str

    @field_validator("currency")
    @classmethod
    def upper_symbol(cls, value: str) -> str:
        if not value:
            raise ValueError("currency must not be empty")
        return value.upper()


class GetApprovalForSendCryptoRequest(ActionRequest):
    """Confirm a transfer with the user before sending."""

    recipient: str
    amount: Decimal
    currency: str

    @field_validator("recipient")
    @classmethod
    def check_recipient(cls, value: str) -> str:
        if not ADDRESS_RE.match(value):
            raise ValueError(f"'{value}' is not a valid recipient address")
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def check_amount(cls, value: Any) -> Decimal:
        return _positive_decimal(value, "amount")

    @field_validator("currency")
    @classmethod
    def upper_symbol(cls, value: str) -> str:
        if not value:
            raise ValueError("currency must not be empty")
        return value.upper()


class SendCryptoRequest(GetApprovalForSendCryptoRequest):
    """Send an asset the user approved."""

    pass


# Action name -> (model, positional field names)
ACTIONS: dict[str, tuple[type[ActionRequest], tuple[str, ...]]] = {
    "getQuoteForSwapCrypto": (
        GetQuoteForSwapCryptoRequest,
        ("wallet_address", "from_currency", "to_currency", "amount"),
    ),
    "swapCrypto": (
        SwapCryptoRequest,
        ("wallet_address", "from_currency", "to_currency", "amount", "rate_approved"),
    ),
    "getWalletBalance": (
        GetWalletBalanceRequest,
        ("wallet_address", "currency"),
    ),
    "getApprovalForSendCrypto": (
        GetApprovalForSendCryptoRequest,
        ("wallet_address", "recipient", "amount", "currency"),
    ),
    "sendCrypto": (
        SendCryptoRequest,
        ("wallet_address", "recipient", "amount", "currency"),
    ),
}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def parse_action(name: str, params: Sequence[Any]) -> ActionRequest:
    """Build the typed request for an action from positional parameters.

    Raises:
        ActionValidationError: Unknown action, wrong arity or bad values
    """
    if name not in ACTIONS:
        raise ActionValidationError(f"Unknown action: {name}")

    model, fields = ACTIONS[name]
    required = ", ".join(_camel(f) for f in fields)
    if len(params) < len(fields):
        raise ActionValidationError(f"Insufficient parameters for {name}. Required: {required}")

    values = dict(zip(fields, params))
    if any(value is None or str(value).strip() == "" for value in values.values()):
        raise ActionValidationError(f"All parameters must be provided for {name}: {required}")

    try:
        return model(**{k: str(v) for k, v in values.items()})
    except ValidationError as e:
        errors = "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())
        raise ActionValidationError(f"Invalid parameters for {name}: {errors}")
