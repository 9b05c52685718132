"""Conversational action contract."""

from swapagent.actions.dispatcher import ActionDispatcher
from swapagent.actions.requests import (
    ACTIONS,
    ActionValidationError,
    GetApprovalForSendCryptoRequest,
    GetQuoteForSwapCryptoRequest,
    GetWalletBalanceRequest,
    SendCryptoRequest,
    SwapCryptoRequest,
    parse_action,
)

__all__ = [
    "ACTIONS",
    "ActionDispatcher",
    "ActionValidationError",
    "GetApprovalForSendCryptoRequest",
    "GetQuoteForSwapCryptoRequest",
    "GetWalletBalanceRequest",
    "SendCryptoRequest",
    "SwapCryptoRequest",
    "parse_action",
]
