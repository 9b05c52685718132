"""Failure classification for swaps.

Structured fields (aggregator error codes, RPC error codes) are checked first;
message matching is only a fallback for payloads without a code.
"""

import logging
from typing import Optional

from swapagent.aggregator.errors import AggregatorError
from swapagent.chain.errors import ChainError, ConfirmationTimeoutError, RpcError
from swapagent.swap.models import FailureKind
from swapagent.utils.locks import LockTimeoutError

logger = logging.getLogger(__name__)

INSUFFICIENT_FUNDS_MESSAGE = "Insufficient funds. Please add more funds to your wallet and try again."
HIGH_SLIPPAGE_MESSAGE = (
    "Market price moved too much and the slippage became too high. "
    "Please try again by getting a new quote."
)
EXECUTION_REVERTED_MESSAGE = (
    "An error occurred while executing the transaction and transaction was reverted.\n"
    "This might happen when currency pair is not very common or when market is not very liquid.\n"
    "Try converting to ETH first."
)
GENERIC_MESSAGE = "An error occurred. Please try again."
WALLET_BUSY_MESSAGE = (
    "Another transaction for this wallet is still being processed. "
    "Please wait for it to finish and try again."
)


class TransactionRevertedError(Exception):
    """A mined transaction finished with status 0."""

    def __init__(self, tx_hash: str, message: str = "Transaction failed"):
        super().__init__(f"{message}. Tx: {tx_hash}")
        self.tx_hash = tx_hash


class ApprovalFailedError(TransactionRevertedError):
    """The token approval transaction reverted."""

    def __init__(self, tx_hash: str):
        super().__init__(tx_hash, "Approval transaction failed")


def _with_details(message: str, details: Optional[str]) -> str:
    return f"{message}\nDetails: {details}" if details else message


def step_failure_message(step: str, details: Optional[str]) -> str:
    return _with_details(
        f"Ops! Error occurred in step: {step}. Please check your wallet balance and try again.",
        details,
    )


def confirmation_timeout_message(tx_hash: str, explorer_tx_url: str = "") -> str:
    link = f"{explorer_tx_url}{tx_hash}" if explorer_tx_url else tx_hash
    return (
        "Transaction confirmation timed out. The transaction was submitted and may still "
        f"complete - please check its status before trying again: {link}"
    )


def _is_insufficient_funds(error: AggregatorError) -> bool:
    if error.error_code:
        return error.error_code == "INSUFFICIENT_FUNDS"
    return "transfer amount exceeds balance" in error.message.lower()


def _is_high_slippage(error: AggregatorError) -> bool:
    if error.error_code:
        return error.error_code == "HIGH_SLIPPAGE"
    return "slippage" in error.message.lower()


def classify_failure(
    error: BaseException,
    step: str,
    explorer_tx_url: str = "",
) -> tuple[FailureKind, str]:
    """Map an exception raised during a swap to a kind and user message.

    Args:
        error: Exception caught by the orchestrator
        step: User-facing name of the step that was running
        explorer_tx_url: Explorer prefix used in timeout messages

    Returns:
        Tuple of (FailureKind, plain-language message)
    """
    if isinstance(error, AggregatorError):
        if _is_insufficient_funds(error):
            return FailureKind.INSUFFICIENT_FUNDS, _with_details(INSUFFICIENT_FUNDS_MESSAGE, error.message)
        if _is_high_slippage(error):
            return FailureKind.HIGH_SLIPPAGE, HIGH_SLIPPAGE_MESSAGE
        return FailureKind.TRANSPORT, step_failure_message(step, str(error))

    if isinstance(error, TransactionRevertedError):
        return FailureKind.EXECUTION_REVERTED, EXECUTION_REVERTED_MESSAGE

    if isinstance(error, ConfirmationTimeoutError):
        return FailureKind.CONFIRMATION_TIMEOUT, confirmation_timeout_message(
            error.tx_hash, explorer_tx_url
        )

    if isinstance(error, RpcError):
        if error.is_insufficient_funds:
            return FailureKind.INSUFFICIENT_FUNDS, _with_details(INSUFFICIENT_FUNDS_MESSAGE, error.message)
        if error.is_execution_reverted:
            return FailureKind.EXECUTION_REVERTED, EXECUTION_REVERTED_MESSAGE
        return FailureKind.UNKNOWN, _with_details(GENERIC_MESSAGE, error.message)

    if isinstance(error, LockTimeoutError):
        return FailureKind.WALLET_BUSY, WALLET_BUSY_MESSAGE

    if isinstance(error, ChainError):
        return FailureKind.TRANSPORT, step_failure_message(step, str(error))

    logger.error(f"Unclassified error in step {step}: {error!r}")
    return FailureKind.UNKNOWN, step_failure_message(step, str(error))
