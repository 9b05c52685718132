"""Errors raised by the chain client."""

from typing import Any, Optional


class ChainError(Exception):
    """Base error for RPC transport and protocol failures."""

    pass


class RpcError(ChainError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, code: Optional[int], message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    @property
    def is_insufficient_funds(self) -> bool:
        return "insufficient funds" in self.message.lower()

    @property
    def is_execution_reverted(self) -> bool:
        return "execution reverted" in self.message.lower()

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} (code {self.code})"


class TransactionNotFoundError(ChainError):
    """Raised when a transaction or its receipt is unknown to the node."""

    pass


class ConfirmationTimeoutError(ChainError):
    """Raised when a transaction is not mined within the allotted time.

    The transaction may still be mined later.
    """

    def __init__(self, tx_hash: str, timeout: float):
        super().__init__(f"Transaction confirmation timed out after {timeout:g}s: {tx_hash}")
        self.tx_hash = tx_hash
        self.timeout = timeout
