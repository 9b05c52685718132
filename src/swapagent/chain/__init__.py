"""EVM chain access over JSON-RPC."""

from swapagent.chain.client import ChainClient
from swapagent.chain.errors import (
    ChainError,
    ConfirmationTimeoutError,
    RpcError,
    TransactionNotFoundError,
)
from swapagent.chain.types import ChainTransaction, LogEntry, TxReceipt

__all__ = [
    "ChainClient",
    "ChainError",
    "RpcError",
    "ConfirmationTimeoutError",
    "TransactionNotFoundError",
    "ChainTransaction",
    "LogEntry",
    "TxReceipt",
]
