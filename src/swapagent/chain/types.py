"""Typed views of JSON-RPC transaction, receipt and log objects."""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


def to_int(value: Union[str, int, None], default: int = 0) -> int:
    """Parse a JSON-RPC quantity (hex string), decimal string or int."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    value = str(value).strip()
    if value.lower().startswith("0x"):
        return int(value, 16) if len(value) > 2 else 0
    return int(value)


def to_hex(value: int) -> str:
    """Encode an int as a JSON-RPC quantity."""
    return hex(value)


@dataclass(frozen=True)
class LogEntry:
    """Event log emitted by a transaction."""

    address: str
    topics: tuple[str, ...]
    data: str
    log_index: int = 0

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> "LogEntry":
        return cls(
            address=raw.get("address", "").lower(),
            topics=tuple(t.lower() for t in raw.get("topics", [])),
            data=raw.get("data", "0x"),
            log_index=to_int(raw.get("logIndex")),
        )

    @property
    def topic0(self) -> Optional[str]:
        return self.topics[0] if self.topics else None


@dataclass(frozen=True)
class TxReceipt:
    """Receipt of a mined transaction."""

    transaction_hash: str
    status: int
    block_number: int
    from_address: str
    to_address: Optional[str]
    gas_used: int
    effective_gas_price: int
    logs: tuple[LogEntry, ...] = field(default_factory=tuple)

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> "TxReceipt":
        to_address = raw.get("to")
        return cls(
            transaction_hash=raw.get("transactionHash", ""),
            status=to_int(raw.get("status"), default=1),
            block_number=to_int(raw.get("blockNumber")),
            from_address=raw.get("from", "").lower(),
            to_address=to_address.lower() if to_address else None,
            gas_used=to_int(raw.get("gasUsed")),
            effective_gas_price=to_int(raw.get("effectiveGasPrice") or raw.get("gasPrice")),
            logs=tuple(LogEntry.from_rpc(log) for log in raw.get("logs", [])),
        )

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @property
    def gas_fee(self) -> int:
        """Gas paid in wei."""
        return self.gas_used * self.effective_gas_price


@dataclass(frozen=True)
class ChainTransaction:
    """Submitted transaction as returned by eth_getTransactionByHash."""

    hash: str
    from_address: str
    to_address: Optional[str]
    value: int
    nonce: int
    input: str = "0x"
    gas_price: int = 0
    block_number: Optional[int] = None

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> "ChainTransaction":
        to_address = raw.get("to")
        block = raw.get("blockNumber")
        return cls(
            hash=raw.get("hash", ""),
            from_address=raw.get("from", "").lower(),
            to_address=to_address.lower() if to_address else None,
            value=to_int(raw.get("value")),
            nonce=to_int(raw.get("nonce")),
            input=raw.get("input", "0x"),
            gas_price=to_int(raw.get("gasPrice")),
            block_number=to_int(block) if block is not None else None,
        )
