"""Data models for quoting and executing swaps."""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional, Union

# Sentinel used by aggregators for the chain's native asset
NATIVE_TOKEN_ADDRESS = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
NATIVE_TOKEN_ADDRESSES = frozenset({NATIVE_TOKEN_ADDRESS, ZERO_ADDRESS})


@dataclass(frozen=True)
class Token:
    """Token on a specific chain."""

    chain: str
    symbol: str
    address: str
    decimals: int

    @property
    def is_native(self) -> bool:
        return self.address.lower() in NATIVE_TOKEN_ADDRESSES

    def to_raw(self, amount: Decimal) -> int:
        """Convert a human amount to integer base units (rounded half up)."""
        scaled = Decimal(amount) * (Decimal(10) ** self.decimals)
        return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def from_raw(self, raw_amount: int) -> Decimal:
        """Convert integer base units to a human amount."""
        return Decimal(raw_amount) / (Decimal(10) ** self.decimals)


@dataclass(frozen=True)
class ChainInfo:
    """Chain supported by the aggregator."""

    slug: str
    chain_id: Optional[int]
    native_symbol: str


@dataclass
class RouteQuote:
    """One route returned by the aggregator quote endpoint.

    Attributes:
        amount_out: Output amount in raw units of the output token
        fees_usd: Individual fee amounts in USD
        route: Ordered hops, each a dict with at least a "bridge" key
        integration: Name of the aggregator integration serving the route
        distribution: Split of the route across venues
        rank: Position in the aggregator's original ranking
        raw: Route object as returned by the aggregator
    """

    amount_out: int
    fees_usd: list[Decimal]
    route: list[dict[str, Any]]
    integration: str = ""
    distribution: dict[str, Any] = field(default_factory=dict)
    rank: int = 0
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def hop_count(self) -> int:
        # Distribution lists the venues a route passes through
        if self.distribution:
            return len(self.distribution)
        return max(len(self.route), 1)

    @property
    def bridge(self) -> str:
        if self.route:
            return self.route[0].get("bridge", "")
        return ""

    @property
    def total_fee_usd(self) -> Decimal:
        return sum(self.fees_usd, Decimal("0"))


@dataclass
class SwapRequest:
    """Request to quote or execute a swap."""

    wallet_address: str
    chain: str
    token_in: str
    token_out: str
    amount: Decimal
    quote_only: bool = True
    approved_rate: Optional[Decimal] = None
    max_slippage_percent: Decimal = Decimal("1")

    def __post_init__(self):
        self.token_in = self.token_in.strip().upper()
        self.token_out = self.token_out.strip().upper()
        self.chain = self.chain.strip().lower()
        self.amount = Decimal(self.amount)
        if self.approved_rate is not None:
            self.approved_rate = Decimal(self.approved_rate)
        self.max_slippage_percent = Decimal(self.max_slippage_percent)


@dataclass(frozen=True)
class SwapAmounts:
    """Amounts actually moved by a confirmed swap, in human units."""

    sent: Decimal
    received: Decimal
    gas_fee_native: Decimal
    rate: Optional[Decimal]

    @classmethod
    def build(cls, sent: Decimal, received: Decimal, gas_fee_native: Decimal) -> "SwapAmounts":
        """Build amounts, leaving the rate unknown when nothing was sent."""
        rate = received / sent if sent > 0 else None
        return cls(sent=sent, received=received, gas_fee_native=gas_fee_native, rate=rate)

    @property
    def is_complete(self) -> bool:
        return self.sent > 0 and self.received > 0


@dataclass
class CommissionResult:
    """Outcome of a commission transfer."""

    amount_paid_native: Decimal
    destination_wallet: str
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    @property
    def collected(self) -> bool:
        return self.amount_paid_native > 0


@dataclass
class PendingCancellation:
    """Cancellation attempt for one stuck nonce."""

    nonce: int
    tx_hash: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CancellationReport:
    """Result of a pending-transaction sweep."""

    pending_count: int = 0
    cancellations: list[PendingCancellation] = field(default_factory=list)

    @property
    def canceled_tx_hashes(self) -> list[str]:
        return [c.tx_hash for c in self.cancellations if c.tx_hash]


class FailureKind(str, Enum):
    """Classification of a failed swap."""

    PRECONDITION = "precondition"
    ROUTE_NOT_FOUND = "route_not_found"
    NO_LIQUIDITY = "no_liquidity"
    RATE_MOVED = "rate_moved"
    ROUTE_TOO_LONG = "route_too_long"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    HIGH_SLIPPAGE = "high_slippage"
    EXECUTION_REVERTED = "execution_reverted"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    WALLET_BUSY = "wallet_busy"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


def _str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass
class SwapSuccess:
    """Successful quote (no tx_hash) or executed swap."""

    token_in: Token
    token_out: Token
    amount_sent: Decimal
    amount_received: Decimal  # Quoted
    quoted_rate: Decimal
    total_fee_usd: Decimal
    quotes: list[RouteQuote]
    action_log: list[str]
    tx_hash: Optional[str] = None
    actual_amount_sent: Optional[Decimal] = None
    actual_amount_received: Optional[Decimal] = None
    actual_rate: Optional[Decimal] = None
    gas_fee_native: Optional[Decimal] = None
    commission_paid_native: Decimal = Decimal("0")
    commission_wallet: Optional[str] = None

    is_success = True

    @property
    def best_quote(self) -> RouteQuote:
        return self.quotes[0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "isSuccess": True,
            "txHash": self.tx_hash,
            "tokenIn": self.token_in.symbol,
            "tokenOut": self.token_out.symbol,
            "amountSent": str(self.amount_sent),
            "amountReceived": str(self.amount_received),
            "quotedRate": str(self.quoted_rate),
            "totalFeeUsd": str(self.total_fee_usd),
            "quotes": [
                {
                    "integration": q.integration,
                    "bridge": q.bridge,
                    "hops": q.hop_count,
                    "amountOut": str(self.token_out.from_raw(q.amount_out)),
                    "feeUsd": str(q.total_fee_usd),
                }
                for q in self.quotes
            ],
            "actualAmountSent": _str(self.actual_amount_sent),
            "actualAmountReceived": _str(self.actual_amount_received),
            "actualRate": _str(self.actual_rate),
            "gasFeeNative": _str(self.gas_fee_native),
            "commissionPaidNative": str(self.commission_paid_native),
            "commissionWallet": self.commission_wallet,
            "actionLog": list(self.action_log),
        }


@dataclass
class SwapFailure:
    """Failed swap with a plain-language reason."""

    reason: str
    kind: FailureKind
    action_log: list[str]
    tx_hash: Optional[str] = None

    is_success = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "isSuccess": False,
            "reason": self.reason,
            "kind": self.kind.value,
            "txHash": self.tx_hash,
            "actionLog": list(self.action_log),
        }


SwapResult = Union[SwapSuccess, SwapFailure]
