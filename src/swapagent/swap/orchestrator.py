"""Swap orchestration.

Drives one swap end to end:
1. Gas reserve precondition
2. Pending transaction sweep (execute only)
3. Token lookup and raw amount conversion
4. Multi-route quote, fewest hops first
5. Quote-only short circuit, or rate guard against the approved rate
6. Allowance and approval
7. Send call data, route size guard, gas floors
8. Sign, submit and bounded confirmation wait
9. Receipt analysis and commission

Business outcomes are returned as SwapSuccess / SwapFailure; exceptions are
classified into a SwapFailure at the boundary. Every step lands in the
action log, and user-facing steps are streamed to the notify callback.
"""

import json
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Optional, Union

from swapagent.aggregator.client import SwingClient
from swapagent.chain.client import ChainClient
from swapagent.chain.types import to_int
from swapagent.config import Settings
from swapagent.signing.base import TransactionSigner
from swapagent.signing.vault import KeyVault
from swapagent.swap.action_log import ActionLog, NotifyCallback
from swapagent.swap.commission import CommissionCollector
from swapagent.swap.errors import (
    ApprovalFailedError,
    TransactionRevertedError,
    classify_failure,
)
from swapagent.swap.models import (
    CommissionResult,
    FailureKind,
    RouteQuote,
    SwapAmounts,
    SwapFailure,
    SwapRequest,
    SwapResult,
    SwapSuccess,
    Token,
)
from swapagent.swap.nonce import NonceGuard
from swapagent.swap.receipt import ReceiptAnalyzer
from swapagent.utils.locks import WalletLock

logger = logging.getLogger(__name__)

WEI_PER_ETH = Decimal(10) ** 18
GWEI = 10**9
TOP_QUOTES = 3


@dataclass
class _SwapRun:
    """Mutable state of one orchestration call."""

    request: SwapRequest
    log: ActionLog
    step: str = "Preparing swap"
    tx_hash: Optional[str] = None

    def enter(self, step: str, notify: bool = True) -> None:
        self.step = step
        self.log.add(step, notify=notify)

    def fail(self, kind: FailureKind, reason: str) -> SwapFailure:
        self.log.add(f"Swap failed ({kind.value}): {reason}")
        return SwapFailure(reason=reason, kind=kind, action_log=self.log.entries, tx_hash=self.tx_hash)


@dataclass
class _Quote:
    token_in: Token
    token_out: Token
    amount_raw: int
    routes: list[RouteQuote]
    amount_out: Decimal
    rate: Decimal
    total_fee_usd: Decimal

    @property
    def best(self) -> RouteQuote:
        return self.routes[0]


class SwapOrchestrator:
    """Quotes and executes same-chain swaps for custodial wallets."""

    def __init__(
        self,
        chain: ChainClient,
        aggregator: SwingClient,
        vault: KeyVault,
        receipt_analyzer: ReceiptAnalyzer,
        commission: CommissionCollector,
        nonce_guard: NonceGuard,
        min_gas_reserve: Decimal = Decimal("0.0001"),
        confirmation_timeout: float = 30.0,
        approval_timeout: float = 60.0,
        max_call_data_length: int = 4000,
        min_gas_limit: int = 400_000,
        min_max_fee_per_gas: int = GWEI,
        min_priority_fee_per_gas: int = GWEI,
        native_symbol: str = "ETH",
        explorer_tx_url: str = "",
        wallet_lock_timeout: Optional[float] = 120.0,
    ):
        self.chain = chain
        self.aggregator = aggregator
        self.vault = vault
        self.receipt_analyzer = receipt_analyzer
        self.commission = commission
        self.nonce_guard = nonce_guard
        self.min_gas_reserve = min_gas_reserve
        self.confirmation_timeout = confirmation_timeout
        self.approval_timeout = approval_timeout
        self.max_call_data_length = max_call_data_length
        self.min_gas_limit = min_gas_limit
        self.min_max_fee_per_gas = min_max_fee_per_gas
        self.min_priority_fee_per_gas = min_priority_fee_per_gas
        self.native_symbol = native_symbol
        self.explorer_tx_url = explorer_tx_url
        self.wallet_lock_timeout = wallet_lock_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        chain: ChainClient,
        aggregator: SwingClient,
        vault: KeyVault,
        receipt_analyzer: ReceiptAnalyzer,
        commission: CommissionCollector,
        nonce_guard: NonceGuard,
    ) -> "SwapOrchestrator":
        return cls(
            chain=chain,
            aggregator=aggregator,
            vault=vault,
            receipt_analyzer=receipt_analyzer,
            commission=commission,
            nonce_guard=nonce_guard,
            min_gas_reserve=settings.min_gas_reserve,
            confirmation_timeout=settings.confirmation_timeout,
            approval_timeout=settings.approval_confirmation_timeout,
            max_call_data_length=settings.max_call_data_length,
            min_gas_limit=settings.min_swap_gas_limit,
            min_max_fee_per_gas=int(settings.min_max_fee_per_gas_gwei * GWEI),
            min_priority_fee_per_gas=int(settings.min_priority_fee_gwei * GWEI),
            native_symbol=settings.native_symbol,
            explorer_tx_url=settings.explorer_tx_url,
            wallet_lock_timeout=settings.wallet_lock_timeout,
        )

    async def swap(self, request: SwapRequest, notify: Optional[NotifyCallback] = None) -> SwapResult:
        """Quote or execute a swap.

        Args:
            request: Swap parameters; quote_only selects the approval leg
            notify: Non-blocking callback receiving user-facing progress steps

        Returns:
            SwapSuccess (tx_hash is None for quotes) or SwapFailure. Never raises
            for failures inside the swap itself.
        """
        run = _SwapRun(request=request, log=ActionLog(notify=notify))
        run.log.add(
            f"Swapping {request.amount} {request.token_in} to {request.token_out} for wallet "
            f"{request.wallet_address} on {request.chain}. Quote only: {request.quote_only}. "
            f"Approved rate: {request.approved_rate}. Max slippage: {request.max_slippage_percent}%"
        )

        try:
            failure = await self._check_gas_reserve(run)
            if failure is not None:
                return failure

            if request.quote_only:
                quote = await self._quote(run)
                if isinstance(quote, SwapFailure):
                    return quote
                return self._quote_success(run, quote)

            async with WalletLock(
                request.wallet_address, timeout=self.wallet_lock_timeout, operation="swap"
            ):
                return await self._execute(run)

        except Exception as e:
            kind, reason = classify_failure(e, run.step, self.explorer_tx_url)
            logger.error(f"Swap failed in step '{run.step}': {e!r}")
            run.log.add(f"Error in step {run.step}: {e}")
            return run.fail(kind, reason)

    async def _check_gas_reserve(self, run: _SwapRun) -> Optional[SwapFailure]:
        run.step = "Checking wallet balance"
        balance_wei = await self.chain.get_balance(run.request.wallet_address)
        balance = Decimal(balance_wei) / WEI_PER_ETH
        run.log.add(f"Native balance: {balance} {self.native_symbol}")

        if balance < self.min_gas_reserve:
            return run.fail(
                FailureKind.PRECONDITION,
                f"You don't have sufficient {self.native_symbol}. Please add at least "
                f"{self.min_gas_reserve} {self.native_symbol} to your wallet to pay for "
                "potential gas and swap fees.",
            )
        return None

    async def _quote(self, run: _SwapRun) -> Union[_Quote, SwapFailure]:
        request = run.request

        run.enter("Getting tokens in and out from chain")
        token_in, token_out = await self.aggregator.find_tokens(
            request.chain, request.token_in, request.token_out
        )
        for symbol, token in ((request.token_in, token_in), (request.token_out, token_out)):
            if token is None:
                return run.fail(
                    FailureKind.ROUTE_NOT_FOUND,
                    f"No swap route found: {symbol} is not supported on {request.chain}. "
                    "Please check the token symbol and try again.",
                )
        run.log.add_data("Tokens", {"in": asdict(token_in), "out": asdict(token_out)})

        run.enter("Getting amount from token amount")
        amount_raw = token_in.to_raw(request.amount)
        run.log.add(f"Amount from token amount: {amount_raw}")
        if amount_raw <= 0:
            return run.fail(
                FailureKind.PRECONDITION,
                f"The amount {request.amount} {token_in.symbol} is too small to swap.",
            )

        run.enter("Getting quote for swap")
        routes = await self.aggregator.get_quote(
            request.chain, token_in, token_out, request.wallet_address, amount_raw
        )
        if not routes:
            return run.fail(
                FailureKind.NO_LIQUIDITY,
                f"No swap routes found/available for the pair {request.token_in} to "
                f"{request.token_out} at the moment.\nPlease try again later or use "
                f"{self.native_symbol} as an intermediate currency.",
            )

        # Stable sort keeps aggregator ranking among routes with equal hop counts
        routes = sorted(routes, key=lambda r: r.hop_count)
        best = routes[0]
        amount_out = token_out.from_raw(best.amount_out)
        rate = amount_out / request.amount

        run.log.add_data("Best quote", best.raw or {"amount": best.amount_out})
        run.log.add(f"Bridge: {best.bridge}, hops: {best.hop_count}")
        run.log.add(f"Quoted {amount_out} {token_out.symbol} at rate {rate}, fee {best.total_fee_usd} USD")

        return _Quote(
            token_in=token_in,
            token_out=token_out,
            amount_raw=amount_raw,
            routes=routes[:TOP_QUOTES],
            amount_out=amount_out,
            rate=rate,
            total_fee_usd=best.total_fee_usd,
        )

    def _quote_success(self, run: _SwapRun, quote: _Quote) -> SwapSuccess:
        return SwapSuccess(
            token_in=quote.token_in,
            token_out=quote.token_out,
            amount_sent=run.request.amount,
            amount_received=quote.amount_out,
            quoted_rate=quote.rate,
            total_fee_usd=quote.total_fee_usd,
            quotes=quote.routes,
            action_log=run.log.entries,
        )

    def _check_rate(self, run: _SwapRun, quote: _Quote) -> Optional[SwapFailure]:
        """Abort when the fresh rate leaves the approved band.

        The band is symmetric: a rate below ``approved * (1 - tolerance)``
        aborts as well as one above ``approved * (1 + tolerance)``. This is
        stricter than an upper-bound-only check and can refuse a swap whose
        rate moved in the user's favour.
        """
        approved = run.request.approved_rate
        if approved is None:
            return None

        tolerance = run.request.max_slippage_percent / Decimal(100)
        upper = approved * (1 + tolerance)
        lower = approved * (1 - tolerance)
        run.log.add(f"Approved rate {approved}, acceptable range [{lower}, {upper}], new rate {quote.rate}")

        if lower <= quote.rate <= upper:
            return None

        percent = f"{run.request.max_slippage_percent.normalize():f}"
        return run.fail(
            FailureKind.RATE_MOVED,
            f"The swap cancelled because the rate has changed more than {percent}% from the "
            f"rate you approved. The new swap rate was {quote.rate}. Please try again.",
        )

    async def _execute(self, run: _SwapRun) -> SwapResult:
        request = run.request
        run.enter("Starting swap - this may take a while. I will keep you updated.")

        run.enter("Preparing wallet")
        signer = await self.vault.resolve_signer(request.wallet_address)

        run.enter("Cancelling pending transactions")
        report = await self.nonce_guard.cancel_pending(request.wallet_address, signer)
        run.log.add_data(
            f"Pending transactions: {report.pending_count}",
            [asdict(c) for c in report.cancellations],
        )

        quote = await self._quote(run)
        if isinstance(quote, SwapFailure):
            return quote

        failure = self._check_rate(run, quote)
        if failure is not None:
            return failure

        await self._ensure_allowance(run, quote, signer)

        run.enter("Preparing data for swap")
        send_tx = await self.aggregator.get_send_call_data(
            request.chain,
            quote.token_in,
            quote.token_out,
            request.wallet_address,
            quote.amount_raw,
            quote.best.route,
        )
        call_data = json.dumps(send_tx, separators=(",", ":"))
        run.log.add(f"Call data: {call_data}")

        if (
            not quote.token_in.is_native
            and not quote.token_out.is_native
            and len(call_data) > self.max_call_data_length
        ):
            run.log.add("Swap route is too long - cancelling transaction")
            return run.fail(
                FailureKind.ROUTE_TOO_LONG,
                "Swap route is too long - it will become too expensive to execute. "
                f"Please try converting to {self.native_symbol} first.",
            )

        tx = self._apply_gas_floors(send_tx, run.log)

        run.enter("Sending swap transaction")
        tx["nonce"] = await self.chain.get_transaction_count(request.wallet_address, "pending")
        run.log.add(f"Nonce: {tx['nonce']}")
        run.tx_hash = await self.chain.send_transaction(signer, tx)

        run.enter(f"Waiting for transaction to be mined... Tx: {run.tx_hash}")
        receipt = await self.chain.wait_for_receipt(run.tx_hash, timeout=self.confirmation_timeout)
        run.log.add_data(
            "Transaction send receipt",
            {"status": receipt.status, "block": receipt.block_number, "gasUsed": receipt.gas_used},
        )

        if not receipt.succeeded:
            raise TransactionRevertedError(run.tx_hash)

        run.step = "Analyzing swap receipt"
        amounts = await self._analyze(run, receipt, quote)

        run.step = "Collecting commission"
        commission = await self._collect_commission(run, signer)

        run.log.add(f"Swap completed: {run.tx_hash}")
        return SwapSuccess(
            token_in=quote.token_in,
            token_out=quote.token_out,
            amount_sent=request.amount,
            amount_received=quote.amount_out,
            quoted_rate=quote.rate,
            total_fee_usd=quote.total_fee_usd,
            quotes=quote.routes,
            action_log=run.log.entries,
            tx_hash=run.tx_hash,
            actual_amount_sent=amounts.sent if amounts else request.amount,
            actual_amount_received=amounts.received if amounts else Decimal("0"),
            actual_rate=amounts.rate if amounts else None,
            gas_fee_native=amounts.gas_fee_native if amounts else None,
            commission_paid_native=commission.amount_paid_native,
            commission_wallet=commission.destination_wallet or None,
        )

    async def _ensure_allowance(self, run: _SwapRun, quote: _Quote, signer: TransactionSigner) -> None:
        if quote.token_in.is_native:
            run.log.add("Native input - no allowance needed")
            return

        request = run.request
        run.enter("Getting allowance for swap")
        allowance = await self.aggregator.get_allowance(
            request.chain, quote.token_in, quote.token_out, quote.best.bridge, request.wallet_address
        )
        run.log.add(f"Allowance: {allowance}")
        if allowance >= quote.amount_raw:
            return

        run.enter("Approving swap")
        approval_txs = await self.aggregator.get_approval_call_data(
            request.chain,
            quote.token_in,
            quote.token_out,
            quote.best.bridge,
            request.wallet_address,
            quote.amount_raw,
        )
        for approval_tx in approval_txs:
            approval_hash = await self.chain.send_transaction(signer, approval_tx)
            run.log.add(f"Approval transaction sent: {approval_hash}")
            receipt = await self.chain.wait_for_receipt(approval_hash, timeout=self.approval_timeout)
            run.log.add(f"Approval transaction status: {receipt.status}")
            if not receipt.succeeded:
                raise ApprovalFailedError(approval_hash)

    def _apply_gas_floors(self, send_tx: dict, log: ActionLog) -> dict:
        """Raise gas and fee fields to safe minimums without lowering aggregator values."""
        tx = dict(send_tx)

        gas_limit = to_int(tx.pop("gasLimit", None) or tx.pop("gas", None))
        tx.pop("gas", None)
        if gas_limit < self.min_gas_limit:
            gas_limit = self.min_gas_limit
        else:
            log.add(f"Using aggregator-provided gas limit: {gas_limit}")
        tx["gas"] = gas_limit

        legacy_price = to_int(tx.pop("gasPrice", None))
        max_fee = to_int(tx.get("maxFeePerGas")) or legacy_price
        priority_fee = to_int(tx.get("maxPriorityFeePerGas"))

        max_fee = max(max_fee, self.min_max_fee_per_gas)
        priority_fee = max(priority_fee, self.min_priority_fee_per_gas)
        tx["maxFeePerGas"] = max(max_fee, priority_fee)
        tx["maxPriorityFeePerGas"] = priority_fee
        tx["type"] = 2

        log.add(
            f"Gas limit {tx['gas']}, maxFeePerGas {tx['maxFeePerGas']}, "
            f"maxPriorityFeePerGas {tx['maxPriorityFeePerGas']}"
        )
        return tx

    async def _analyze(self, run: _SwapRun, receipt, quote: _Quote) -> Optional[SwapAmounts]:
        try:
            amounts = await self.receipt_analyzer.extract_amounts(receipt, quote.token_in, quote.token_out)
            if not amounts.is_complete:
                run.log.add("Receipt amounts incomplete - re-deriving from transaction")
                amounts = await self.receipt_analyzer.analyze_transaction(
                    run.tx_hash, quote.token_in, quote.token_out
                )
            run.log.add(
                f"Actual amounts: sent {amounts.sent}, received {amounts.received}, "
                f"rate {amounts.rate}, gas {amounts.gas_fee_native}"
            )
            return amounts
        except Exception as e:
            run.log.add(f"Error getting swap details from tx: {e}")
            logger.warning(f"Receipt analysis failed for {run.tx_hash}: {e}")
            return None

    async def _collect_commission(self, run: _SwapRun, signer: TransactionSigner) -> CommissionResult:
        try:
            result = await self.commission.collect(signer, run.log)
        except Exception as e:
            run.log.add(f"Commission transaction failed: {e}")
            logger.warning(f"Commission transaction failed: {e}")
            return CommissionResult(Decimal("0"), self.commission.destination_wallet, error=str(e))
        run.log.add(f"Commission paid: {result.amount_paid_native} {self.native_symbol}")
        return result
