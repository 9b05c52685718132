"""Swap service with a durable audit trail.

Wraps the orchestrator with FinancialAction bookkeeping: a PROCESSING record
is written before work starts and always moved to SUCCESS, FAILED or ERROR.
Audit writes never change the result returned to the caller.
"""

import asyncio
import json
import logging
from decimal import Decimal
from typing import Optional

from swapagent.aggregator.client import SwingClient
from swapagent.chain.client import ChainClient
from swapagent.ledger.audit import FinancialActionRecorder
from swapagent.ledger.models import ActionResult, ActionType
from swapagent.swap.action_log import NotifyCallback
from swapagent.swap.errors import step_failure_message
from swapagent.swap.models import (
    FailureKind,
    SwapAmounts,
    SwapFailure,
    SwapRequest,
    SwapResult,
    Token,
)
from swapagent.swap.orchestrator import SwapOrchestrator
from swapagent.swap.receipt import ReceiptAnalyzer

logger = logging.getLogger(__name__)

WEI_PER_ETH = Decimal(10) ** 18


class TokenNotFoundError(LookupError):
    """Raised when a symbol is not listed on a chain."""

    pass


class SwapService:
    """Entry point used by action handlers and the HTTP API."""

    def __init__(
        self,
        orchestrator: SwapOrchestrator,
        recorder: FinancialActionRecorder,
        aggregator: SwingClient,
        chain: ChainClient,
        receipt_analyzer: ReceiptAnalyzer,
        native_symbol: str = "ETH",
    ):
        self.orchestrator = orchestrator
        self.recorder = recorder
        self.aggregator = aggregator
        self.chain = chain
        self.receipt_analyzer = receipt_analyzer
        self.native_symbol = native_symbol.upper()

    async def swap(
        self,
        user_id: int,
        request: SwapRequest,
        notify: Optional[NotifyCallback] = None,
    ) -> SwapResult:
        """Quote or execute a swap and record it as a financial action."""
        action_type = (
            ActionType.CRYPTO_SWAP_QUOTE_SWING if request.quote_only else ActionType.CRYPTO_SWAP_SWING
        )
        input_before, output_before = await self._balances(request)

        action_id = await self.recorder.start(
            account_id=user_id,
            action_type=action_type.value,
            wallet_address=request.wallet_address,
            network=request.chain,
            input_currency=request.token_in,
            output_currency=request.token_out,
            input_amount=request.amount,
            input_balance_before=input_before,
            output_balance_before=output_before,
        )

        try:
            result = await self.orchestrator.swap(request, notify)
        except asyncio.CancelledError:
            await self.recorder.finish(
                action_id,
                ActionResult.ERROR,
                result_data=json.dumps({"status": "ERROR", "error": "cancelled"}),
                user_message=f"Swap from {request.token_in} to {request.token_out} was interrupted.",
            )
            raise
        except Exception as e:
            logger.exception(f"Unexpected error swapping for user {user_id}")
            await self.recorder.finish(
                action_id,
                ActionResult.ERROR,
                result_data=json.dumps({"status": "ERROR", "error": str(e)}),
                user_message=f"Failed to swap from {request.token_in} to {request.token_out}: {e}",
            )
            return SwapFailure(
                reason=step_failure_message("Processing swap", str(e)),
                kind=FailureKind.UNKNOWN,
                action_log=[],
            )

        input_after = output_after = None
        if result.is_success and result.tx_hash:
            input_after, output_after = await self._balances(request)

        if result.is_success:
            if result.tx_hash:
                message = (
                    f"Successfully swapped {request.token_in} to {request.token_out}. "
                    f"Transaction hash: {result.tx_hash}"
                )
            else:
                message = (
                    f"Quote for {request.amount} {request.token_in} to {request.token_out}: "
                    f"{result.amount_received} at rate {result.quoted_rate}"
                )
            commission_amount = result.commission_paid_native if result.tx_hash else None
            commission_wallet = result.commission_wallet
        else:
            message = result.reason
            commission_amount = None
            commission_wallet = None

        await self.recorder.finish(
            action_id,
            ActionResult.SUCCESS if result.is_success else ActionResult.FAILED,
            result_data=json.dumps(result.to_dict()),
            user_message=message,
            tx_hash=result.tx_hash,
            input_balance_after=input_after,
            output_balance_after=output_after,
            commission_amount=commission_amount,
            commission_wallet=commission_wallet,
        )
        return result

    async def swap_details(
        self,
        tx_hash: str,
        chain: str,
        token_in: str,
        token_out: str,
    ) -> tuple[Token, Token, SwapAmounts]:
        """Re-derive the amounts of a previously submitted swap.

        Raises:
            TokenNotFoundError: If either symbol is not listed on the chain
            TransactionNotFoundError: If the transaction is unknown
        """
        token_from, token_to = await self._resolve_tokens(chain, token_in, token_out)
        amounts = await self.receipt_analyzer.analyze_transaction(tx_hash, token_from, token_to)
        return token_from, token_to, amounts

    async def wallet_balance(self, address: str, chain: str, symbol: str) -> Decimal:
        """Balance of a native or listed ERC20 asset, in human units."""
        symbol = symbol.upper()
        if symbol == self.native_symbol:
            return Decimal(await self.chain.get_balance(address)) / WEI_PER_ETH

        (token,) = await self._resolve_tokens(chain, symbol)
        if token.is_native:
            return Decimal(await self.chain.get_balance(address)) / WEI_PER_ETH
        return token.from_raw(await self.chain.get_token_balance(token.address, address))

    async def _resolve_tokens(self, chain: str, *symbols: str) -> list[Token]:
        tokens = await self.aggregator.find_tokens(chain, *symbols)
        for symbol, token in zip(symbols, tokens):
            if token is None:
                raise TokenNotFoundError(f"Token {symbol.upper()} is not supported on {chain}")
        return tokens

    async def _balances(self, request: SwapRequest) -> tuple[Optional[Decimal], Optional[Decimal]]:
        """Best-effort balances of both legs for the audit record."""
        balances: list[Optional[Decimal]] = []
        for symbol in (request.token_in, request.token_out):
            try:
                balances.append(await self.wallet_balance(request.wallet_address, request.chain, symbol))
            except Exception as e:
                logger.warning(f"Could not read {symbol} balance of {request.wallet_address}: {e}")
                balances.append(None)
        return balances[0], balances[1]
