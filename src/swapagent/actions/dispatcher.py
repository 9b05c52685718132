"""Action dispatcher.

Routes validated actions to the swap and transfer services and turns results
into the messages shown to the user.
"""

import logging
from decimal import Decimal
from typing import Any, Optional, Sequence

from swapagent.actions.requests import (
    ActionValidationError,
    GetApprovalForSendCryptoRequest,
    GetQuoteForSwapCryptoRequest,
    GetWalletBalanceRequest,
    SendCryptoRequest,
    SwapCryptoRequest,
    parse_action,
)
from swapagent.chain.errors import ChainError
from swapagent.config import Settings
from swapagent.services.swap_service import SwapService
from swapagent.services.transfer_service import TransferRequest, TransferService
from swapagent.swap.action_log import NotifyCallback
from swapagent.swap.models import RouteQuote, SwapRequest

logger = logging.getLogger(__name__)

QUOTE_LABELS = ("Best quote", "2nd best quote", "3rd best quote")


def format_amount(value: Optional[Decimal]) -> str:
    """Plain decimal notation without trailing zeros."""
    if value is None:
        return "0"
    return f"{Decimal(value).normalize():f}"


def quote_summary(quote: RouteQuote) -> str:
    return f"{quote.integration or quote.bridge} (Fee: {format_amount(quote.total_fee_usd)} USD)"


class ActionDispatcher:
    """Executes conversational actions on behalf of a user."""

    def __init__(
        self,
        swap_service: SwapService,
        chain: str = "base",
        explorer_tx_url: str = "https://basescan.org/tx/",
        max_slippage_percent: Decimal = Decimal("1"),
        transfer_service: Optional[TransferService] = None,
    ):
        self.swap_service = swap_service
        self.transfer_service = transfer_service
        self.chain = chain
        self.explorer_tx_url = explorer_tx_url
        self.max_slippage_percent = Decimal(max_slippage_percent)

    @classmethod
    def from_settings(
        cls,
        swap_service: SwapService,
        settings: Settings,
        transfer_service: Optional[TransferService] = None,
    ) -> "ActionDispatcher":
        return cls(
            swap_service,
            transfer_service=transfer_service,
            chain=settings.chain_name,
            explorer_tx_url=settings.explorer_tx_url,
            max_slippage_percent=Decimal(str(settings.default_max_slippage_percent)),
        )

    async def handle(
        self,
        user_id: int,
        user_wallet_address: str,
        action_name: str,
        params: Sequence[Any],
        notify: Optional[NotifyCallback] = None,
    ) -> str:
        """Run one action and return the message for the user.

        Args:
            user_id: Account the action is recorded against
            user_wallet_address: Custodial wallet owned by the user
            action_name: One of the names in swapagent.actions.requests.ACTIONS
            params: Positional string parameters
            notify: Progress callback for long-running swaps
        """
        try:
            request = parse_action(action_name, params)
        except ActionValidationError as e:
            logger.info(f"Rejected action {action_name} for user {user_id}: {e}")
            return str(e)

        if isinstance(request, GetWalletBalanceRequest):
            return await self.wallet_balance(request)

        if request.wallet_address.lower() != user_wallet_address.lower():
            return (
                "You can only send crypto from your own wallet. "
                f"Please use the wallet address: {user_wallet_address}"
            )

        if isinstance(request, SwapCryptoRequest):
            return await self.swap(user_id, request, notify)
        if isinstance(request, GetQuoteForSwapCryptoRequest):
            return await self.quote(user_id, request)
        if isinstance(request, SendCryptoRequest):
            return await self.send(user_id, request)
        if isinstance(request, GetApprovalForSendCryptoRequest):
            return await self.approve_send(request)

        raise ActionValidationError(f"No handler for {type(request).__name__}")

    async def quote(self, user_id: int, request: GetQuoteForSwapCryptoRequest) -> str:
        result = await self.swap_service.swap(user_id, self._swap_request(request, quote_only=True))
        if not result.is_success:
            return result.reason

        balances = await self._balance_lines(
            request.wallet_address, request.from_currency, request.to_currency
        )
        message = (
            f"Do you approve the swap of {format_amount(request.amount)} {request.from_currency} "
            f"to {request.to_currency} at rate {format_amount(result.quoted_rate)}? "
            f"(Approximate fee: {format_amount(result.total_fee_usd)} USD)"
            f"\n\nYour current balance:\n{balances}"
        )

        summaries = [
            f"{label}: {quote_summary(quote)}" for label, quote in zip(QUOTE_LABELS, result.quotes)
        ]
        return message + "\n\n" + "\n".join(summaries)

    async def swap(
        self,
        user_id: int,
        request: SwapCryptoRequest,
        notify: Optional[NotifyCallback] = None,
    ) -> str:
        swap_request = self._swap_request(request, quote_only=False, approved_rate=request.rate_approved)
        result = await self.swap_service.swap(user_id, swap_request, notify)
        if not result.is_success:
            return result.reason

        message = f"Successfully swapped {format_amount(request.amount)} {request.from_currency} to"
        if result.actual_amount_received:
            message += f" {format_amount(result.actual_amount_received)}"
        message += f" {request.to_currency}"
        if result.actual_rate:
            message += f" at rate {format_amount(result.actual_rate)}"
        message += "."
        if result.gas_fee_native:
            message += f" Fee in {self.swap_service.native_symbol}: {format_amount(result.gas_fee_native)}"

        balances = await self._balance_lines(
            request.wallet_address, request.from_currency, request.to_currency
        )
        return (
            f"{message}"
            f"\n\nTransaction hash: {self.explorer_tx_url}{result.tx_hash}"
            f"\n\nYour new balance:\n{balances}"
        )

    async def wallet_balance(self, request: GetWalletBalanceRequest) -> str:
        try:
            balance = await self.swap_service.wallet_balance(
                request.wallet_address, self.chain, request.currency
            )
        except LookupError as e:
            return str(e)
        except ChainError as e:
            logger.warning(f"Could not read {request.currency} balance for {request.wallet_address}: {e}")
            return f"Could not read the {request.currency} balance right now. Please try again later."
        return (
            f"Balance of {request.currency} is {format_amount(balance)} {request.currency} "
            f"for wallet {request.wallet_address}"
        )

    async def approve_send(self, request: GetApprovalForSendCryptoRequest) -> str:
        """Ask the user to confirm a transfer the wallet can cover."""
        try:
            balance = await self.swap_service.wallet_balance(
                request.wallet_address, self.chain, request.currency
            )
        except LookupError as e:
            return str(e)
        except ChainError as e:
            logger.warning(f"Could not read {request.currency} balance for {request.wallet_address}: {e}")
            return f"Could not read the {request.currency} balance right now. Please try again later."

        if balance < request.amount:
            return (
                f"You don't have enough {request.currency} in your wallet. "
                f"Your balance is {format_amount(balance)}."
            )
        return (
            f"Do you approve sending of {format_amount(request.amount)} {request.currency} "
            f"to address {request.recipient}?"
            f"\n\nYour current balance:\n    {format_amount(balance)} {request.currency}"
        )

    async def send(self, user_id: int, request: SendCryptoRequest) -> str:
        if self.transfer_service is None:
            return "Sending crypto is not available right now."

        result = await self.transfer_service.send(
            user_id,
            TransferRequest(
                wallet_address=request.wallet_address,
                chain=self.chain,
                recipient=request.recipient,
                currency=request.currency,
                amount=request.amount,
            ),
        )
        if not result.is_success:
            return result.error

        message = (
            f"Successfully sent {format_amount(request.amount)} {request.currency} "
            f"to {request.recipient}."
        )
        if result.gas_fee_native:
            message += f" Fee in {self.swap_service.native_symbol}: {format_amount(result.gas_fee_native)}"

        balances = await self._balance_lines(request.wallet_address, request.currency)
        return (
            f"{message}"
            f"\n\nTransaction hash: {self.explorer_tx_url}{result.tx_hash}"
            f"\n\nYour new balance:\n{balances}"
        )

    def _swap_request(
        self,
        request: GetQuoteForSwapCryptoRequest,
        quote_only: bool,
        approved_rate: Optional[Decimal] = None,
    ) -> SwapRequest:
        return SwapRequest(
            wallet_address=request.wallet_address,
            chain=self.chain,
            token_in=request.from_currency,
            token_out=request.to_currency,
            amount=request.amount,
            quote_only=quote_only,
            approved_rate=approved_rate,
            max_slippage_percent=self.max_slippage_percent,
        )

    async def _balance_lines(self, wallet_address: str, *symbols: str) -> str:
        lines = []
        for symbol in symbols:
            try:
                balance = format_amount(
                    await self.swap_service.wallet_balance(wallet_address, self.chain, symbol)
                )
            except Exception as e:
                logger.warning(f"Could not read {symbol} balance for {wallet_address}: {e}")
                balance = "unknown"
            lines.append(f"    {balance} {symbol}")
        return "\n".join(lines)

