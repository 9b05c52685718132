"""Native and ERC20 transfers from custodial wallets.

Every transfer that passes validation gets a FinancialAction record
(NATIVE_TRANSFER or CRYPTO_TRANSFER) that ends in SUCCESS, FAILED or ERROR.
Sends share the per-wallet lock with swaps so nonces never collide.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import partial
from typing import Any, Optional

from web3 import Web3

from swapagent.aggregator.client import SwingClient
from swapagent.chain.client import ChainClient
from swapagent.config import Settings
from swapagent.ledger.audit import FinancialActionRecorder
from swapagent.ledger.models import ActionResult, ActionType
from swapagent.services.swap_service import TokenNotFoundError
from swapagent.signing.vault import KeyVault
from swapagent.swap.errors import TransactionRevertedError, classify_failure
from swapagent.swap.models import NATIVE_TOKEN_ADDRESS, FailureKind, Token
from swapagent.utils.locks import WalletLock

logger = logging.getLogger(__name__)

WEI_PER_ETH = Decimal(10) ** 18

# transfer(address,uint256)
TRANSFER_SELECTOR = "0xa9059cbb"


def encode_erc20_transfer(recipient: str, amount_raw: int) -> str:
    """Call data for ERC20 transfer(recipient, amount)."""
    if amount_raw < 0:
        raise ValueError("Transfer amount must not be negative")
    return TRANSFER_SELECTOR + recipient[2:].lower().zfill(64) + f"{amount_raw:064x}"


@dataclass
class TransferRequest:
    """Request to send an asset from a custodial wallet."""

    wallet_address: str
    chain: str
    recipient: str
    currency: str
    amount: Decimal

    def __post_init__(self):
        self.currency = self.currency.strip().upper()
        self.chain = self.chain.strip().lower()
        self.recipient = self.recipient.strip()
        self.amount = Decimal(self.amount)


@dataclass
class TransferResult:
    """Outcome of a transfer. ``error`` is set when nothing was delivered."""

    currency: str
    amount: Decimal
    recipient: str
    tx_hash: Optional[str] = None
    gas_fee_native: Optional[Decimal] = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isSuccess": self.is_success,
            "currency": self.currency,
            "amount": str(self.amount),
            "recipient": self.recipient,
            "txHash": self.tx_hash,
            "gasFeeNative": str(self.gas_fee_native) if self.gas_fee_native is not None else None,
            "error": self.error,
            "kind": self.kind.value if self.kind else None,
        }


def _failed(
    request: TransferRequest,
    message: str,
    kind: FailureKind,
    tx_hash: Optional[str] = None,
) -> TransferResult:
    return TransferResult(
        currency=request.currency,
        amount=request.amount,
        recipient=request.recipient,
        tx_hash=tx_hash,
        error=message,
        kind=kind,
    )


class TransferService:
    """Sends native or listed ERC20 assets on behalf of a user."""

    def __init__(
        self,
        chain: ChainClient,
        vault: KeyVault,
        recorder: FinancialActionRecorder,
        aggregator: SwingClient,
        native_symbol: str = "ETH",
        confirmation_timeout: float = 30.0,
        wallet_lock_timeout: Optional[float] = 120.0,
        explorer_tx_url: str = "",
    ):
        self.chain = chain
        self.vault = vault
        self.recorder = recorder
        self.aggregator = aggregator
        self.native_symbol = native_symbol.upper()
        self.confirmation_timeout = confirmation_timeout
        self.wallet_lock_timeout = wallet_lock_timeout
        self.explorer_tx_url = explorer_tx_url

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        chain: ChainClient,
        vault: KeyVault,
        recorder: FinancialActionRecorder,
        aggregator: SwingClient,
    ) -> "TransferService":
        return cls(
            chain=chain,
            vault=vault,
            recorder=recorder,
            aggregator=aggregator,
            native_symbol=settings.native_symbol,
            confirmation_timeout=settings.confirmation_timeout,
            wallet_lock_timeout=settings.wallet_lock_timeout,
            explorer_tx_url=settings.explorer_tx_url,
        )

    async def resolve_token(self, chain: str, currency: str) -> Token:
        """Native asset or a token listed by the aggregator.

        Raises:
            TokenNotFoundError: If the symbol is not listed on the chain
        """
        currency = currency.upper()
        if currency == self.native_symbol:
            return Token(chain=chain, symbol=currency, address=NATIVE_TOKEN_ADDRESS, decimals=18)

        (token,) = await self.aggregator.find_tokens(chain, currency)
        if token is None:
            raise TokenNotFoundError(f"Token {currency} is not supported on {chain}")
        return token

    async def balance_of(self, token: Token, address: str) -> Decimal:
        if token.is_native:
            return Decimal(await self.chain.get_balance(address)) / WEI_PER_ETH
        return token.from_raw(await self.chain.get_token_balance(token.address, address))

    @staticmethod
    def build_transaction(token: Token, recipient: str, amount: Decimal) -> dict:
        """Unsigned transaction moving ``amount`` of ``token`` to ``recipient``."""
        if token.is_native:
            return {"to": recipient, "value": token.to_raw(amount)}
        return {
            "to": token.address,
            "value": 0,
            "data": encode_erc20_transfer(recipient, token.to_raw(amount)),
        }

    async def send(self, user_id: int, request: TransferRequest) -> TransferResult:
        """Send an asset and record the transfer as a financial action.

        Validation failures return before any record is written. Never raises
        for chain or signing failures: they come back as a result with
        ``error`` set.
        """
        failure = partial(_failed, request)

        if not request.amount.is_finite() or request.amount <= 0:
            return failure("Transfer amount must be greater than zero", FailureKind.PRECONDITION)
        if not Web3.is_address(request.recipient):
            return failure(
                f'Invalid Ethereum address format for "to" address: {request.recipient}',
                FailureKind.PRECONDITION,
            )

        try:
            token = await self.resolve_token(request.chain, request.currency)
        except TokenNotFoundError as e:
            return failure(str(e), FailureKind.PRECONDITION)
        except Exception as e:
            kind, message = classify_failure(e, "Looking up token", self.explorer_tx_url)
            return failure(message, kind)

        action_type = ActionType.NATIVE_TRANSFER if token.is_native else ActionType.CRYPTO_TRANSFER
        balance_before = await self._safe_balance(token, request.wallet_address)
        recipient_before = await self._safe_balance(token, request.recipient)

        logger.info(
            f"Sending {request.amount} {request.currency} from {request.wallet_address} "
            f"to {request.recipient}"
        )
        action_id = await self.recorder.start(
            account_id=user_id,
            action_type=action_type.value,
            wallet_address=request.wallet_address,
            network=request.chain,
            input_currency=request.currency,
            output_currency=request.currency,
            input_amount=request.amount,
            input_balance_before=balance_before,
            output_balance_before=recipient_before,
            output_wallet=request.recipient,
        )

        try:
            result = await self._send_locked(request, token, balance_before)
        except asyncio.CancelledError:
            await self.recorder.finish(
                action_id,
                ActionResult.ERROR,
                result_data=json.dumps({"status": "ERROR", "error": "cancelled"}),
                user_message=f"Transfer of {request.amount} {request.currency} was interrupted.",
            )
            raise
        except Exception as e:
            logger.warning(f"Transfer from {request.wallet_address} failed: {e}")
            if isinstance(e, TransactionRevertedError):
                kind = FailureKind.EXECUTION_REVERTED
                message = f"The transfer was reverted on chain. Tx: {e.tx_hash}"
            else:
                kind, message = classify_failure(e, "Sending transfer", self.explorer_tx_url)
            result = failure(message, kind, tx_hash=getattr(e, "tx_hash", None))
            await self.recorder.finish(
                action_id,
                ActionResult.ERROR,
                result_data=json.dumps({"status": "ERROR", "error": str(e), **result.to_dict()}),
                user_message=f"Failed to send {request.amount} {request.currency}: {message}",
                tx_hash=result.tx_hash,
            )
            return result

        if not result.is_success:
            await self.recorder.finish(
                action_id,
                ActionResult.FAILED,
                result_data=json.dumps(result.to_dict()),
                user_message=result.error,
            )
            return result

        await self.recorder.finish(
            action_id,
            ActionResult.SUCCESS,
            result_data=json.dumps(result.to_dict()),
            user_message=(
                f"Successfully sent {request.amount} {request.currency} to {request.recipient}. "
                f"Transaction hash: {result.tx_hash}"
            ),
            tx_hash=result.tx_hash,
            input_balance_after=await self._safe_balance(token, request.wallet_address),
            output_balance_after=await self._safe_balance(token, request.recipient),
        )
        return result

    async def _send_locked(
        self,
        request: TransferRequest,
        token: Token,
        balance_before: Optional[Decimal],
    ) -> TransferResult:
        async with WalletLock(request.wallet_address, timeout=self.wallet_lock_timeout, operation="transfer"):
            if balance_before is not None and balance_before < request.amount:
                return _failed(
                    request,
                    f"Insufficient balance for transfer. Current balance: "
                    f"{balance_before.normalize():f} {request.currency}",
                    FailureKind.INSUFFICIENT_FUNDS,
                )

            signer = await self.vault.resolve_signer(request.wallet_address)
            tx = self.build_transaction(token, request.recipient, request.amount)
            tx_hash = await self.chain.send_transaction(signer, tx)
            logger.info(f"Transfer transaction sent: {tx_hash}")

            receipt = await self.chain.wait_for_receipt(tx_hash, timeout=self.confirmation_timeout)
            if not receipt.succeeded:
                raise TransactionRevertedError(tx_hash, "Transfer transaction failed")

        return TransferResult(
            currency=request.currency,
            amount=request.amount,
            recipient=request.recipient,
            tx_hash=tx_hash,
            gas_fee_native=Decimal(receipt.gas_fee) / WEI_PER_ETH,
        )

    async def _safe_balance(self, token: Token, address: str) -> Optional[Decimal]:
        try:
            return await self.balance_of(token, address)
        except Exception as e:
            logger.warning(f"Could not read {token.symbol} balance of {address}: {e}")
            return None
