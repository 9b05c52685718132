"""Derive the amounts actually moved by a confirmed swap.

Quoted amounts are advisory; the receipt is authoritative. ERC20 legs come
from Transfer logs and a native input leg from the transaction value. A
native output leg leaves no log of its own, so it is resolved by an ordered
list of strategies: internal call trace, withdrawal-style events, then the
wallet's balance difference across the execution block.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Sequence

from web3 import Web3

from swapagent.chain.client import ChainClient
from swapagent.chain.errors import ChainError, TransactionNotFoundError
from swapagent.chain.types import ChainTransaction, LogEntry, TxReceipt, to_int
from swapagent.swap.models import SwapAmounts, Token

logger = logging.getLogger(__name__)

WEI_PER_ETH = Decimal(10) ** 18

TRANSFER_TOPIC = Web3.to_hex(Web3.keccak(text="Transfer(address,address,uint256)"))
WITHDRAWAL_TOPICS = (
    Web3.to_hex(Web3.keccak(text="EthWithdrawn(address,uint256)")),
    Web3.to_hex(Web3.keccak(text="Withdrawal(address,uint256)")),
)


def topic_to_address(topic: str) -> str:
    """Extract the address from a 32-byte indexed topic."""
    return "0x" + topic[-40:].lower()


class NativeReceivedStrategy(ABC):
    """Way of determining native value received by a wallet in a transaction."""

    name = "base"

    def __init__(self, chain: ChainClient):
        self.chain = chain

    @abstractmethod
    async def try_extract(self, receipt: TxReceipt, wallet: str) -> Optional[int]:
        """Return wei received by wallet, or None if this strategy cannot tell."""
        pass


class CallTraceStrategy(NativeReceivedStrategy):
    """Sum value of internal CALLs to the wallet from a debug call trace."""

    name = "call_trace"

    async def try_extract(self, receipt: TxReceipt, wallet: str) -> Optional[int]:
        try:
            trace = await self.chain.trace_transaction(receipt.transaction_hash)
        except ChainError as e:
            logger.info(f"Call tracing unavailable for {receipt.transaction_hash}: {e}")
            return None

        total = self._sum_calls(trace, wallet.lower())
        return total or None

    def _sum_calls(self, frame: dict, wallet: str) -> int:
        total = 0
        for call in frame.get("calls") or []:
            value = to_int(call.get("value"))
            to_address = (call.get("to") or "").lower()
            if call.get("type", "").upper() == "CALL" and value > 0 and to_address == wallet:
                total += value
            total += self._sum_calls(call, wallet)
        return total


class WithdrawalEventStrategy(NativeReceivedStrategy):
    """Sum EthWithdrawn / Withdrawal events naming the wallet as recipient."""

    name = "withdrawal_event"

    async def try_extract(self, receipt: TxReceipt, wallet: str) -> Optional[int]:
        total = 0
        for log in receipt.logs:
            if log.topic0 not in WITHDRAWAL_TOPICS or len(log.topics) < 2:
                continue
            if topic_to_address(log.topics[1]) != wallet.lower():
                continue
            try:
                total += to_int(log.data[:66])
            except ValueError:
                logger.debug(f"Unparseable withdrawal event data in {receipt.transaction_hash}")
        return total or None


class BalanceDiffStrategy(NativeReceivedStrategy):
    """Balance change across the execution block, adjusted for gas paid.

    Other activity of the wallet in the same block distorts the result.
    """

    name = "balance_diff"

    async def try_extract(self, receipt: TxReceipt, wallet: str) -> Optional[int]:
        if receipt.block_number <= 0:
            return None
        try:
            before = await self.chain.get_balance(wallet, receipt.block_number - 1)
            after = await self.chain.get_balance(wallet, receipt.block_number)
        except ChainError as e:
            logger.warning(f"Balance diff unavailable for {receipt.transaction_hash}: {e}")
            return None

        difference = after - before + receipt.gas_fee
        return difference if difference > 0 else None


def default_strategies(chain: ChainClient) -> list[NativeReceivedStrategy]:
    return [
        CallTraceStrategy(chain),
        WithdrawalEventStrategy(chain),
        BalanceDiffStrategy(chain),
    ]


class ReceiptAnalyzer:
    """Computes actual sent/received amounts from a mined swap."""

    def __init__(
        self,
        chain: ChainClient,
        strategies: Optional[Sequence[NativeReceivedStrategy]] = None,
    ):
        self.chain = chain
        self.strategies = list(strategies) if strategies is not None else default_strategies(chain)

    async def extract_amounts(
        self,
        receipt: TxReceipt,
        token_in: Token,
        token_out: Token,
        transaction: Optional[ChainTransaction] = None,
    ) -> SwapAmounts:
        """Compute amounts moved for the wallet that sent the transaction.

        Args:
            receipt: Receipt of the swap transaction
            token_in: Token sold
            token_out: Token bought
            transaction: Submitted transaction, fetched when needed and not given

        Returns:
            SwapAmounts in human units. The rate is None when nothing was sent.
        """
        wallet = receipt.from_address.lower()
        sent_raw = 0
        received_raw = 0

        if token_in.is_native:
            if transaction is None:
                transaction = await self.chain.get_transaction(receipt.transaction_hash)
            if transaction.from_address.lower() == wallet:
                sent_raw += transaction.value

        for log in receipt.logs:
            transfer = self._parse_transfer(log)
            if transfer is None:
                continue
            sender, recipient, value = transfer
            if not token_in.is_native and log.address == token_in.address.lower() and sender == wallet:
                sent_raw += value
            if not token_out.is_native and log.address == token_out.address.lower() and recipient == wallet:
                received_raw += value

        if token_out.is_native:
            received_raw += await self._native_received(receipt, wallet)

        amounts = SwapAmounts.build(
            sent=token_in.from_raw(sent_raw),
            received=token_out.from_raw(received_raw),
            gas_fee_native=Decimal(receipt.gas_fee) / WEI_PER_ETH,
        )
        logger.info(
            f"Receipt {receipt.transaction_hash}: sent {amounts.sent} {token_in.symbol}, "
            f"received {amounts.received} {token_out.symbol}, gas {amounts.gas_fee_native}"
        )
        return amounts

    async def analyze_transaction(self, tx_hash: str, token_in: Token, token_out: Token) -> SwapAmounts:
        """Re-derive amounts for a previously submitted swap from its hash.

        Raises:
            TransactionNotFoundError: If the transaction or its receipt is unknown
        """
        transaction = await self.chain.get_transaction(tx_hash)
        receipt = await self.chain.get_transaction_receipt(tx_hash)
        if receipt is None:
            raise TransactionNotFoundError(f"Transaction receipt not found for {tx_hash}")
        return await self.extract_amounts(receipt, token_in, token_out, transaction=transaction)

    async def _native_received(self, receipt: TxReceipt, wallet: str) -> int:
        for strategy in self.strategies:
            amount = await strategy.try_extract(receipt, wallet)
            if amount:
                logger.debug(f"Native output of {receipt.transaction_hash} from {strategy.name}")
                return amount
        logger.warning(f"Could not determine native amount received in {receipt.transaction_hash}")
        return 0

    @staticmethod
    def _parse_transfer(log: LogEntry) -> Optional[tuple[str, str, int]]:
        # ERC721 Transfer shares the signature but indexes the token id
        if log.topic0 != TRANSFER_TOPIC or len(log.topics) != 3:
            return None
        try:
            value = to_int(log.data)
        except ValueError:
            return None
        return topic_to_address(log.topics[1]), topic_to_address(log.topics[2]), value
