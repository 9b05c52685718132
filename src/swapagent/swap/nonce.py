"""Cancellation of stuck pending transactions before a new swap."""

import logging
from decimal import Decimal
from typing import Optional

from swapagent.chain.client import ChainClient
from swapagent.signing.base import TransactionSigner
from swapagent.signing.vault import KeyVault
from swapagent.swap.models import CancellationReport, PendingCancellation

logger = logging.getLogger(__name__)

GWEI = 10**9
CANCEL_GAS_LIMIT = 21_000


class NonceGuard:
    """Replaces every pending nonce of a wallet with a zero-value self transfer."""

    def __init__(
        self,
        chain: ChainClient,
        vault: KeyVault,
        max_fee_gwei: Decimal = Decimal("3"),
        priority_fee_gwei: Decimal = Decimal("2"),
    ):
        self.chain = chain
        self.vault = vault
        self.max_fee_per_gas = int(max_fee_gwei * GWEI)
        self.priority_fee_per_gas = int(priority_fee_gwei * GWEI)

    async def cancel_pending(
        self,
        wallet_address: str,
        signer: Optional[TransactionSigner] = None,
    ) -> CancellationReport:
        """Cancel transactions between the confirmed and pending nonce.

        Each nonce is handled independently; a failure is recorded and the
        sweep moves on to the next nonce.
        """
        confirmed_nonce = await self.chain.get_transaction_count(wallet_address, "latest")
        pending_nonce = await self.chain.get_transaction_count(wallet_address, "pending")
        pending_count = max(pending_nonce - confirmed_nonce, 0)

        logger.info(
            f"Wallet {wallet_address}: confirmed nonce {confirmed_nonce}, "
            f"pending nonce {pending_nonce}, {pending_count} pending"
        )

        report = CancellationReport(pending_count=pending_count)
        if pending_count == 0:
            return report

        if signer is None:
            signer = await self.vault.resolve_signer(wallet_address)

        for nonce in range(confirmed_nonce, pending_nonce):
            tx = {
                "to": signer.address,
                "value": 0,
                "nonce": nonce,
                "maxFeePerGas": self.max_fee_per_gas,
                "maxPriorityFeePerGas": self.priority_fee_per_gas,
                "gas": CANCEL_GAS_LIMIT,
                "type": 2,
            }
            try:
                tx_hash = await self.chain.send_transaction(signer, tx)
                logger.info(f"Cancellation for nonce {nonce} sent: {tx_hash}")
                report.cancellations.append(PendingCancellation(nonce=nonce, tx_hash=tx_hash))
            except Exception as e:
                logger.error(f"Error canceling transaction with nonce {nonce}: {e}")
                report.cancellations.append(PendingCancellation(nonce=nonce, error=str(e)))

        return report
