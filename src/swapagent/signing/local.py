"""Local signing backend.

Uses an in-memory private key decrypted by the key vault for one wallet.
The key lives only as long as the signer instance.
"""

import logging

from eth_account import Account

from swapagent.signing.base import SigningError, TransactionSigner

logger = logging.getLogger(__name__)


class LocalSigner(TransactionSigner):
    """Signs EVM transactions with a private key held in memory."""

    def __init__(self, private_key: bytes):
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Invalid private key: {e}") from e

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, tx: dict) -> bytes:
        try:
            signed = self._account.sign_transaction(tx)
        except (ValueError, TypeError, KeyError) as e:
            logger.error(f"Signing failed for {self.address}: {e}")
            raise SigningError(f"Failed to sign transaction: {e}") from e

        return bytes(signed.raw_transaction)

    def __repr__(self) -> str:
        return f"LocalSigner(address={self.address})"
