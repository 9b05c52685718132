"""Base interfaces for transaction signing.

Signing flow:
1. Orchestrator builds an unsigned transaction dict
2. Vault resolves a signer scoped to one wallet address
3. Signer returns raw signed bytes (private key never leaves the signer)
4. Chain client broadcasts the signed bytes
"""

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class SigningError(Exception):
    """Raised when a transaction cannot be signed."""

    pass


class KeyNotFoundError(SigningError):
    """Raised when no key material exists for an address."""

    pass


class TransactionSigner(ABC):
    """Signing capability bound to a single wallet address.

    Implementations should NEVER expose raw private keys.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address this signer controls."""
        pass

    @abstractmethod
    def sign_transaction(self, tx: dict) -> bytes:
        """Sign a fully populated transaction dict.

        Args:
            tx: Transaction fields (nonce, gas, fees, chainId, to, value, data)

        Returns:
            Raw signed transaction bytes ready for broadcast
        """
        pass
