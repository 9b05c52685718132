"""Transaction signing services.

Provides:
- LocalSigner: in-memory key for one wallet
- KeyVault: resolves signers from encrypted wallet secrets
"""

from swapagent.signing.base import KeyNotFoundError, SigningError, TransactionSigner
from swapagent.signing.local import LocalSigner
from swapagent.signing.vault import KeyVault

__all__ = [
    "TransactionSigner",
    "SigningError",
    "KeyNotFoundError",
    "LocalSigner",
    "KeyVault",
]
