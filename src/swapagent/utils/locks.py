"""Per-wallet serialization of on-chain operations.

A wallet's nonce sequence is shared by every transaction it sends, so two
swaps for the same wallet must not run their execute phase concurrently.
The lock is in-process only.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: lowercase wallet address -> asyncio.Lock
_wallet_locks: dict[str, asyncio.Lock] = {}
_registry_lock = asyncio.Lock()


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


async def get_wallet_lock(wallet_address: str) -> asyncio.Lock:
    """Get or create the lock for a wallet address."""
    key = wallet_address.lower()
    async with _registry_lock:
        if key not in _wallet_locks:
            _wallet_locks[key] = asyncio.Lock()
        return _wallet_locks[key]


class WalletLock:
    """Context manager for exclusive use of a wallet's nonce sequence.

    Example:
        async with WalletLock(address, operation="swap"):
            nonce = await chain.get_transaction_count(address)
            await chain.send_transaction(signer, tx)
    """

    def __init__(
        self,
        wallet_address: str,
        timeout: Optional[float] = 30.0,
        operation: str = "wallet_operation",
    ):
        """Initialize the lock.

        Args:
            wallet_address: Wallet address (any case)
            timeout: Maximum time to wait for lock (None = wait forever)
            operation: Description of the operation for logging
        """
        self.wallet_address = wallet_address
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "WalletLock":
        """Acquire the lock."""
        self._lock = await get_wallet_lock(self.wallet_address)

        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
            self._acquired = True
            logger.debug(f"Lock acquired for wallet {self.wallet_address}: {self.operation}")
            return self

        except asyncio.TimeoutError:
            logger.warning(
                f"Lock timeout for wallet {self.wallet_address} after {self.timeout}s: {self.operation}"
            )
            raise LockTimeoutError(
                f"Could not acquire lock for wallet {self.wallet_address} within {self.timeout}s"
            )

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the lock."""
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Lock released for wallet {self.wallet_address}: {self.operation}")
        return False


def clear_wallet_locks() -> None:
    """Clear all wallet locks (useful for testing)."""
    _wallet_locks.clear()
