"""Key vault for custodial user wallets.

Wallet secrets are stored encrypted in the ledger. The vault is the only
component that decrypts them, and it hands out signers scoped to one address.
"""

import logging
from typing import Optional

from eth_account import Account
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from swapagent.crypto import SecretCodec, SecretCodecError
from swapagent.ledger.models import UserWallet
from swapagent.ledger.repository import LedgerRepository
from swapagent.signing.base import KeyNotFoundError, SigningError, TransactionSigner
from swapagent.signing.local import LocalSigner

logger = logging.getLogger(__name__)

Account.enable_unaudited_hdwallet_features()


class KeyVault:
    """Creates wallets and resolves signers from encrypted key material."""

    def __init__(
        self,
        codec: SecretCodec,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self._codec = codec
        self._session_factory = session_factory

    async def resolve_signer(self, address: str) -> TransactionSigner:
        """Get a signer for a wallet address.

        Raises:
            KeyNotFoundError: If the vault holds no key for the address
            SigningError: If the stored key cannot be decrypted
        """
        async with self._session_factory() as session:
            wallet = await LedgerRepository(session).get_wallet_by_address(address)

        if wallet is None:
            raise KeyNotFoundError(f"No signing key found for {address}")

        try:
            private_key = self._codec.decode_private_key(wallet.encrypted_private_key)
        except SecretCodecError as e:
            logger.error(f"Cannot decrypt key for {address}: {e}")
            raise SigningError(f"Cannot decrypt key for {address}") from e

        signer = LocalSigner(private_key)
        if signer.address.lower() != wallet.address.lower():
            raise SigningError(f"Stored key does not match wallet {address}")
        return signer

    async def create_wallet(
        self,
        user_id: int,
        network: str = "base",
        currency: str = "ETH",
    ) -> UserWallet:
        """Generate and store a new wallet for a user.

        Raises:
            WalletExistsError: If the user already has a wallet
        """
        account, mnemonic = Account.create_with_mnemonic()

        async with self._session_factory() as session:
            wallet = await LedgerRepository(session).create_wallet(
                user_id=user_id,
                address=account.address,
                network=network,
                currency=currency,
                encrypted_private_key=self._codec.encode_private_key(bytes(account.key)),
                encrypted_mnemonic=self._codec.encode(mnemonic),
            )
            await session.commit()

        logger.info(f"Created wallet {account.address} for user {user_id}")
        return wallet

    async def get_wallet(self, user_id: int) -> Optional[UserWallet]:
        """Get the user's wallet without creating one."""
        async with self._session_factory() as session:
            return await LedgerRepository(session).get_wallet_by_user(user_id)

    async def get_or_create_wallet(
        self,
        user_id: int,
        network: str = "base",
        currency: str = "ETH",
    ) -> UserWallet:
        """Get the user's wallet, creating it on first financial interaction."""
        wallet = await self.get_wallet(user_id)
        if wallet is not None:
            return wallet
        return await self.create_wallet(user_id, network, currency)
