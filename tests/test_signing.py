"""Tests for secret storage, signers and the key vault."""

import base64
import os

import pytest
from eth_account import Account

from swapagent.crypto import SecretCodec, SecretCodecError
from swapagent.ledger.repository import LedgerRepository, WalletExistsError
from swapagent.signing.base import KeyNotFoundError, SigningError
from swapagent.signing.local import LocalSigner
from swapagent.signing.vault import KeyVault

TEST_KEY = bytes.fromhex("4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318")


class TestSecretCodec:
    """Tests for AES secret encoding."""

    @pytest.mark.parametrize("salt", ["s", "test-salt", "a much longer salt with spaces ✓"])
    def test_private_key_round_trip(self, salt):
        """Test a random key survives encoding with various salts."""
        codec = SecretCodec(salt)
        key = os.urandom(32)

        assert codec.decode_private_key(codec.encode_private_key(key)) == key

    def test_fresh_iv_per_encoding(self, codec):
        """Test the same secret encodes differently each time."""
        first = codec.encode("word " * 12)
        second = codec.encode("word " * 12)

        assert first != second
        assert codec.decode(first) == codec.decode(second)

    def test_storage_format(self, codec):
        """Test the stored form is base64 of iv-hex and ciphertext-hex."""
        iv_hex, cipher_hex = base64.b64decode(codec.encode("secret")).decode().split(":")

        assert len(bytes.fromhex(iv_hex)) == 16
        assert len(bytes.fromhex(cipher_hex)) % 16 == 0

    def test_empty_salt(self):
        """Test a codec cannot be built without a salt."""
        with pytest.raises(SecretCodecError, match="Salt is not provided"):
            SecretCodec("")

    @pytest.mark.parametrize("value", ["not base64!", base64.b64encode(b"no-separator").decode(), ""])
    def test_bad_format(self, codec, value):
        """Test malformed stored values are rejected."""
        with pytest.raises(SecretCodecError):
            codec.decode(value)

    def test_wrong_salt(self, codec):
        """Test a different salt cannot decrypt."""
        encoded = codec.encode_private_key(TEST_KEY)

        with pytest.raises(SecretCodecError):
            SecretCodec("other-salt").decode_private_key(encoded)


class TestLocalSigner:
    """Tests for in-memory signing."""

    def test_address(self):
        """Test the signer exposes the key's checksummed address."""
        signer = LocalSigner(TEST_KEY)

        assert signer.address == Account.from_key(TEST_KEY).address

    def test_sign_eip1559(self):
        """Test a typed transaction is signed to raw bytes."""
        signer = LocalSigner(TEST_KEY)
        raw = signer.sign_transaction(
            {
                "to": "0x2222222222222222222222222222222222222222",
                "value": 0,
                "gas": 21000,
                "maxFeePerGas": 3 * 10**9,
                "maxPriorityFeePerGas": 10**9,
                "nonce": 0,
                "chainId": 8453,
                "type": 2,
            }
        )

        assert isinstance(raw, bytes)
        assert raw[0] == 2
        assert Account.recover_transaction(raw) == signer.address

    def test_invalid_key(self):
        """Test a malformed key is rejected."""
        with pytest.raises(SigningError):
            LocalSigner(b"\x00" * 5)


class TestKeyVault:
    """Tests for wallet creation and signer resolution."""

    @pytest.mark.asyncio
    async def test_create_and_resolve(self, codec, session_factory):
        """Test a created wallet resolves to a signer for its address."""
        vault = KeyVault(codec, session_factory)

        wallet = await vault.create_wallet(user_id=1)
        signer = await vault.resolve_signer(wallet.address)

        assert signer.address.lower() == wallet.address
        assert wallet.encrypted_mnemonic
        assert len(codec.decode(wallet.encrypted_mnemonic).split()) == 12

    @pytest.mark.asyncio
    async def test_resolve_is_case_insensitive(self, codec, session_factory):
        """Test checksummed addresses resolve too."""
        vault = KeyVault(codec, session_factory)
        wallet = await vault.create_wallet(user_id=2)

        signer = await vault.resolve_signer(wallet.address.upper().replace("0X", "0x"))

        assert signer.address.lower() == wallet.address

    @pytest.mark.asyncio
    async def test_unknown_address(self, codec, session_factory):
        """Test an address without stored key raises KeyNotFoundError."""
        vault = KeyVault(codec, session_factory)

        with pytest.raises(KeyNotFoundError):
            await vault.resolve_signer("0x9999999999999999999999999999999999999999")

    @pytest.mark.asyncio
    async def test_wrong_salt(self, codec, session_factory):
        """Test keys stored under another salt cannot be used."""
        wallet = await KeyVault(codec, session_factory).create_wallet(user_id=3)

        with pytest.raises(SigningError):
            await KeyVault(SecretCodec("other-salt"), session_factory).resolve_signer(wallet.address)

    @pytest.mark.asyncio
    async def test_one_wallet_per_user(self, codec, session_factory):
        """Test a second wallet for the same user is refused."""
        vault = KeyVault(codec, session_factory)
        await vault.create_wallet(user_id=4)

        with pytest.raises(WalletExistsError):
            await vault.create_wallet(user_id=4)

    @pytest.mark.asyncio
    async def test_get_or_create(self, codec, session_factory):
        """Test the wallet is created once and then reused."""
        vault = KeyVault(codec, session_factory)

        first = await vault.get_or_create_wallet(5)
        second = await vault.get_or_create_wallet(5)

        assert first.address == second.address
        async with session_factory() as session:
            stored = await LedgerRepository(session).get_wallet_by_user(5)
        assert stored.address == first.address

    @pytest.mark.asyncio
    async def test_get_wallet_does_not_create(self, codec, session_factory):
        """Test looking up a user without a wallet returns None and creates nothing."""
        vault = KeyVault(codec, session_factory)

        assert await vault.get_wallet(6) is None
        assert await vault.get_wallet(6) is None

        created = await vault.create_wallet(user_id=6)
        assert (await vault.get_wallet(6)).address == created.address
