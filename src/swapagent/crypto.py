"""Cryptographic utilities for wallet secret storage.

Secrets are encrypted with AES-256-CBC. The key is the SHA-256 digest of the
configured salt and every encryption uses a fresh random 16-byte IV. The
stored form is base64 of ``"<iv hex>:<ciphertext hex>"``.
"""

import base64
import binascii
import hashlib
import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

IV_LENGTH = 16


class SecretCodecError(ValueError):
    """Raised when a secret cannot be encrypted or decrypted."""

    pass


class SecretCodec:
    """Symmetric codec for private keys and mnemonics."""

    def __init__(self, salt: str):
        if not salt:
            raise SecretCodecError("Salt is not provided")
        self._key = hashlib.sha256(salt.encode("utf-8")).digest()

    def encode(self, secret: str) -> str:
        """Encrypt a secret string.

        Args:
            secret: Plaintext to encrypt

        Returns:
            Base64 encoded ``iv:ciphertext`` pair
        """
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(secret.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        payload = f"{iv.hex()}:{ciphertext.hex()}"
        return base64.b64encode(payload.encode("utf-8")).decode("ascii")

    def decode(self, encoded: str) -> str:
        """Decrypt a value produced by :meth:`encode`.

        Raises:
            SecretCodecError: If the value is malformed or the salt is wrong
        """
        try:
            payload = base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise SecretCodecError("Invalid encoded secret key format") from e

        parts = payload.split(":")
        if len(parts) != 2:
            raise SecretCodecError("Invalid encoded secret key format")

        try:
            iv = bytes.fromhex(parts[0])
            ciphertext = bytes.fromhex(parts[1])
        except ValueError as e:
            raise SecretCodecError("Invalid encoded secret key format") from e

        if len(iv) != IV_LENGTH:
            raise SecretCodecError("Invalid encoded secret key format")

        try:
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning("Failed to decrypt secret - wrong salt or corrupted value")
            raise SecretCodecError("Unable to decrypt secret") from e

    def encode_private_key(self, private_key: bytes) -> str:
        """Encrypt raw private key bytes (stored as hex without 0x)."""
        return self.encode(private_key.hex())

    def decode_private_key(self, encoded: str) -> bytes:
        """Decrypt a private key back to its raw bytes."""
        key_hex = self.decode(encoded)
        if key_hex.startswith("0x"):
            key_hex = key_hex[2:]
        try:
            return bytes.fromhex(key_hex)
        except ValueError as e:
            raise SecretCodecError("Decrypted private key is not valid hex") from e
