"""
Encryption of wallet secrets at rest.

Two layers protect the master key:

- the *encryption key*, a random 32-byte symmetric key, is encrypted under a
  key derived from the wallet password (PBKDF2 + Fernet, salt prepended);
- the *master key* object is encrypted under the encryption key with
  AES-256-GCM. The nonce and associated data come from the owning public key,
  so the same object sealed under the same key always yields the same blob.

Passwords are additionally stored as a bcrypt hash for verification.
"""

from __future__ import annotations

import base64
import hashlib
import os
import secrets

import bcrypt
from cryptography.exceptions import InvalidTag
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger

from hdcustody.errors import DecryptError

SALT_LENGTH = 16
KEY_LENGTH = 32
NONCE_LENGTH = 12

DEFAULT_PBKDF2_ITERATIONS = 600_000
DEFAULT_BCRYPT_ROUNDS = 10


class Encrypter:
    """Symmetric encryption service used by the wallet core."""

    def __init__(
        self,
        pbkdf2_iterations: int = DEFAULT_PBKDF2_ITERATIONS,
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    ):
        self.pbkdf2_iterations = pbkdf2_iterations
        self.bcrypt_rounds = bcrypt_rounds

    # ------------------------------------------------------------------
    # Encryption key (password layer)
    # ------------------------------------------------------------------

    def generate_key(self) -> str:
        """Fresh random symmetric key, hex encoded."""
        return secrets.token_hex(KEY_LENGTH)

    def _password_fernet(self, password: str, salt: bytes) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.pbkdf2_iterations,
        )
        return Fernet(base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8"))))

    def encrypt_encryption_key(self, encryption_key: str, password: str) -> str:
        salt = os.urandom(SALT_LENGTH)
        token = self._password_fernet(password, salt).encrypt(encryption_key.encode("ascii"))
        return (salt + token).hex()

    def decrypt_encryption_key(self, blob: str, password: str) -> str:
        try:
            data = bytes.fromhex(blob)
        except ValueError as e:
            raise DecryptError("Encryption key blob is not valid hex") from e
        if len(data) <= SALT_LENGTH:
            raise DecryptError("Encryption key blob is truncated")

        salt, token = data[:SALT_LENGTH], data[SALT_LENGTH:]
        try:
            return self._password_fernet(password, salt).decrypt(token).decode("ascii")
        except InvalidToken as e:
            raise DecryptError("Failed to decrypt encryption key") from e

    # ------------------------------------------------------------------
    # Private keys (symmetric layer)
    # ------------------------------------------------------------------

    @staticmethod
    def _aead(pubkey: str, encryption_key: str) -> tuple[AESGCM, bytes, bytes]:
        try:
            key = bytes.fromhex(encryption_key)
        except ValueError as e:
            raise DecryptError("Encryption key is not valid hex") from e
        if len(key) != KEY_LENGTH:
            raise DecryptError(f"Encryption key must be {KEY_LENGTH} bytes")

        context = pubkey.encode("utf-8")
        nonce = hashlib.sha256(hashlib.sha256(context).digest()).digest()[:NONCE_LENGTH]
        return AESGCM(key), nonce, context

    def encrypt_private_key(self, plaintext: str, pubkey: str, encryption_key: str) -> str:
        aead, nonce, context = self._aead(pubkey, encryption_key)
        return aead.encrypt(nonce, plaintext.encode("utf-8"), context).hex()

    def decrypt_private_key(self, blob: str, pubkey: str, encryption_key: str) -> str:
        aead, nonce, context = self._aead(pubkey, encryption_key)
        try:
            plaintext = aead.decrypt(nonce, bytes.fromhex(blob), context)
        except (InvalidTag, ValueError) as e:
            raise DecryptError("Failed to decrypt private key") from e
        return plaintext.decode("utf-8")

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    @staticmethod
    def _bcrypt_input(password: str) -> bytes:
        # bcrypt only reads 72 bytes; a base64 SHA-256 digest is always 44
        return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())

    def hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return bcrypt.hashpw(self._bcrypt_input(password), salt).decode("ascii")

    def verify_password(self, password: str, password_hash: str) -> bool:
        """
        Check a password against its bcrypt hash.

        Passwords of any length go through the same SHA-256 pre-hash as in
        ``hash_password``. Any failure inside the comparison itself (malformed
        hash, wrong types) counts as a mismatch.
        """
        try:
            return bcrypt.checkpw(self._bcrypt_input(password), password_hash.encode("ascii"))
        except Exception as e:
            logger.debug(f"Password comparison failed: {type(e).__name__}")
            return False
