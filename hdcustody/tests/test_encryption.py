"""
Tests for the Encrypter: password-wrapped encryption key, deterministic
private key sealing and bcrypt password verification.
"""

from __future__ import annotations

import pytest

from hdcustody.errors import DecryptError
from hdcustody.wallet.encryption import Encrypter

PUBKEY = "02" + "11" * 32
OTHER_PUBKEY = "03" + "22" * 32


class TestEncryptionKey:
    def test_generate_key_is_random_hex(self, encrypter: Encrypter) -> None:
        first, second = encrypter.generate_key(), encrypter.generate_key()
        assert len(bytes.fromhex(first)) == 32
        assert first != second

    def test_round_trip(self, encrypter: Encrypter) -> None:
        key = encrypter.generate_key()
        blob = encrypter.encrypt_encryption_key(key, "hunter2")
        assert key not in blob
        assert encrypter.decrypt_encryption_key(blob, "hunter2") == key

    def test_salt_makes_blobs_differ(self, encrypter: Encrypter) -> None:
        key = encrypter.generate_key()
        assert encrypter.encrypt_encryption_key(key, "pw") != encrypter.encrypt_encryption_key(
            key, "pw"
        )

    def test_wrong_password(self, encrypter: Encrypter) -> None:
        blob = encrypter.encrypt_encryption_key(encrypter.generate_key(), "right")
        with pytest.raises(DecryptError):
            encrypter.decrypt_encryption_key(blob, "wrong")

    @pytest.mark.parametrize("blob", ["not hex", "00" * 8, ""])
    def test_malformed_blob(self, encrypter: Encrypter, blob: str) -> None:
        with pytest.raises(DecryptError):
            encrypter.decrypt_encryption_key(blob, "pw")

    def test_iterations_are_part_of_the_key(self) -> None:
        blob = Encrypter(pbkdf2_iterations=1_000).encrypt_encryption_key("ab" * 32, "pw")
        with pytest.raises(DecryptError):
            Encrypter(pbkdf2_iterations=1_001).decrypt_encryption_key(blob, "pw")


class TestPrivateKeySealing:
    def test_round_trip(self, encrypter: Encrypter) -> None:
        key = encrypter.generate_key()
        blob = encrypter.encrypt_private_key("secret-wif", PUBKEY, key)
        assert encrypter.decrypt_private_key(blob, PUBKEY, key) == "secret-wif"

    def test_deterministic(self, encrypter: Encrypter) -> None:
        """Same plaintext, pubkey and key always give the same ciphertext."""
        key = encrypter.generate_key()
        first = encrypter.encrypt_private_key("secret", PUBKEY, key)
        second = encrypter.encrypt_private_key("secret", PUBKEY, key)
        assert first == second

    def test_pubkey_changes_ciphertext(self, encrypter: Encrypter) -> None:
        key = encrypter.generate_key()
        assert encrypter.encrypt_private_key("secret", PUBKEY, key) != (
            encrypter.encrypt_private_key("secret", OTHER_PUBKEY, key)
        )

    def test_bound_to_pubkey(self, encrypter: Encrypter) -> None:
        key = encrypter.generate_key()
        blob = encrypter.encrypt_private_key("secret", PUBKEY, key)
        with pytest.raises(DecryptError):
            encrypter.decrypt_private_key(blob, OTHER_PUBKEY, key)

    def test_wrong_key(self, encrypter: Encrypter) -> None:
        blob = encrypter.encrypt_private_key("secret", PUBKEY, encrypter.generate_key())
        with pytest.raises(DecryptError):
            encrypter.decrypt_private_key(blob, PUBKEY, encrypter.generate_key())

    def test_tampered_blob(self, encrypter: Encrypter) -> None:
        key = encrypter.generate_key()
        blob = encrypter.encrypt_private_key("secret", PUBKEY, key)
        flipped = ("0" if blob[0] != "0" else "1") + blob[1:]
        with pytest.raises(DecryptError):
            encrypter.decrypt_private_key(flipped, PUBKEY, key)

    def test_bad_key_length(self, encrypter: Encrypter) -> None:
        with pytest.raises(DecryptError, match="32 bytes"):
            encrypter.encrypt_private_key("secret", PUBKEY, "abcd")


class TestPasswordHash:
    def test_verify(self, encrypter: Encrypter) -> None:
        password_hash = encrypter.hash_password("p1")
        assert password_hash.startswith("$2")
        assert encrypter.verify_password("p1", password_hash)
        assert not encrypter.verify_password("p2", password_hash)

    def test_malformed_hash_is_a_mismatch(self, encrypter: Encrypter) -> None:
        assert not encrypter.verify_password("p1", "not-a-bcrypt-hash")

    def test_rounds_are_encoded(self) -> None:
        assert Encrypter(bcrypt_rounds=5).hash_password("x").startswith("$2b$05$")

    def test_long_password(self, encrypter: Encrypter) -> None:
        """Passwords past bcrypt's 72-byte input limit hash and verify in full."""
        long_password = "x" * 80
        password_hash = encrypter.hash_password(long_password)
        assert encrypter.verify_password(long_password, password_hash)
        # Differences after byte 72 still matter
        assert not encrypter.verify_password("x" * 79 + "y", password_hash)
        assert not encrypter.verify_password("x" * 72, password_hash)
