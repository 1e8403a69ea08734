"""
BIP32 HD key derivation and BIP39 mnemonic handling for custody wallets.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any

import base58
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from mnemonic import Mnemonic

from hdcustody.errors import InvalidMnemonicError

HARDENED_OFFSET = 0x80000000

SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

# Extended key version bytes (xprv/xpub for mainnet, tprv/tpub otherwise)
XPRV_VERSIONS = {"mainnet": bytes.fromhex("0488ade4"), "testnet": bytes.fromhex("04358394")}
XPUB_VERSIONS = {"mainnet": bytes.fromhex("0488b21e"), "testnet": bytes.fromhex("043587cf")}

MNEMONIC_STRENGTH = {12: 128, 15: 160, 18: 192, 21: 224, 24: 256}


def _version_network(network: str) -> str:
    return "mainnet" if network in ("mainnet", "livenet") else "testnet"


class HDKey:
    """
    Hierarchical Deterministic Key.
    Implements BIP32 private derivation and extended key serialization.
    """

    def __init__(
        self,
        private_key: ec.EllipticCurvePrivateKey,
        chain_code: bytes,
        depth: int = 0,
        parent_fingerprint: bytes = b"\x00\x00\x00\x00",
        child_number: int = 0,
    ):
        self.private_key = private_key
        self.public_key = private_key.public_key()
        self.chain_code = chain_code
        self.depth = depth
        self.parent_fingerprint = parent_fingerprint
        self.child_number = child_number

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from seed"""
        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_bytes = hmac_result[:32]
        chain_code = hmac_result[32:]

        key_int = int.from_bytes(key_bytes, "big")
        private_key = ec.derive_private_key(key_int, ec.SECP256K1())

        return cls(private_key, chain_code, depth=0)

    @classmethod
    def from_xprv(cls, xprv: str) -> HDKey:
        """Parse a Base58Check extended private key (xprv or tprv)."""
        try:
            raw = base58.b58decode_check(xprv)
        except ValueError as e:
            raise ValueError("Invalid extended private key checksum") from e

        if len(raw) != 78:
            raise ValueError(f"Extended key must be 78 bytes, got {len(raw)}")
        if raw[:4] not in XPRV_VERSIONS.values():
            raise ValueError("Not an extended private key")
        if raw[45] != 0:
            raise ValueError("Extended private key must start with a zero byte")

        key_int = int.from_bytes(raw[46:78], "big")
        private_key = ec.derive_private_key(key_int, ec.SECP256K1())
        return cls(
            private_key,
            chain_code=raw[13:45],
            depth=raw[4],
            parent_fingerprint=raw[5:9],
            child_number=int.from_bytes(raw[9:13], "big"),
        )

    def derive(self, path: str) -> HDKey:
        """
        Derive child key from path notation (e.g., "m/44'/0'/0'/0/0")
        ' indicates hardened derivation
        """
        if not path.startswith("m"):
            raise ValueError("Path must start with 'm'")

        parts = path.split("/")[1:]
        key = self

        for part in parts:
            if not part:
                continue

            hardened = part.endswith("'") or part.endswith("h")
            index = int(part.rstrip("'h"))

            if hardened:
                index += HARDENED_OFFSET

            key = key._derive_child(index)

        return key

    def _derive_child(self, index: int) -> HDKey:
        """Derive a child key at the given index"""
        if index >= HARDENED_OFFSET:
            data = b"\x00" + self.get_private_key_bytes() + index.to_bytes(4, "big")
        else:
            data = self.get_public_key_bytes() + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        parent_key_int = self.private_key.private_numbers().private_value
        offset_int = int.from_bytes(key_offset, "big")
        child_key_int = (parent_key_int + offset_int) % SECP256K1_N

        if offset_int >= SECP256K1_N or child_key_int == 0:
            raise ValueError("Invalid child key")

        child_private_key = ec.derive_private_key(child_key_int, ec.SECP256K1())

        return HDKey(
            child_private_key,
            child_chain,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint(),
            child_number=index,
        )

    def fingerprint(self) -> bytes:
        """First 4 bytes of HASH160 of the compressed public key."""
        digest = hashlib.sha256(self.get_public_key_bytes()).digest()
        return hashlib.new("ripemd160", digest).digest()[:4]

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        return self.private_key.private_numbers().private_value.to_bytes(32, "big")

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        fmt = (
            serialization.PublicFormat.CompressedPoint
            if compressed
            else serialization.PublicFormat.UncompressedPoint
        )
        return self.public_key.public_bytes(encoding=serialization.Encoding.X962, format=fmt)

    def _serialize(self, version: bytes, key_data: bytes) -> str:
        payload = (
            version
            + bytes([self.depth])
            + self.parent_fingerprint
            + self.child_number.to_bytes(4, "big")
            + self.chain_code
            + key_data
        )
        return base58.b58encode_check(payload).decode("ascii")

    def get_xprv(self, network: str = "mainnet") -> str:
        version = XPRV_VERSIONS[_version_network(network)]
        return self._serialize(version, b"\x00" + self.get_private_key_bytes())

    def get_xpub(self, network: str = "mainnet") -> str:
        version = XPUB_VERSIONS[_version_network(network)]
        return self._serialize(version, self.get_public_key_bytes())

    def to_dict(self, network: str = "mainnet") -> dict[str, Any]:
        """
        Key object holding both the private and public view of this key.

        This is the plaintext that gets encrypted into a wallet's master key
        blob, so ``from_dict(to_dict())`` must round-trip exactly.
        """
        return {
            "network": network,
            "depth": self.depth,
            "fingerprint": self.fingerprint().hex(),
            "parent_fingerprint": self.parent_fingerprint.hex(),
            "child_index": self.child_number,
            "chain_code": self.chain_code.hex(),
            "private_key": self.get_private_key_bytes().hex(),
            "public_key": self.get_public_key_bytes().hex(),
            "xprivkey": self.get_xprv(network),
            "xpubkey": self.get_xpub(network),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HDKey:
        return cls.from_xprv(data["xprivkey"])


def validate_mnemonic(mnemonic: str) -> bool:
    """Check a BIP39 mnemonic's wordlist membership and checksum."""
    return Mnemonic("english").check(mnemonic)


def generate_mnemonic(word_count: int = 12) -> str:
    """
    Generate a BIP39 mnemonic from secure entropy.

    Args:
        word_count: Number of words (12, 15, 18, 21, or 24)
    """
    if word_count not in MNEMONIC_STRENGTH:
        raise ValueError("word_count must be 12, 15, 18, 21, or 24")
    return Mnemonic("english").generate(strength=MNEMONIC_STRENGTH[word_count])


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Convert a BIP39 mnemonic (plus optional passphrase) to a 64-byte seed."""
    normalized = " ".join(mnemonic.split())
    if not validate_mnemonic(normalized):
        raise InvalidMnemonicError("Mnemonic phrase is invalid (unknown word or bad checksum)")
    return Mnemonic.to_seed(normalized, passphrase)
