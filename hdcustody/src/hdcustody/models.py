"""
Wallet data models.

``WalletRecord`` is exactly what goes to disk: identity fields plus the
encrypted master key material and the public keys needed while locked.
Nothing in here ever holds a decrypted master key.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class WalletIdentity(BaseModel):
    """Immutable identity of a wallet, sent along with every registration."""

    model_config = ConfigDict(frozen=True)

    name: str
    chain: str
    network: str
    derivation_path: str | None = None


class WalletRecord(BaseModel):
    """Persisted wallet record."""

    name: str
    chain: str
    network: str
    derivation_path: str | None = None
    encryption_key: str = Field(description="Symmetric key encrypted under the password")
    master_key: str = Field(description="Serialized HD key object encrypted under encryption_key")
    password_hash: str
    xpubkey: str
    pubkey: str
    base_url: str | None = None

    @property
    def identity(self) -> WalletIdentity:
        return WalletIdentity(
            name=self.name,
            chain=self.chain,
            network=self.network,
            derivation_path=self.derivation_path,
        )


class ImportedKey(BaseModel):
    """An externally generated (non-HD) key handed to ``Wallet.import_keys``."""

    address: str
    pubkey: str
    private_key: str


class KeyRecord(BaseModel):
    """
    Stored key for a single address.

    When ``encrypted`` is False the private key is held in cleartext. That only
    happens for keys imported while the wallet was locked.
    """

    address: str
    pubkey: str
    private_key: str
    encrypted: bool = False
