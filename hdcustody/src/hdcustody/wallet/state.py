"""
Lock state of an in-memory wallet.

A wallet is either ``LockedState`` (public data only, lives on the record) or
``UnlockedState`` (decrypted symmetric key, master key and the authenticated
client). Code that needs secrets must hold an ``UnlockedState``; there is no
attribute on a locked wallet to read them from.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from hdcustody.client import LedgerClient
from hdcustody.errors import DecryptError, IncorrectPasswordError
from hdcustody.models import WalletRecord
from hdcustody.wallet.bip32 import HDKey
from hdcustody.wallet.encryption import Encrypter

# Reserved for signing requests to the ledger service, never for spending
AUTH_KEY_PATH = "m/2"


@dataclass(frozen=True)
class LockedState:
    pass


@dataclass
class UnlockedState:
    encryption_key: bytearray = field(repr=False)
    master_key: HDKey = field(repr=False)
    key_object: dict[str, Any] = field(repr=False)
    auth_key: HDKey = field(repr=False)
    client: LedgerClient

    @property
    def xpubkey(self) -> str:
        return self.key_object["xpubkey"]

    def encryption_key_hex(self) -> str:
        return self.encryption_key.decode("ascii")

    def wipe(self) -> None:
        """Zero the symmetric key buffer and drop the key object."""
        for i in range(len(self.encryption_key)):
            self.encryption_key[i] = 0
        self.key_object.clear()

    async def close(self) -> None:
        self.wipe()
        await self.client.close()


WalletState = LockedState | UnlockedState


def open_secrets(
    record: WalletRecord, password: str, encrypter: Encrypter
) -> tuple[str, dict[str, Any]]:
    """
    Verify the password and decrypt the record's key material.

    Returns the symmetric encryption key and the master key object. Nothing is
    decrypted unless the password matches the stored hash.
    """
    if not encrypter.verify_password(password, record.password_hash):
        raise IncorrectPasswordError()

    encryption_key = encrypter.decrypt_encryption_key(record.encryption_key, password)
    key_json = encrypter.decrypt_private_key(record.master_key, record.pubkey, encryption_key)
    try:
        key_object = json.loads(key_json)
    except json.JSONDecodeError as e:
        raise DecryptError("Master key blob does not contain a key object") from e
    return encryption_key, key_object


async def unlock_state(
    record: WalletRecord,
    password: str,
    encrypter: Encrypter,
    connect: Callable[[bytes], LedgerClient],
) -> UnlockedState:
    """
    Locked -> Unlocked transition.

    Either returns a complete ``UnlockedState`` or raises; the caller swaps it
    in with a single assignment. ``connect`` builds the client bound to the
    derived auth key.
    """
    encryption_key, key_object = await asyncio.to_thread(
        open_secrets, record, password, encrypter
    )
    try:
        master_key = HDKey.from_dict(key_object)
    except (KeyError, ValueError) as e:
        raise DecryptError("Master key object is malformed") from e

    if key_object.get("xpubkey") != record.xpubkey:
        logger.error(f"Decrypted master key does not match stored xpub for {record.name!r}")
        raise DecryptError("Master key does not belong to this wallet record")

    auth_key = master_key.derive(AUTH_KEY_PATH)
    return UnlockedState(
        encryption_key=bytearray(encryption_key, "ascii"),
        master_key=master_key,
        key_object=key_object,
        auth_key=auth_key,
        client=connect(auth_key.get_private_key_bytes()),
    )
