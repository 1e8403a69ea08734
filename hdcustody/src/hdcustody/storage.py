"""
Durable storage for wallet records and imported keys.

A store holds exactly one wallet record plus any number of per-address key
records. ``FileKeyStore`` keeps them as JSON files inside the wallet directory;
``MemoryKeyStore`` is the in-process equivalent.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

from loguru import logger

from hdcustody.errors import AlreadyExistsError, KeyNotFoundError, NotFoundError, StorageError
from hdcustody.models import KeyRecord, WalletRecord

WALLET_FILE = "wallet.json"
KEYS_FILE = "keys.json"


class KeyStore(Protocol):
    """Storage interface the wallet core relies on."""

    async def save_wallet(self, record: WalletRecord, overwrite: bool = False) -> None: ...

    async def load_wallet(self) -> WalletRecord: ...

    async def add_key(self, record: KeyRecord) -> None: ...

    async def get_key(self, address: str) -> KeyRecord: ...


class MemoryKeyStore:
    """Keeps everything in process memory. Used for tests and ephemeral wallets."""

    def __init__(self) -> None:
        self.wallet: WalletRecord | None = None
        self.keys: dict[str, KeyRecord] = {}

    async def save_wallet(self, record: WalletRecord, overwrite: bool = False) -> None:
        if self.wallet is not None and not overwrite:
            raise AlreadyExistsError(f"Wallet {self.wallet.name!r} already exists")
        self.wallet = record.model_copy()

    async def load_wallet(self) -> WalletRecord:
        if self.wallet is None:
            raise NotFoundError("No wallet stored")
        return self.wallet.model_copy()

    async def add_key(self, record: KeyRecord) -> None:
        self.keys[record.address] = record.model_copy()

    async def get_key(self, address: str) -> KeyRecord:
        try:
            return self.keys[address].model_copy()
        except KeyError:
            raise KeyNotFoundError(address) from None


class FileKeyStore:
    """
    JSON file store rooted at a wallet directory.

    Layout::

        <path>/wallet.json   wallet record
        <path>/keys.json     {address: key record}
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    @property
    def wallet_file(self) -> Path:
        return self.path / WALLET_FILE

    @property
    def keys_file(self) -> Path:
        return self.path / KEYS_FILE

    def exists(self) -> bool:
        return self.wallet_file.exists()

    def _write_atomic(self, target: Path, content: str) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, target)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write {target}: {e}") from e

    def _save_wallet(self, record: WalletRecord, overwrite: bool) -> None:
        if self.exists() and not overwrite:
            raise AlreadyExistsError(f"Wallet already exists at {self.path}")
        self._write_atomic(self.wallet_file, record.model_dump_json(indent=2))
        logger.debug(f"Saved wallet record to {self.wallet_file}")

    def _load_wallet(self) -> WalletRecord:
        if not self.exists():
            raise NotFoundError(f"No wallet found at {self.path}")
        try:
            return WalletRecord.model_validate_json(self.wallet_file.read_text(encoding="utf-8"))
        except ValueError as e:
            raise StorageError(f"Wallet record at {self.wallet_file} is corrupt: {e}") from e

    def _read_keys(self) -> dict[str, dict]:
        if not self.keys_file.exists():
            return {}
        try:
            return json.loads(self.keys_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StorageError(f"Key file {self.keys_file} is corrupt: {e}") from e

    def _add_key(self, record: KeyRecord) -> None:
        keys = self._read_keys()
        keys[record.address] = record.model_dump()
        self._write_atomic(self.keys_file, json.dumps(keys, indent=2))

    def _get_key(self, address: str) -> KeyRecord:
        keys = self._read_keys()
        if address not in keys:
            raise KeyNotFoundError(address)
        return KeyRecord.model_validate(keys[address])

    async def save_wallet(self, record: WalletRecord, overwrite: bool = False) -> None:
        await asyncio.to_thread(self._save_wallet, record, overwrite)

    async def load_wallet(self) -> WalletRecord:
        return await asyncio.to_thread(self._load_wallet)

    async def add_key(self, record: KeyRecord) -> None:
        await asyncio.to_thread(self._add_key, record)

    async def get_key(self, address: str) -> KeyRecord:
        return await asyncio.to_thread(self._get_key, address)
