"""
Wallet service: lifecycle and key custody for a single HD wallet.

Lifecycle::

    Wallet.create(...)  -> persisted, unlocked and registered
    Wallet.load(path)   -> locked wallet rehydrated from storage
    wallet.unlock(pw)   -> secrets decrypted, auth client bound
    wallet.lock()       -> secrets wiped, back to locked

Only ``lock()`` ever moves an unlocked wallet back to locked; nothing does it
implicitly.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from loguru import logger

from hdcustody.client import LedgerClient
from hdcustody.errors import MissingParameterError, NotUnlockedError
from hdcustody.models import ImportedKey, KeyRecord, WalletIdentity, WalletRecord
from hdcustody.settings import CustodySettings, get_settings
from hdcustody.storage import FileKeyStore, KeyStore
from hdcustody.transactions import TransactionEngine, providers
from hdcustody.wallet.bip32 import HDKey, generate_mnemonic, mnemonic_to_seed
from hdcustody.wallet.encryption import Encrypter
from hdcustody.wallet.state import LockedState, UnlockedState, WalletState, unlock_state

ClientFactory = Callable[[str, bytes | None], LedgerClient]


def encrypter_from_settings(settings: CustodySettings) -> Encrypter:
    return Encrypter(
        pbkdf2_iterations=settings.security.pbkdf2_iterations,
        bcrypt_rounds=settings.security.bcrypt_rounds,
    )


def build_wallet_record(
    *,
    name: str,
    chain: str,
    network: str,
    phrase: str,
    password: str,
    derivation_path: str | None,
    base_url: str,
    encrypter: Encrypter,
) -> WalletRecord:
    """
    Derive the master key from ``phrase`` and seal it into a new record.

    The password doubles as the BIP39 passphrase. The decrypted key object
    and the fresh symmetric key only live for the duration of this call.
    """
    master = HDKey.from_seed(mnemonic_to_seed(phrase, password))
    key_object = master.to_dict(network)
    pubkey = key_object["public_key"]

    encryption_key = encrypter.generate_key()
    master_blob = encrypter.encrypt_private_key(
        json.dumps(key_object, sort_keys=True), pubkey, encryption_key
    )

    return WalletRecord(
        name=name,
        chain=chain,
        network=network,
        derivation_path=derivation_path,
        encryption_key=encrypter.encrypt_encryption_key(encryption_key, password),
        master_key=master_blob,
        password_hash=encrypter.hash_password(password),
        xpubkey=key_object["xpubkey"],
        pubkey=pubkey,
        base_url=base_url,
    )


class Wallet:
    """
    HD wallet with encrypted-at-rest master key.

    Construct through ``create`` (new wallet) or ``load`` (existing one).
    Mutating operations on one instance are serialized by an internal lock.
    """

    def __init__(
        self,
        record: WalletRecord,
        storage: KeyStore,
        *,
        encrypter: Encrypter | None = None,
        tx_engine: TransactionEngine | None = None,
        client_factory: ClientFactory | None = None,
        settings: CustodySettings | None = None,
    ):
        self.settings = settings or get_settings()
        if not record.base_url:
            record = record.model_copy(
                update={"base_url": self.settings.default_base_url(record.chain, record.network)}
            )
        self.record = record
        self.storage = storage
        self.encrypter = encrypter or encrypter_from_settings(self.settings)
        self._tx_engine = tx_engine
        self._client_factory = client_factory or self._default_client

        self._state: WalletState = LockedState()
        self._public_client: LedgerClient | None = None
        self._mutex = asyncio.Lock()

    def __repr__(self) -> str:
        return (
            f"Wallet(name={self.name!r}, chain={self.chain!r}, "
            f"network={self.network!r}, unlocked={self.is_unlocked})"
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    async def create(
        cls,
        *,
        chain: str | None,
        network: str | None,
        name: str | None,
        path: Path | str | None,
        password: str,
        phrase: str | None = None,
        derivation_path: str | None = None,
        base_url: str | None = None,
        storage: KeyStore | None = None,
        encrypter: Encrypter | None = None,
        tx_engine: TransactionEngine | None = None,
        client_factory: ClientFactory | None = None,
        settings: CustodySettings | None = None,
    ) -> Wallet:
        """
        Create, persist, unlock and register a new wallet.

        ``path`` is the storage location; a wallet already stored there makes
        this fail with ``AlreadyExistsError``. If unlock or registration fails
        the record stays persisted, the half-built wallet is closed and the
        error propagates.
        """
        if not (chain and network and name and path):
            raise MissingParameterError(
                [
                    param
                    for param, value in (
                        ("chain", chain),
                        ("network", network),
                        ("name", name),
                        ("path", path),
                    )
                    if not value
                ]
            )

        settings = settings or get_settings()
        encrypter = encrypter or encrypter_from_settings(settings)
        if phrase is None:
            phrase = generate_mnemonic(settings.wallet.mnemonic_words)
            logger.warning("No mnemonic supplied, generated a new one that is not stored")

        record = await asyncio.to_thread(
            build_wallet_record,
            name=name,
            chain=chain,
            network=network,
            phrase=phrase,
            password=password,
            derivation_path=derivation_path,
            base_url=base_url or settings.default_base_url(chain, network),
            encrypter=encrypter,
        )

        if storage is None:
            storage = FileKeyStore(path)
        await storage.save_wallet(record)
        logger.info(f"Created wallet {name!r} on {chain}/{network}")

        wallet = await cls.load(
            path,
            storage=storage,
            encrypter=encrypter,
            tx_engine=tx_engine,
            client_factory=client_factory,
            settings=settings,
        )
        try:
            await wallet.unlock(password)
            await wallet.register()
        except BaseException:
            await wallet.close()
            raise
        return wallet

    @classmethod
    async def load(
        cls,
        path: Path | str | None = None,
        *,
        storage: KeyStore | None = None,
        **kwargs: Any,
    ) -> Wallet:
        """Rehydrate a locked wallet from ``storage`` or the store at ``path``."""
        if storage is None:
            if not path:
                raise MissingParameterError(["path"])
            storage = FileKeyStore(path)
        record = await storage.load_wallet()
        logger.debug(f"Loaded wallet {record.name!r}")
        return cls(record, storage, **kwargs)

    def _default_client(self, base_url: str, auth_key: bytes | None) -> LedgerClient:
        return LedgerClient(base_url, auth_key=auth_key, timeout=self.settings.remote.timeout)

    # ------------------------------------------------------------------
    # Public fields
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def chain(self) -> str:
        return self.record.chain

    @property
    def network(self) -> str:
        return self.record.network

    @property
    def derivation_path(self) -> str | None:
        return self.record.derivation_path

    @property
    def identity(self) -> WalletIdentity:
        return self.record.identity

    @property
    def xpubkey(self) -> str:
        return self.record.xpubkey

    @property
    def pubkey(self) -> str:
        return self.record.pubkey

    @property
    def base_url(self) -> str:
        return self.record.base_url or self.settings.default_base_url(self.chain, self.network)

    @property
    def is_unlocked(self) -> bool:
        return isinstance(self._state, UnlockedState)

    @property
    def tx_engine(self) -> TransactionEngine:
        if self._tx_engine is not None:
            return self._tx_engine
        return providers.get(self.chain)

    def _require_unlocked(self, operation: str) -> UnlockedState:
        state = self._state
        if not isinstance(state, UnlockedState):
            raise NotUnlockedError(operation)
        return state

    def _client(self) -> LedgerClient:
        state = self._state
        if isinstance(state, UnlockedState):
            return state.client
        if self._public_client is None:
            self._public_client = self._client_factory(self.base_url, None)
        return self._public_client

    # ------------------------------------------------------------------
    # Lock state
    # ------------------------------------------------------------------

    async def unlock(self, password: str) -> Wallet:
        """
        Verify ``password`` and decrypt the master key.

        Raises ``IncorrectPasswordError`` on mismatch, leaving the wallet as it
        was. Unlocking an unlocked wallet re-runs the whole sequence.
        """
        async with self._mutex:
            await self._unlock(password)
        return self

    async def _unlock(self, password: str) -> None:
        state = await unlock_state(
            self.record,
            password,
            self.encrypter,
            lambda auth_key: self._client_factory(self.base_url, auth_key),
        )
        previous, self._state = self._state, state
        if isinstance(previous, UnlockedState):
            await previous.close()
        logger.info(f"Wallet {self.name!r} unlocked")

    async def lock(self) -> None:
        """Wipe decrypted material and close the authenticated client."""
        async with self._mutex:
            previous, self._state = self._state, LockedState()
            if isinstance(previous, UnlockedState):
                await previous.close()
                logger.info(f"Wallet {self.name!r} locked")

    def get_auth_signing_key(self) -> HDKey:
        """Child key at ``m/2`` used to sign requests to the ledger service."""
        return self._require_unlocked("get_auth_signing_key").auth_key

    # ------------------------------------------------------------------
    # Remote service
    # ------------------------------------------------------------------

    async def register(self, base_url: str | None = None) -> Any:
        """Announce the wallet to the ledger service, optionally moving it to ``base_url``."""
        async with self._mutex:
            state = self._require_unlocked("register")
            if base_url:
                await self._set_base_url(state, base_url)

            payload = {
                "name": self.name,
                "pubKey": state.xpubkey,
                "path": self.derivation_path,
                "network": self.network,
                "chain": self.chain,
            }
            return await state.client.register(payload)

    async def _set_base_url(self, state: UnlockedState, base_url: str) -> None:
        record = self.record.model_copy(update={"base_url": base_url})
        await self.storage.save_wallet(record, overwrite=True)
        self.record = record
        logger.info(f"Wallet {self.name!r} now uses {base_url}")

        old_client = state.client
        state.client = self._client_factory(base_url, state.auth_key.get_private_key_bytes())
        await old_client.close()
        if self._public_client is not None:
            await self._public_client.close()
            self._public_client = None

    # Queries hold the mutex so a concurrent lock() cannot close the client mid-request

    async def get_balance(self) -> Any:
        async with self._mutex:
            return await self._client().get_balance(self.xpubkey)

    async def get_utxos(self) -> Any:
        async with self._mutex:
            return await self._fetch_utxos()

    async def _fetch_utxos(self) -> Any:
        return await self._client().get_coins(self.xpubkey, include_spent=False)

    async def broadcast(self, tx: str) -> Any:
        payload = {"network": self.network, "chain": self.chain, "rawTx": tx}
        async with self._mutex:
            return await self._client().broadcast(payload)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def new_tx(
        self,
        addresses: list[Any],
        amount: int,
        utxos: list[Any] | None = None,
        change: str | None = None,
        fee: int | None = None,
    ) -> Any:
        """Build an unsigned transaction. UTXOs are fetched when not supplied."""
        payload = {
            "network": self.network,
            "chain": self.chain,
            "addresses": addresses,
            "amount": amount,
            "utxos": utxos if utxos is not None else await self.get_utxos(),
            "change": change,
            "fee": fee,
        }
        return self.tx_engine.create(payload)

    async def sign_tx(self, tx: Any, utxos: list[Any] | None = None) -> Any:
        """
        Sign ``tx`` with the stored keys of every address the engine asks for.

        Keys are looked up concurrently; one missing key aborts the whole
        signing attempt with ``KeyNotFoundError``.
        """
        async with self._mutex:
            if utxos is None:
                utxos = await self._fetch_utxos()
            payload = {"chain": self.chain, "network": self.network, "tx": tx, "utxos": utxos}

            engine = self.tx_engine
            addresses = list(dict.fromkeys(engine.get_signing_addresses(payload)))
            logger.debug(f"Transaction needs signatures from {len(addresses)} addresses")

            keys = await asyncio.gather(*(self._resolve_key(address) for address in addresses))
            return engine.sign({**payload, "keys": list(keys)})

    async def _resolve_key(self, address: str) -> KeyRecord:
        record = await self.storage.get_key(address)
        if not record.encrypted:
            return record
        state = self._require_unlocked("sign_tx")
        private_key = self.encrypter.decrypt_private_key(
            record.private_key, record.pubkey, state.encryption_key_hex()
        )
        return record.model_copy(update={"private_key": private_key, "encrypted": False})

    # ------------------------------------------------------------------
    # Key import
    # ------------------------------------------------------------------

    def _seal_key(self, key: ImportedKey, encryption_key: str | None) -> KeyRecord:
        if encryption_key is None:
            return KeyRecord(address=key.address, pubkey=key.pubkey, private_key=key.private_key)
        return KeyRecord(
            address=key.address,
            pubkey=key.pubkey,
            private_key=self.encrypter.encrypt_private_key(
                key.private_key, key.pubkey, encryption_key
            ),
            encrypted=True,
        )

    async def import_keys(
        self,
        keys: Iterable[ImportedKey | dict[str, Any]],
        password: str | None = None,
    ) -> Any:
        """
        Store external keys and, when unlocked, announce their addresses.

        A locked wallet stores the private keys in CLEARTEXT and makes no
        network call. Pass ``password`` (or unlock first) to have them
        encrypted under the wallet's encryption key.
        """
        imported = [k if isinstance(k, ImportedKey) else ImportedKey.model_validate(k) for k in keys]

        async with self._mutex:
            if password:
                await self._unlock(password)

            state = self._state
            encryption_key = state.encryption_key_hex() if isinstance(state, UnlockedState) else None
            if encryption_key is None:
                logger.warning(
                    f"Wallet {self.name!r} is locked: storing {len(imported)} imported "
                    "private keys WITHOUT encryption"
                )

            for key in imported:
                await self.storage.add_key(self._seal_key(key, encryption_key))
            logger.info(f"Imported {len(imported)} keys into wallet {self.name!r}")

            if not isinstance(state, UnlockedState):
                return None
            addresses = [{"address": key.address} for key in imported]
            return await state.client.import_addresses(self.xpubkey, addresses)

    # ------------------------------------------------------------------
    # Resource handling
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Lock the wallet and release HTTP connections."""
        await self.lock()
        if self._public_client is not None:
            await self._public_client.close()
            self._public_client = None

    async def __aenter__(self) -> Wallet:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
