"""
Tests for importing external keys into a wallet.
"""

from __future__ import annotations

import pydantic
import pytest
from _hdcustody_test_helpers import TEST_PASSWORD, ClientRecorder, SpyKeyStore
from loguru import logger

from hdcustody.errors import IncorrectPasswordError
from hdcustody.models import ImportedKey
from hdcustody.wallet.encryption import Encrypter
from hdcustody.wallet.service import Wallet

KEYS = [
    ImportedKey(address="addr-1", pubkey="02" + "01" * 32, private_key="priv-1"),
    ImportedKey(address="addr-2", pubkey="02" + "02" * 32, private_key="priv-2"),
]


@pytest.fixture
def captured_logs():
    messages: list[str] = []
    handler_id = logger.add(
        lambda msg: messages.append(msg.record["level"].name + ":" + msg), level="DEBUG"
    )
    yield messages
    logger.remove(handler_id)


class TestUnlockedImport:
    @pytest.mark.asyncio
    async def test_keys_are_encrypted(
        self, wallet: Wallet, store: SpyKeyStore, encrypter: Encrypter
    ) -> None:
        await wallet.import_keys(KEYS)

        stored = store.keys["addr-1"]
        assert stored.encrypted
        assert stored.private_key != "priv-1"
        state = wallet._state
        assert (
            encrypter.decrypt_private_key(
                stored.private_key, stored.pubkey, state.encryption_key_hex()
            )
            == "priv-1"
        )

    @pytest.mark.asyncio
    async def test_addresses_announced(self, wallet: Wallet, clients: ClientRecorder) -> None:
        result = await wallet.import_keys(KEYS)

        assert result == {"imported": 2}
        assert clients.authenticated[-1].called("import_addresses") == [
            (wallet.xpubkey, [{"address": "addr-1"}, {"address": "addr-2"}])
        ]

    @pytest.mark.asyncio
    async def test_accepts_plain_dicts(self, wallet: Wallet, store: SpyKeyStore) -> None:
        await wallet.import_keys([k.model_dump() for k in KEYS])
        assert set(store.keys) == {"addr-1", "addr-2"}

    @pytest.mark.asyncio
    async def test_rejects_incomplete_key(self, wallet: Wallet, store: SpyKeyStore) -> None:
        with pytest.raises(pydantic.ValidationError):
            await wallet.import_keys([{"address": "addr-1", "pubkey": "02"}])
        assert store.keys == {}

    @pytest.mark.asyncio
    async def test_same_key_always_seals_the_same(self, wallet: Wallet, store: SpyKeyStore) -> None:
        await wallet.import_keys(KEYS[:1])
        first = store.keys["addr-1"].private_key
        await wallet.import_keys(KEYS[:1])
        assert store.keys["addr-1"].private_key == first


class TestLockedImport:
    @pytest.mark.asyncio
    async def test_cleartext_with_warning(
        self,
        locked_wallet: Wallet,
        store: SpyKeyStore,
        clients: ClientRecorder,
        captured_logs: list[str],
    ) -> None:
        built = len(clients.clients)

        result = await locked_wallet.import_keys(KEYS)

        assert result is None
        stored = store.keys["addr-2"]
        assert not stored.encrypted
        assert stored.private_key == "priv-2"
        # No network call while locked
        assert len(clients.clients) == built
        assert any(m.startswith("WARNING:") and "WITHOUT encryption" in m for m in captured_logs)

    @pytest.mark.asyncio
    async def test_password_unlocks_first(
        self, locked_wallet: Wallet, store: SpyKeyStore, clients: ClientRecorder
    ) -> None:
        result = await locked_wallet.import_keys(KEYS, password=TEST_PASSWORD)

        assert locked_wallet.is_unlocked
        assert result == {"imported": 2}
        assert store.keys["addr-1"].encrypted
        assert clients.last.called("import_addresses")

    @pytest.mark.asyncio
    async def test_wrong_password_stores_nothing(
        self, locked_wallet: Wallet, store: SpyKeyStore
    ) -> None:
        with pytest.raises(IncorrectPasswordError):
            await locked_wallet.import_keys(KEYS, password="wrong")
        assert store.keys == {}
        assert not locked_wallet.is_unlocked
