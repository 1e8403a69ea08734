"""
Pytest configuration and fixtures for hdcustody tests.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
import pytest_asyncio
from _hdcustody_test_helpers import (
    TEST_BASE_URL,
    TEST_MNEMONIC,
    TEST_PASSWORD,
    ClientRecorder,
    FakeLedgerClient,
    FakeTxEngine,
    SpyKeyStore,
)

from hdcustody.settings import CustodySettings, reset_settings
from hdcustody.wallet.encryption import Encrypter
from hdcustody.wallet.service import Wallet


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """
    Point data dir and config file at tmp_path so no user config leaks in,
    and start every test with an empty ``FakeLedgerClient.instances``.
    """
    data_dir = tmp_path / ".hdcustody"
    data_dir.mkdir()
    monkeypatch.setenv("HDCUSTODY_DATA_DIR", str(data_dir))
    monkeypatch.delenv("HDCUSTODY_CONFIG_FILE", raising=False)
    reset_settings()
    FakeLedgerClient.instances.clear()
    yield data_dir
    FakeLedgerClient.instances.clear()
    reset_settings()


@pytest.fixture
def test_mnemonic() -> str:
    """Test mnemonic (BIP39 test vector)"""
    return TEST_MNEMONIC


@pytest.fixture
def encrypter() -> Encrypter:
    """Encrypter with minimal work factors to keep tests fast."""
    return Encrypter(pbkdf2_iterations=1_000, bcrypt_rounds=4)


@pytest.fixture
def settings(isolated_environment: Path) -> CustodySettings:
    return CustodySettings(data_dir=isolated_environment)


@pytest.fixture
def clients() -> ClientRecorder:
    return ClientRecorder()


@pytest.fixture
def engine() -> FakeTxEngine:
    return FakeTxEngine()


@pytest.fixture
def store() -> SpyKeyStore:
    return SpyKeyStore()


@pytest_asyncio.fixture
async def wallet(
    store: SpyKeyStore,
    encrypter: Encrypter,
    clients: ClientRecorder,
    engine: FakeTxEngine,
    settings: CustodySettings,
) -> Wallet:
    """Freshly created (unlocked, registered) BTC mainnet wallet."""
    return await Wallet.create(
        chain="BTC",
        network="mainnet",
        name="W",
        path="memory://W",
        password=TEST_PASSWORD,
        phrase=TEST_MNEMONIC,
        base_url=TEST_BASE_URL,
        storage=store,
        encrypter=encrypter,
        tx_engine=engine,
        client_factory=clients,
        settings=settings,
    )


@pytest_asyncio.fixture
async def locked_wallet(
    wallet: Wallet,
    store: SpyKeyStore,
    encrypter: Encrypter,
    clients: ClientRecorder,
    engine: FakeTxEngine,
    settings: CustodySettings,
) -> Wallet:
    """The same wallet rehydrated from storage, still locked."""
    return await Wallet.load(
        storage=store,
        encrypter=encrypter,
        tx_engine=engine,
        client_factory=clients,
        settings=settings,
    )
