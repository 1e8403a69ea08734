"""
hdcustody: client-side HD wallet key custody for a remote ledger service.
"""

from hdcustody.client import LedgerClient
from hdcustody.errors import (
    AlreadyExistsError,
    DecryptError,
    IncorrectPasswordError,
    KeyNotFoundError,
    MissingParameterError,
    NotFoundError,
    NotUnlockedError,
    WalletError,
)
from hdcustody.storage import FileKeyStore, KeyStore, MemoryKeyStore
from hdcustody.transactions import TransactionEngine, providers
from hdcustody.wallet.service import Wallet

__version__ = "0.1.0"

__all__ = [
    "AlreadyExistsError",
    "DecryptError",
    "FileKeyStore",
    "IncorrectPasswordError",
    "KeyNotFoundError",
    "KeyStore",
    "LedgerClient",
    "MemoryKeyStore",
    "MissingParameterError",
    "NotFoundError",
    "NotUnlockedError",
    "TransactionEngine",
    "Wallet",
    "WalletError",
    "providers",
]
