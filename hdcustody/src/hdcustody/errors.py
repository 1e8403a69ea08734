"""
Exception hierarchy for hdcustody.

Every error raised by the wallet core derives from ``WalletError`` so callers
can catch the whole family at once. Storage failures share ``StorageError``.
"""

from __future__ import annotations


class WalletError(Exception):
    """Base class for wallet core errors."""


class MissingParameterError(WalletError, ValueError):
    """A required creation parameter (chain, network, name, path) was not given."""

    def __init__(self, names: list[str]):
        self.names = names
        super().__init__(f"Missing required parameter: {', '.join(names)}")


class InvalidMnemonicError(WalletError, ValueError):
    pass


class StorageError(WalletError):
    pass


class AlreadyExistsError(StorageError):
    pass


class NotFoundError(StorageError):
    pass


class KeyNotFoundError(NotFoundError):
    """No key record is stored for an address that must sign."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"No key stored for address {address}")


class IncorrectPasswordError(WalletError):
    def __init__(self) -> None:
        super().__init__("Incorrect Password")


class DecryptError(WalletError):
    """Encrypted blob is corrupted, tampered with, or keyed differently."""


class NotUnlockedError(WalletError):
    """Operation needs decrypted key material but the wallet is locked."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Wallet must be unlocked before calling {operation}()")


class UnsupportedChainError(WalletError):
    def __init__(self, chain: str):
        self.chain = chain
        super().__init__(f"No transaction engine registered for chain {chain!r}")
