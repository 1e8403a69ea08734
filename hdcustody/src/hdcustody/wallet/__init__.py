"""
Wallet key custody: HD keys, encryption at rest, lock state and the service.
"""

from hdcustody.wallet.bip32 import HDKey
from hdcustody.wallet.encryption import Encrypter
from hdcustody.wallet.service import Wallet
from hdcustody.wallet.state import LockedState, UnlockedState

__all__ = ["HDKey", "Encrypter", "Wallet", "LockedState", "UnlockedState"]
