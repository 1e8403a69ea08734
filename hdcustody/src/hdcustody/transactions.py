"""
Transaction engine interface and per-chain registry.

The wallet core never builds or signs transactions itself. It hands payloads
to the engine registered for the wallet's chain:

- ``create``: ``{network, chain, addresses, amount, utxos, change, fee}`` -> unsigned tx
- ``get_signing_addresses``: ``{chain, network, tx, utxos}`` -> addresses that must sign
- ``sign``: the same payload plus ``keys`` (plaintext ``KeyRecord`` list) -> signed tx
"""

from __future__ import annotations

from typing import Any, Protocol

from loguru import logger

from hdcustody.errors import UnsupportedChainError


class TransactionEngine(Protocol):
    def create(self, payload: dict[str, Any]) -> Any: ...

    def get_signing_addresses(self, payload: dict[str, Any]) -> list[str]: ...

    def sign(self, payload: dict[str, Any]) -> Any: ...


class TransactionProviders:
    """Maps chain tickers (case-insensitive) to transaction engines."""

    def __init__(self) -> None:
        self._engines: dict[str, TransactionEngine] = {}

    def register(self, chain: str, engine: TransactionEngine) -> None:
        key = chain.upper()
        if key in self._engines:
            logger.warning(f"Replacing transaction engine for {key}")
        self._engines[key] = engine

    def get(self, chain: str) -> TransactionEngine:
        try:
            return self._engines[chain.upper()]
        except KeyError:
            raise UnsupportedChainError(chain) from None

    def chains(self) -> list[str]:
        return sorted(self._engines)


providers = TransactionProviders()
