"""
HTTP client for the remote ledger indexing service.

Requests made with an auth key carry an ``x-signature`` header so the service
can tie them to the wallet that registered. The signature covers the method,
the request path with query string, and the exact JSON body sent.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any
from urllib.parse import urlsplit

import httpx
from coincurve import PrivateKey
from loguru import logger

SIGNATURE_HEADER = "x-signature"
DEFAULT_TIMEOUT = 30.0


def _dump(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"))


def signing_message(method: str, url: str, body: str) -> bytes:
    """Bytes an auth signature is computed over: ``METHOD|path?query|body``."""
    parts = urlsplit(url)
    target = parts.path + (f"?{parts.query}" if parts.query else "")
    return "|".join([method.upper(), target, body]).encode("utf-8")


def sign_request(auth_key: bytes, method: str, url: str, body: str) -> str:
    """DER hex ECDSA signature over sha256d of the signing message."""
    message = signing_message(method, url, body)
    digest = hashlib.sha256(hashlib.sha256(message).digest()).digest()
    return PrivateKey(auth_key).sign(digest, hasher=None).hex()


class LedgerClient:
    """
    Async client for the wallet indexing API rooted at ``base_url``.

    Errors from the service are logged and re-raised unchanged; there is no
    retry here.
    """

    def __init__(
        self,
        base_url: str,
        auth_key: bytes | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._auth_key = auth_key
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def authenticated(self) -> bool:
        return self._auth_key is not None

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        body = _dump(payload) if payload is not None else ""
        headers = {"content-type": "application/json"}
        if self._auth_key is not None:
            headers[SIGNATURE_HEADER] = sign_request(self._auth_key, method, url, body)

        try:
            response = await self.client.request(
                method, url, content=body.encode("utf-8") if body else None, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def register(self, payload: dict[str, Any]) -> Any:
        logger.info(f"Registering wallet {payload.get('name')!r} at {self.base_url}")
        return await self._request("POST", "/wallet", payload)

    async def get_balance(self, pubkey: str) -> Any:
        return await self._request("GET", f"/wallet/{pubkey}/balance")

    async def get_coins(self, pubkey: str, include_spent: bool = False) -> Any:
        flag = "true" if include_spent else "false"
        return await self._request("GET", f"/wallet/{pubkey}/utxos?includeSpent={flag}")

    async def broadcast(self, payload: dict[str, Any]) -> Any:
        result = await self._request("POST", "/tx/send", payload)
        logger.info(f"Broadcast transaction on {payload.get('chain')}/{payload.get('network')}")
        return result

    async def import_addresses(self, pubkey: str, payload: list[dict[str, str]]) -> Any:
        logger.debug(f"Importing {len(payload)} addresses")
        return await self._request("POST", f"/wallet/{pubkey}", payload)

    async def close(self) -> None:
        await self.client.aclose()
