"""
Tests for the ledger service HTTP client and request signing.
"""

from __future__ import annotations

import hashlib
import json

import httpx
import pytest
from coincurve import PrivateKey, PublicKey

from hdcustody.client import SIGNATURE_HEADER, LedgerClient, sign_request, signing_message

AUTH_KEY = bytes.fromhex("11" * 32)
BASE_URL = "http://ledger.test/api/BTC/mainnet"


def verify(signature_hex: str, method: str, url: str, body: str) -> bool:
    message = signing_message(method, url, body)
    digest = hashlib.sha256(hashlib.sha256(message).digest()).digest()
    public_key = PublicKey(PrivateKey(AUTH_KEY).public_key.format())
    return public_key.verify(bytes.fromhex(signature_hex), digest, hasher=None)


class Recorder:
    """MockTransport handler that keeps every request."""

    def __init__(self, status_code: int = 200, json_body=None, text: str | None = None):
        self.requests: list[httpx.Request] = []
        self.status_code = status_code
        self.json_body = json_body
        self.text = text

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.json_body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_client(handler: Recorder, auth_key: bytes | None = AUTH_KEY) -> LedgerClient:
    return LedgerClient(BASE_URL, auth_key=auth_key, transport=httpx.MockTransport(handler))


class TestSigning:
    def test_message_uses_path_and_query(self) -> None:
        message = signing_message("get", f"{BASE_URL}/wallet/xpub/utxos?includeSpent=false", "")
        assert message == b"GET|/api/BTC/mainnet/wallet/xpub/utxos?includeSpent=false|"

    def test_signature_verifies(self) -> None:
        url = f"{BASE_URL}/wallet"
        signature = sign_request(AUTH_KEY, "POST", url, '{"a":1}')
        assert verify(signature, "POST", url, '{"a":1}')
        assert not verify(signature, "POST", url, '{"a":2}')

    def test_signature_is_deterministic(self) -> None:
        url = f"{BASE_URL}/wallet"
        assert sign_request(AUTH_KEY, "POST", url, "{}") == sign_request(
            AUTH_KEY, "POST", url, "{}"
        )


class TestLedgerClient:
    @pytest.mark.asyncio
    async def test_register_is_signed(self) -> None:
        handler = Recorder(json_body={"ok": True})
        client = make_client(handler)
        payload = {"name": "W", "pubKey": "xpub", "path": None, "network": "mainnet", "chain": "BTC"}

        result = await client.register(payload)
        await client.close()

        request = handler.last
        assert result == {"ok": True}
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}/wallet"
        assert json.loads(request.content) == payload
        assert verify(
            request.headers[SIGNATURE_HEADER], "POST", str(request.url), request.content.decode()
        )

    @pytest.mark.asyncio
    async def test_balance_and_utxos_urls(self) -> None:
        handler = Recorder(json_body=[])
        client = make_client(handler)

        await client.get_balance("xpubABC")
        await client.get_coins("xpubABC")
        await client.close()

        assert [r.method for r in handler.requests] == ["GET", "GET"]
        assert handler.requests[0].url.path == "/api/BTC/mainnet/wallet/xpubABC/balance"
        assert handler.requests[1].url.params["includeSpent"] == "false"
        assert handler.requests[1].content == b""

    @pytest.mark.asyncio
    async def test_broadcast_and_import_addresses(self) -> None:
        handler = Recorder(json_body={"txid": "ff"})
        client = make_client(handler)

        assert await client.broadcast({"network": "mainnet", "chain": "BTC", "rawTx": "00"}) == {
            "txid": "ff"
        }
        await client.import_addresses("xpubABC", [{"address": "addr-1"}])
        await client.close()

        assert handler.requests[0].url.path.endswith("/tx/send")
        assert handler.requests[1].url.path.endswith("/wallet/xpubABC")
        assert json.loads(handler.requests[1].content) == [{"address": "addr-1"}]

    @pytest.mark.asyncio
    async def test_unauthenticated_client_sends_no_signature(self) -> None:
        handler = Recorder(json_body={})
        client = make_client(handler, auth_key=None)

        await client.get_balance("xpubABC")
        await client.close()

        assert not client.authenticated
        assert SIGNATURE_HEADER not in handler.last.headers

    @pytest.mark.asyncio
    async def test_http_error_is_raised(self) -> None:
        client = make_client(Recorder(status_code=500, json_body={"error": "boom"}))
        with pytest.raises(httpx.HTTPStatusError):
            await client.register({"name": "W"})
        await client.close()

    @pytest.mark.asyncio
    async def test_plain_text_response(self) -> None:
        client = make_client(Recorder(text="OK"))
        assert await client.broadcast({"rawTx": "00"}) == "OK"
        await client.close()

    def test_base_url_trailing_slash(self) -> None:
        client = LedgerClient(BASE_URL + "/")
        assert client.base_url == BASE_URL
