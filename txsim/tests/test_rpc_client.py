"""Tests for the fallback JSON-RPC client, driven through httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest
from stellar_sdk import scval
from stellar_sdk import xdr as stellar_xdr

from txsim.core.config import Settings
from txsim.core.errors import RPCError, RPCUnavailableError
from txsim.rpc.fallback_client import FallbackRPCClient, RPCConfig, is_retryable
from txsim.tests.builders import NETWORK_SELL_OFFER_XDR, created, data_entry, result_meta, tx_result
from txsim.xdr.codec import decode_b64_binary, encode_b64_binary
from txsim.xdr.ledger import meta_fee_charged, meta_tx_hash

PRIMARY = "https://primary.example/rpc"
BACKUP = "https://backup.example/rpc"


def _ok(result) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})


class Recorder:
    """Routes requests by URL to canned responses and records every call."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append((url, json.loads(request.content)))
        route = self.routes[url]
        if isinstance(route, Exception):
            raise route
        # Fresh response per call; the client consumes and closes each one.
        return httpx.Response(route.status_code, content=route.content, headers=route.headers)

    def hits(self, url: str) -> int:
        return sum(1 for called, _ in self.calls if called == url)


def _client(routes: dict, **overrides) -> tuple[FallbackRPCClient, Recorder]:
    recorder = Recorder(routes)
    values = {"urls": list(routes), "retries": 2, "retry_delay": 0.0, **overrides}
    return FallbackRPCClient(RPCConfig(**values), transport=httpx.MockTransport(recorder)), recorder


# ── Config ───────────────────────────────────────────────────────────────────


class TestRPCConfig:
    def test_requires_urls(self):
        with pytest.raises(ValueError, match="At least one RPC URL"):
            RPCConfig(urls=[])

    def test_requires_positive_retries(self):
        with pytest.raises(ValueError):
            RPCConfig(urls=[PRIMARY], retries=0)

    def test_parse_urls(self):
        assert RPCConfig.parse_urls(f" {PRIMARY} ,, {BACKUP} ") == [PRIMARY, BACKUP]

    def test_from_settings(self):
        settings = Settings(_env_file=None, rpc_urls=PRIMARY, rpc_retries=4, rpc_api_key="s3cret")
        config = RPCConfig.from_settings(settings)
        assert config.urls == [PRIMARY]
        assert config.retries == 4
        assert config.headers == {"Authorization": "Bearer s3cret"}

    def test_explicit_urls_and_overrides_win(self):
        settings = Settings(_env_file=None, rpc_urls=PRIMARY)
        config = RPCConfig.from_settings(settings, urls=f"{BACKUP},{PRIMARY}", timeout=2.5, retries=None)
        assert config.urls == [BACKUP, PRIMARY]
        assert config.timeout == 2.5
        assert config.retries == settings.rpc_retries
        assert config.headers == {}

    def test_no_urls_configured(self):
        with pytest.raises(ValueError):
            RPCConfig.from_settings(Settings(_env_file=None))


class TestIsRetryable:
    @staticmethod
    def _status_error(code: int) -> httpx.HTTPStatusError:
        request = httpx.Request("POST", PRIMARY)
        return httpx.HTTPStatusError("x", request=request, response=httpx.Response(code, request=request))

    def test_classification(self):
        assert is_retryable(httpx.ConnectError("down"))
        assert is_retryable(self._status_error(503))
        assert is_retryable(self._status_error(429))
        assert not is_retryable(self._status_error(404))
        assert not is_retryable(RPCError("bad"))


# ── Requests ─────────────────────────────────────────────────────────────────


class TestRequest:
    @pytest.mark.asyncio
    async def test_json_rpc_payload(self):
        client, recorder = _client({PRIMARY: _ok({"ledger": 1})})
        async with client:
            assert await client.request("getLatestLedger", {"a": 1}) == {"ledger": 1}
        url, payload = recorder.calls[0]
        assert url == PRIMARY
        assert payload["jsonrpc"] == "2.0"
        assert payload["method"] == "getLatestLedger"
        assert payload["params"] == {"a": 1}

    @pytest.mark.asyncio
    async def test_falls_back_on_server_error(self):
        client, recorder = _client({PRIMARY: httpx.Response(500), BACKUP: _ok("from-backup")})
        async with client:
            assert await client.request("getHealth") == "from-backup"
        assert recorder.hits(PRIMARY) == 2
        assert recorder.hits(BACKUP) == 1
        primary, backup = client.get_health_status()
        assert primary["healthy"] is False
        assert primary["metrics"]["total_failure"] == 1
        assert backup["metrics"]["total_success"] == 1

    @pytest.mark.asyncio
    async def test_falls_back_on_transport_error(self):
        client, recorder = _client({PRIMARY: httpx.ConnectError("refused"), BACKUP: _ok(True)})
        async with client:
            assert await client.request("getHealth") is True
        assert recorder.hits(PRIMARY) == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        client, recorder = _client({PRIMARY: httpx.Response(400), BACKUP: _ok("unused")})
        async with client:
            with pytest.raises(RPCError) as exc_info:
                await client.request("getHealth")
        assert not isinstance(exc_info.value, RPCUnavailableError)
        assert recorder.hits(PRIMARY) == 1
        assert recorder.hits(BACKUP) == 0

    @pytest.mark.asyncio
    async def test_json_rpc_error(self):
        body = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "invalid hash"}}
        client, _ = _client({PRIMARY: httpx.Response(200, json=body)})
        async with client:
            with pytest.raises(RPCError, match="invalid hash"):
                await client.request("getTransaction", {"hash": "zz"})

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client, _ = _client({PRIMARY: httpx.Response(200, text="<html>")})
        async with client:
            with pytest.raises(RPCError, match="non-JSON"):
                await client.request("getHealth")

    @pytest.mark.asyncio
    async def test_all_endpoints_fail(self):
        client, _ = _client({PRIMARY: httpx.Response(503), BACKUP: httpx.Response(502)})
        async with client:
            with pytest.raises(RPCUnavailableError, match="All RPC endpoints failed"):
                await client.request("getHealth")

    @pytest.mark.asyncio
    async def test_primary_preferred_after_success(self):
        client, recorder = _client({PRIMARY: _ok(1), BACKUP: _ok(2)})
        async with client:
            await client.request("getHealth")
            await client.request("getHealth")
        assert recorder.hits(PRIMARY) == 2
        assert recorder.hits(BACKUP) == 0


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        client, recorder = _client({PRIMARY: httpx.Response(500)}, retries=1, circuit_breaker_threshold=2)
        async with client:
            for _ in range(2):
                with pytest.raises(RPCUnavailableError, match="failed"):
                    await client.request("getHealth")
            with pytest.raises(RPCUnavailableError, match="unavailable"):
                await client.request("getHealth")
        assert recorder.hits(PRIMARY) == 2
        assert client.get_health_status()[0]["circuit_open"] is True

    @pytest.mark.asyncio
    async def test_resets_after_timeout(self):
        client, recorder = _client(
            {PRIMARY: httpx.Response(500)},
            retries=1,
            circuit_breaker_threshold=1,
            circuit_breaker_timeout=-1.0,
        )
        async with client:
            for _ in range(2):
                with pytest.raises(RPCUnavailableError, match="failed"):
                    await client.request("getHealth")
        assert recorder.hits(PRIMARY) == 2


# ── Transactions & health ────────────────────────────────────────────────────


class TestFetchTransaction:
    @pytest.mark.asyncio
    async def test_builds_request(self):
        meta = result_meta(created(data_entry("counter", scval.to_uint32(1))), fee_charged=250)
        result = {
            "status": "SUCCESS",
            "envelopeXdr": NETWORK_SELL_OFFER_XDR,
            "resultXdr": encode_b64_binary(tx_result(250)),
            "resultMetaXdr": encode_b64_binary(meta.tx_apply_processing),
        }
        client, recorder = _client({PRIMARY: _ok(result)})
        async with client:
            request = await client.fetch_transaction("ab" * 32)
        assert request.envelope_xdr == NETWORK_SELL_OFFER_XDR
        assert request.ledger_entries is None
        assert recorder.calls[0][1]["params"] == {"hash": "ab" * 32}

        decoded = decode_b64_binary(request.result_meta_xdr, stellar_xdr.TransactionResultMeta)
        assert meta_tx_hash(decoded) == "ab" * 32
        assert meta_fee_charged(decoded) == 250
        assert decoded.fee_processing.ledger_entry_changes == []
        assert decoded.tx_apply_processing == meta.tx_apply_processing

    @pytest.mark.asyncio
    async def test_malformed_meta(self):
        result = {
            "status": "SUCCESS",
            "envelopeXdr": NETWORK_SELL_OFFER_XDR,
            "resultXdr": encode_b64_binary(tx_result()),
            "resultMetaXdr": "AAAA",
        }
        client, _ = _client({PRIMARY: _ok(result)})
        async with client:
            with pytest.raises(RPCError, match="Malformed getTransaction response"):
                await client.fetch_transaction("ab" * 32)

    @pytest.mark.asyncio
    async def test_meta_with_bad_hash(self):
        result = {
            "status": "SUCCESS",
            "envelopeXdr": NETWORK_SELL_OFFER_XDR,
            "resultXdr": encode_b64_binary(tx_result()),
            "resultMetaXdr": encode_b64_binary(result_meta().tx_apply_processing),
        }
        client, _ = _client({PRIMARY: _ok(result)})
        async with client:
            with pytest.raises(RPCError, match="Malformed getTransaction response for zz"):
                await client.fetch_transaction("zz")

    @pytest.mark.asyncio
    async def test_missing_meta_is_empty(self):
        client, _ = _client({PRIMARY: _ok({"status": "SUCCESS", "envelopeXdr": "AAAAAg=="})})
        async with client:
            request = await client.fetch_transaction("ab")
        assert request.result_meta_xdr == ""

    @pytest.mark.asyncio
    async def test_not_found(self):
        client, _ = _client({PRIMARY: _ok({"status": "NOT_FOUND"})})
        async with client:
            with pytest.raises(RPCError, match="not found"):
                await client.fetch_transaction("ab")


class TestHealthChecks:
    @pytest.mark.asyncio
    async def test_marks_each_endpoint(self):
        client, _ = _client({PRIMARY: _ok({"status": "healthy"}), BACKUP: httpx.ConnectError("down")})
        async with client:
            status = await client.perform_health_checks()
        assert [ep["url"] for ep in status] == [PRIMARY, BACKUP]
        assert [ep["healthy"] for ep in status] == [True, False]
        assert status[1]["failure_count"] == 1
