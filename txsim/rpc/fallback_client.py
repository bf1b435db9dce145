"""JSON-RPC client that fails over across several RPC endpoints.

Each endpoint gets its own ``httpx.AsyncClient``. A request walks the
endpoints in rotation starting at the primary; each endpoint is retried with
exponential backoff on transient failures before the next one is tried. An
endpoint that keeps failing is taken out of rotation by a circuit breaker
until ``circuit_breaker_timeout`` has elapsed.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from stellar_sdk import xdr as stellar_xdr

from txsim.core.config import Settings, get_settings
from txsim.core.errors import DecodeError, RPCError, RPCUnavailableError
from txsim.core.types import SimulationRequest
from txsim.xdr.codec import decode_b64_binary, encode_b64_binary

logger = logging.getLogger(__name__)


# ── Config ───────────────────────────────────────────────────────────────────


@dataclass
class RPCConfig:
    urls: list[str]
    timeout: float = 30.0
    retries: int = 3
    retry_delay: float = 0.5
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: float = 60.0
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.urls:
            raise ValueError("At least one RPC URL is required")
        if self.retries < 1:
            raise ValueError("retries must be at least 1")

    @staticmethod
    def parse_urls(value: str) -> list[str]:
        return [u.strip() for u in value.split(",") if u.strip()]

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        urls: str | None = None,
        **overrides: Any,
    ) -> "RPCConfig":
        """Build a config from settings; ``urls`` (comma-separated) wins over ``TXSIM_RPC_URLS``."""
        settings = settings or get_settings()
        headers = {"Authorization": f"Bearer {settings.rpc_api_key}"} if settings.rpc_api_key else {}
        values: dict[str, Any] = {
            "urls": cls.parse_urls(urls) if urls else settings.rpc_url_list,
            "timeout": settings.rpc_timeout_seconds,
            "retries": settings.rpc_retries,
            "retry_delay": settings.rpc_retry_delay_seconds,
            "circuit_breaker_threshold": settings.rpc_circuit_breaker_threshold,
            "circuit_breaker_timeout": settings.rpc_circuit_breaker_timeout_seconds,
            "headers": headers,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class RPCEndpoint:
    url: str
    healthy: bool = True
    failure_count: int = 0
    last_failure: float | None = None
    circuit_open: bool = False
    total_requests: int = 0
    total_success: int = 0
    total_failure: int = 0
    average_duration_ms: float = 0.0


def is_retryable(exc: BaseException) -> bool:
    """Transport errors, timeouts, 5xx and 429 are worth retrying."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    return False


def _result_meta(tx_hash: str, result: dict[str, Any]) -> str:
    """Assemble the ``TransactionResultMeta`` the simulator expects.

    ``getTransaction`` ships the result and the apply meta separately; the
    fee-processing changes are not part of the response and stay empty.
    Returns an empty string when the node sent no meta.
    """
    meta_xdr = result.get("resultMetaXdr")
    if not meta_xdr:
        return ""
    try:
        pair = stellar_xdr.TransactionResultPair(
            transaction_hash=stellar_xdr.Hash(bytes.fromhex(tx_hash)),
            result=decode_b64_binary(result.get("resultXdr") or "", stellar_xdr.TransactionResult),
        )
        apply = decode_b64_binary(meta_xdr, stellar_xdr.TransactionMeta)
        meta = stellar_xdr.TransactionResultMeta(pair, stellar_xdr.LedgerEntryChanges([]), apply)
        return encode_b64_binary(meta)
    except (DecodeError, ValueError) as exc:
        detail = exc.message if isinstance(exc, DecodeError) else str(exc)
        raise RPCError(f"Malformed getTransaction response for {tx_hash}: {detail}") from exc


# ── Client ───────────────────────────────────────────────────────────────────


class FallbackRPCClient:
    """JSON-RPC 2.0 over HTTP with endpoint fallback and circuit breaking."""

    def __init__(self, config: RPCConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self.endpoints = [RPCEndpoint(url) for url in config.urls]
        self._current = 0
        self._ids = itertools.count(1)
        self._clients = {
            ep.url: httpx.AsyncClient(
                timeout=config.timeout,
                headers={"Content-Type": "application/json", **config.headers},
                transport=transport,
            )
            for ep in self.endpoints
        }
        logger.info("RPC client initialized with %d endpoint(s)", len(self.endpoints))
        for idx, ep in enumerate(self.endpoints, 1):
            logger.debug("  [%d] %s", idx, ep.url)

    async def __aenter__(self) -> "FallbackRPCClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Call ``method`` and return the JSON-RPC ``result``.

        Raises:
            RPCError: the endpoint rejected the request (4xx or JSON-RPC error).
            RPCUnavailableError: every endpoint failed or is circuit-broken.
        """
        started = time.monotonic()
        last_error: BaseException | None = None

        for _ in range(len(self.endpoints)):
            endpoint = self._next_endpoint()
            if endpoint is None:
                raise RPCUnavailableError("All RPC endpoints are unavailable")

            endpoint.total_requests += 1
            logger.debug("Attempting RPC %s on %s", method, endpoint.url)
            attempt_started = time.monotonic()
            try:
                result = await self._execute_with_retry(endpoint, method, params)
            except (httpx.HTTPError, RPCError) as exc:
                last_error = exc
                self._update_metrics(endpoint, (time.monotonic() - attempt_started) * 1000, success=False)
                self._mark_failure(endpoint)
                if not is_retryable(exc):
                    if isinstance(exc, RPCError):
                        raise
                    raise RPCError(f"RPC request to {endpoint.url} failed: {exc}") from exc
                logger.warning("RPC request failed on %s: %s", endpoint.url, exc, extra={"endpoint": endpoint.url})
                continue

            duration_ms = (time.monotonic() - attempt_started) * 1000
            self._update_metrics(endpoint, duration_ms, success=True)
            self._mark_success(endpoint)
            self._current = 0
            logger.info(
                "RPC %s succeeded on %s",
                method,
                endpoint.url,
                extra={"endpoint": endpoint.url, "duration_ms": round(duration_ms, 2)},
            )
            return result

        total_ms = (time.monotonic() - started) * 1000
        logger.error("All RPC endpoints failed after %.0fms", total_ms)
        raise RPCUnavailableError(f"All RPC endpoints failed: {last_error}")

    async def fetch_transaction(self, tx_hash: str) -> SimulationRequest:
        """Fetch a transaction and shape it as a simulation request."""
        result = await self.request("getTransaction", {"hash": tx_hash})
        if not isinstance(result, dict):
            raise RPCError(f"Unexpected getTransaction result for {tx_hash}")
        status = result.get("status")
        if status == "NOT_FOUND" or not result.get("envelopeXdr"):
            raise RPCError(f"Transaction {tx_hash} not found")
        return SimulationRequest(
            envelope_xdr=result["envelopeXdr"],
            result_meta_xdr=_result_meta(tx_hash, result),
        )

    # ── Health ───────────────────────────────────────────────────────────

    def get_health_status(self) -> list[dict[str, Any]]:
        return [
            {
                "url": ep.url,
                "healthy": ep.healthy,
                "failure_count": ep.failure_count,
                "circuit_open": ep.circuit_open,
                "metrics": {
                    "total_requests": ep.total_requests,
                    "total_success": ep.total_success,
                    "total_failure": ep.total_failure,
                    "average_duration_ms": round(ep.average_duration_ms),
                },
            }
            for ep in self.endpoints
        ]

    async def perform_health_checks(self) -> list[dict[str, Any]]:
        """Call ``getHealth`` on every endpoint and update its state."""
        logger.info("Performing health checks on %d RPC endpoint(s)", len(self.endpoints))

        async def check(endpoint: RPCEndpoint) -> None:
            try:
                await self._post(endpoint, "getHealth", None, timeout=min(self.config.timeout, 5.0))
            except (httpx.HTTPError, RPCError) as exc:
                self._mark_failure(endpoint)
                logger.warning("Health check failed for %s: %s", endpoint.url, exc)
            else:
                self._mark_success(endpoint)
                logger.info("Health check passed for %s", endpoint.url)

        await asyncio.gather(*(check(ep) for ep in self.endpoints))
        return self.get_health_status()

    # ── Internals ────────────────────────────────────────────────────────

    async def _post(
        self,
        endpoint: RPCEndpoint,
        method: str,
        params: dict[str, Any] | None,
        timeout: float | None = None,
    ) -> Any:
        payload: dict[str, Any] = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            payload["params"] = params
        client = self._clients[endpoint.url]
        kwargs: dict[str, Any] = {"json": payload}
        if timeout is not None:
            kwargs["timeout"] = timeout
        response = await client.post(endpoint.url, **kwargs)
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError as exc:
            raise RPCError(f"{method} on {endpoint.url} returned a non-JSON body") from exc
        if "error" in body and body["error"] is not None:
            err = body["error"]
            raise RPCError(f"{method} failed on {endpoint.url}: {err.get('message', err)}")
        return body.get("result")

    async def _execute_with_retry(
        self,
        endpoint: RPCEndpoint,
        method: str,
        params: dict[str, Any] | None,
    ) -> Any:
        retries = self.config.retries
        attempt = 0
        while True:
            try:
                return await self._post(endpoint, method, params)
            except httpx.HTTPError as exc:
                if attempt >= retries - 1 or not is_retryable(exc):
                    raise
                delay = self.config.retry_delay * (2 ** attempt)
                logger.debug("Retrying %s in %.2fs (attempt %d/%d)", endpoint.url, delay, attempt + 1, retries)
                await asyncio.sleep(delay)
                attempt += 1

    def _next_endpoint(self) -> RPCEndpoint | None:
        now = time.monotonic()
        for ep in self.endpoints:
            if ep.circuit_open and ep.last_failure is not None:
                if now - ep.last_failure > self.config.circuit_breaker_timeout:
                    logger.info("Circuit breaker reset for %s", ep.url)
                    ep.circuit_open = False
                    ep.failure_count = 0

        count = len(self.endpoints)
        for i in range(count):
            index = (self._current + i) % count
            ep = self.endpoints[index]
            if not ep.circuit_open:
                self._current = (index + 1) % count
                return ep
        return None

    def _mark_success(self, endpoint: RPCEndpoint) -> None:
        endpoint.healthy = True
        endpoint.failure_count = 0
        endpoint.circuit_open = False

    def _mark_failure(self, endpoint: RPCEndpoint) -> None:
        endpoint.healthy = False
        endpoint.failure_count += 1
        endpoint.last_failure = time.monotonic()
        if endpoint.failure_count >= self.config.circuit_breaker_threshold and not endpoint.circuit_open:
            logger.warning("Circuit breaker opened for %s", endpoint.url)
            endpoint.circuit_open = True

    @staticmethod
    def _update_metrics(endpoint: RPCEndpoint, duration_ms: float, success: bool) -> None:
        if success:
            endpoint.total_success += 1
        else:
            endpoint.total_failure += 1
        count = endpoint.total_success + endpoint.total_failure
        endpoint.average_duration_ms = (endpoint.average_duration_ms * (count - 1) + duration_ms) / count
