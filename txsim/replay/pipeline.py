"""End-to-end replay of one simulation request.

    request JSON -> envelope -> result meta -> module symbols -> host
                 -> snapshot -> dispatch -> events -> result

Each :meth:`SimulationPipeline.run` call builds its own host, snapshot and
symbol table; nothing survives between requests.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from collections.abc import Callable

from pydantic import ValidationError
from stellar_sdk import xdr as stellar_xdr

from txsim.core.config import Settings, get_settings
from txsim.core.errors import Base64Error, RequestFormatError, TxsimError
from txsim.core.types import SimulationRequest, SimulationResult
from txsim.debug.symbols import DebugSymbolMapper
from txsim.host.base import ExecutionHost
from txsim.host.recording import RecordingHost
from txsim.replay.diagnosis import assemble, collect_events
from txsim.replay.dispatcher import OperationDispatcher
from txsim.replay.responder import error_result
from txsim.replay.snapshot import build_snapshot
from txsim.xdr.codec import decode_b64_binary
from txsim.xdr.ledger import TransactionResultMeta, meta_fee_charged, meta_tx_hash

logger = logging.getLogger(__name__)

HostFactory = Callable[[], ExecutionHost]

WASM_ARTIFACT = "contract WASM"


def parse_request(raw: str | bytes) -> SimulationRequest:
    try:
        return SimulationRequest.model_validate_json(raw)
    except ValidationError as exc:
        raise RequestFormatError(_summarize(exc)) from exc


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        if err["type"] == "json_invalid":
            parts.append(str(err.get("ctx", {}).get("error", err["msg"])))
            continue
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def load_symbols(contract_wasm: str) -> DebugSymbolMapper | None:
    """Decode the base64 module and build its mapper; None without debug info."""
    try:
        module_bytes = base64.b64decode(contract_wasm, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise Base64Error(WASM_ARTIFACT, str(exc)) from exc

    mapper = DebugSymbolMapper(module_bytes)
    if mapper.has_debug_symbols():
        logger.info("Debug symbols found in WASM")
        return mapper
    logger.info("No debug symbols found in WASM")
    return None


class SimulationPipeline:
    """Runs requests through decode, dispatch and diagnosis."""

    def __init__(self, host_factory: HostFactory | None = None, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.host_factory = host_factory or (lambda: RecordingHost(self.settings))

    def run(self, raw: str | bytes) -> SimulationResult:
        """Simulate one raw JSON request. Never raises for request errors."""
        started = time.monotonic()
        try:
            result = self.run_request(parse_request(raw))
        except TxsimError as exc:
            logger.warning("Simulation rejected: %s", exc.message, extra={"error_code": exc.code.value})
            result = error_result(exc.message)
        logger.info(
            "Simulation finished: %s",
            result.status.value,
            extra={"duration_ms": round((time.monotonic() - started) * 1000, 2)},
        )
        return result

    def run_request(self, request: SimulationRequest) -> SimulationResult:
        """Simulate an already parsed request.

        Raises:
            TxsimError: any decode failure before the host is reached.
        """
        envelope = decode_b64_binary(request.envelope_xdr, stellar_xdr.TransactionEnvelope)

        if not request.result_meta_xdr:
            logger.warning("ResultMetaXdr is empty. Host storage will be empty.")
        else:
            meta = decode_b64_binary(request.result_meta_xdr, TransactionResultMeta)
            logger.debug("Result meta for tx %s, fee charged %d", meta_tx_hash(meta), meta_fee_charged(meta))

        symbols = load_symbols(request.contract_wasm) if request.contract_wasm else None

        host = self.host_factory()
        host_logs = [f"Host Initialized with Budget: {host.budget()}"]

        snapshot = build_snapshot(request.ledger_entries)
        host_logs.append(f"Loaded {snapshot.loaded_count} Ledger Entries")

        outcome = OperationDispatcher(host, symbols).dispatch(envelope, snapshot)
        logger.info(
            "Dispatched %d contract call(s), skipped %d operation(s)",
            outcome.invoked,
            outcome.skipped,
        )
        events = collect_events(host)
        return assemble(events, host_logs, outcome)
