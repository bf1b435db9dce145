"""txsim CLI: offline transaction replay with source-mapped faults.

Usage:
    txsim simulate [--input FILE]          Replay a simulation request (stdin by default)
    txsim resolve --wasm FILE OFFSET...    Map bytecode offsets to source lines
    txsim debug <tx-hash> --rpc URLS       Fetch a transaction over RPC and replay it
    txsim rpc-health --rpc URLS            Check RPC endpoint health
    txsim serve [--host H] [--port P]      Run the HTTP API
    txsim config                           Show current configuration

Examples:
    txsim simulate --input request.json --pretty
    txsim simulate --fault transfer=0x1234 < request.json
    txsim simulate --input request.json --storage-report
    txsim resolve --wasm contract.wasm 0x1234 4660
    txsim debug 5f3c...e1 --rpc https://rpc1.example,https://rpc2.example
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import sys
from pathlib import Path

from txsim.core.config import get_settings
from txsim.core.errors import ModuleFormatError, RPCError, TxsimError
from txsim.core.logging import setup_logging
from txsim.core.types import SimulationRequest
from txsim.debug.symbols import DebugSymbolMapper
from txsim.host.recording import RecordingHost
from txsim.replay.pipeline import SimulationPipeline, parse_request
from txsim.replay.responder import respond
from txsim.replay.storage import storage_report
from txsim.rpc.fallback_client import FallbackRPCClient, RPCConfig

VERSION = "0.1.0"


# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_BOLD = "\033[1m"
_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


def _err(text: str) -> None:
    print(_c(text, _RED), file=sys.stderr)


# ── Banner ───────────────────────────────────────────────────────────────────

BANNER = rf"""
{_BOLD}{_CYAN} _            _
| |___  _____(_)_ __ ___
| __\ \/ / __| | '_ ` _ \
| |_ >  <\__ \ | | | | | |
 \__/_/\_\___/_|_| |_| |_|{_RESET}
  {_DIM}Transaction replay & fault diagnosis v{VERSION}{_RESET}
"""


# ── CLI argument parser ─────────────────────────────────────────────────────


def _fault_spec(value: str) -> tuple[str, int]:
    name, sep, offset = value.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected FUNCTION=OFFSET, got {value!r}")
    try:
        return name, int(offset, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid offset {offset!r}") from None


def _offset(value: str) -> int:
    try:
        return int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid offset {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="txsim",
        description="txsim: offline smart-contract transaction simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--no-banner", action="store_true", help="Suppress the startup banner")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only log warnings and errors")

    sub = parser.add_subparsers(dest="command")

    # ── simulate ─────────────────────────────────────────────────────────────
    sim_p = sub.add_parser("simulate", help="Replay a JSON simulation request")
    sim_p.add_argument("--input", "-i", help="Request file (default: stdin)")
    sim_p.add_argument(
        "--fault",
        action="append",
        type=_fault_spec,
        default=[],
        metavar="FUNCTION=OFFSET",
        help="Make the host trap in FUNCTION at bytecode OFFSET (repeatable)",
    )
    sim_p.add_argument("--pretty", action="store_true", help="Indent the JSON response")
    sim_p.add_argument(
        "--storage-report", action="store_true", help="Print the contract storage growth report to stderr"
    )

    # ── resolve ──────────────────────────────────────────────────────────────
    res_p = sub.add_parser("resolve", help="Resolve bytecode offsets to source locations")
    res_p.add_argument("--wasm", "-w", required=True, help="Compiled module with DWARF debug info")
    res_p.add_argument("offsets", nargs="+", type=_offset, help="Offsets (decimal or 0x hex)")

    # ── debug ────────────────────────────────────────────────────────────────
    dbg_p = sub.add_parser("debug", help="Fetch a transaction over RPC and replay it")
    dbg_p.add_argument("tx_hash", help="Transaction hash")
    dbg_p.add_argument("--rpc", help="Comma-separated RPC URLs, primary first (default: TXSIM_RPC_URLS)")
    dbg_p.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    dbg_p.add_argument("--retries", type=int, help="Attempts per endpoint")
    dbg_p.add_argument("--wasm", "-w", help="Contract module for source mapping")
    dbg_p.add_argument("--pretty", action="store_true", help="Indent the JSON response")
    dbg_p.add_argument(
        "--storage-report", action="store_true", help="Print the contract storage growth report to stderr"
    )

    # ── rpc-health ───────────────────────────────────────────────────────────
    health_p = sub.add_parser("rpc-health", help="Check the health of RPC endpoints")
    health_p.add_argument("--rpc", help="Comma-separated RPC URLs (default: TXSIM_RPC_URLS)")

    # ── serve ────────────────────────────────────────────────────────────────
    serve_p = sub.add_parser("serve", help="Run the HTTP API")
    serve_p.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve_p.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")

    # ── config ───────────────────────────────────────────────────────────────
    sub.add_parser("config", help="Show current configuration")

    return parser


# ── Simulate command ─────────────────────────────────────────────────────────


def _run_simulate(args: argparse.Namespace) -> int:
    if args.input:
        path = Path(args.input)
        if not path.is_file():
            _err(f"Request file not found: {path}")
            return 1
        raw = path.read_text(encoding="utf-8")
    else:
        raw = sys.stdin.read()

    settings = get_settings()
    faults = dict(args.fault)
    pipeline = SimulationPipeline(host_factory=lambda: RecordingHost(settings, faults), settings=settings)
    result = pipeline.run(raw)
    respond(result, sys.stdout, pretty=args.pretty)
    if args.storage_report:
        _print_storage_report(raw)
    return 0 if result.ok else 1


def _print_storage_report(source: str | SimulationRequest) -> None:
    try:
        request = parse_request(source) if isinstance(source, str) else source
        report = storage_report(request)
    except TxsimError as exc:
        _err(f"Storage report unavailable: {exc.message}")
        return
    print(_c(report.render(), _DIM), file=sys.stderr)


# ── Resolve command ──────────────────────────────────────────────────────────


def _run_resolve(args: argparse.Namespace) -> int:
    path = Path(args.wasm)
    if not path.is_file():
        _err(f"Module not found: {path}")
        return 1
    try:
        mapper = DebugSymbolMapper(path.read_bytes())
    except ModuleFormatError as exc:
        _err(exc.message)
        return 1

    if not mapper.has_debug_symbols():
        print(_c(f"No debug symbols found in {path.name}", _YELLOW), file=sys.stderr)
        return 1

    print(_c(f"{len(mapper.table)} symbol range(s) in {path.name}", _DIM), file=sys.stderr)
    for offset in args.offsets:
        location = mapper.resolve(offset)
        target = str(location) if location else _c("(no source location)", _DIM)
        print(f"{offset:#x} -> {target}")
    return 0


# ── Debug command ────────────────────────────────────────────────────────────


def _rpc_config(args: argparse.Namespace) -> RPCConfig:
    return RPCConfig.from_settings(
        get_settings(),
        urls=args.rpc,
        timeout=getattr(args, "timeout", None),
        retries=getattr(args, "retries", None),
    )


async def _run_debug(args: argparse.Namespace) -> int:
    try:
        config = _rpc_config(args)
    except ValueError as exc:
        _err(f"Invalid RPC configuration: {exc}")
        return 1

    contract_wasm = None
    if args.wasm:
        wasm_path = Path(args.wasm)
        if not wasm_path.is_file():
            _err(f"Module not found: {wasm_path}")
            return 1
        contract_wasm = base64.b64encode(wasm_path.read_bytes()).decode("ascii")

    print(_c(f"Fetching transaction {args.tx_hash}...", _CYAN), file=sys.stderr)
    try:
        async with FallbackRPCClient(config) as client:
            request = await client.fetch_transaction(args.tx_hash)
    except RPCError as exc:
        _err(f"Failed to fetch transaction: {exc.message}")
        return 1

    if contract_wasm is not None:
        request = request.model_copy(update={"contract_wasm": contract_wasm})

    settings = get_settings()
    pipeline = SimulationPipeline(settings=settings)
    result = pipeline.run(request.model_dump_json())
    respond(result, sys.stdout, pretty=args.pretty)
    if args.storage_report:
        _print_storage_report(request)
    return 0 if result.ok else 1


# ── RPC health command ───────────────────────────────────────────────────────


async def _run_rpc_health(args: argparse.Namespace) -> int:
    try:
        config = _rpc_config(args)
    except ValueError as exc:
        _err(f"Invalid RPC configuration: {exc}")
        return 1

    async with FallbackRPCClient(config) as client:
        status = await client.perform_health_checks()

    print(f"\n{_BOLD}RPC Endpoint Status{_RESET}\n")
    for idx, ep in enumerate(status, 1):
        mark = _c("healthy", _GREEN) if ep["healthy"] else _c("unhealthy", _RED)
        circuit = _c(" [circuit open]", _YELLOW) if ep["circuit_open"] else ""
        metrics = ep["metrics"]
        print(f"  [{idx}] {ep['url']}  {mark}{circuit}")
        print(
            f"      {_DIM}requests={metrics['total_requests']} "
            f"success={metrics['total_success']} failure={metrics['total_failure']} "
            f"avg={metrics['average_duration_ms']}ms{_RESET}"
        )
    print()
    return 0 if any(ep["healthy"] for ep in status) else 1


# ── Serve command ────────────────────────────────────────────────────────────


def _run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "txsim.api.main:app",
        host=args.host,
        port=args.port,
        log_level="warning" if args.quiet else settings.log_level.lower(),
    )
    return 0


# ── Config command ───────────────────────────────────────────────────────────


def _run_config() -> int:
    """Print current settings (redacted)."""
    s = get_settings()
    print(f"\n{_BOLD}txsim Configuration{_RESET}\n")
    for field_name in sorted(type(s).model_fields.keys()):
        val = getattr(s, field_name, "")
        if any(kw in field_name for kw in ("password", "secret", "key", "token")):
            val = "****" if val else "(not set)"
        print(f"  {_DIM}{field_name}:{_RESET}  {val}")
    print()
    return 0


# ── Entrypoint ───────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"txsim {VERSION}")
        return 0

    if not args.no_banner:
        print(BANNER, file=sys.stderr)

    if not args.command:
        parser.print_help()
        return 0

    settings = get_settings()
    setup_logging(settings.app_env, "WARNING" if args.quiet else settings.log_level)

    if args.command == "config":
        return _run_config()

    if args.command == "simulate":
        return _run_simulate(args)

    if args.command == "resolve":
        return _run_resolve(args)

    if args.command == "debug":
        return asyncio.run(_run_debug(args))

    if args.command == "rpc-health":
        return asyncio.run(_run_rpc_health(args))

    if args.command == "serve":
        return _run_serve(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
