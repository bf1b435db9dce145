"""Shared fixtures for the txsim test suite."""

from __future__ import annotations

import logging

import pytest
from stellar_sdk import scval
from stellar_sdk import xdr as stellar_xdr

from txsim.core.config import Settings, get_settings
from txsim.host.recording import RecordingHost
from txsim.replay.pipeline import SimulationPipeline
from txsim.tests.builders import invoke, module_with_lines, v1_envelope


# ── Settings ─────────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """CLI and API tests call setup_logging(); keep the root logger intact for caplog."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


# ── Hosts & pipelines ────────────────────────────────────────────────────────


@pytest.fixture
def recording_host(settings: Settings) -> RecordingHost:
    return RecordingHost(settings)


@pytest.fixture
def make_pipeline(settings: Settings):
    """Build a pipeline whose hosts trap at the given ``{function: offset}``."""
    hosts: list[RecordingHost] = []

    def _make(faults: dict[str, int] | None = None, fail_events: bool = False) -> SimulationPipeline:
        def factory() -> RecordingHost:
            host = RecordingHost(settings, faults, fail_events=fail_events)
            hosts.append(host)
            return host

        pipeline = SimulationPipeline(host_factory=factory, settings=settings)
        pipeline.hosts = hosts  # type: ignore[attr-defined]
        return pipeline

    return _make


# ── Envelopes & modules ──────────────────────────────────────────────────────


@pytest.fixture
def empty_envelope() -> stellar_xdr.TransactionEnvelope:
    return v1_envelope()


@pytest.fixture
def transfer_envelope() -> stellar_xdr.TransactionEnvelope:
    return v1_envelope(invoke("transfer", scval.to_uint32(1), scval.to_uint32(2)))


@pytest.fixture
def lib_rs_module() -> bytes:
    """Module whose symbols map [0x1200, 0x1300) to lib.rs:42."""
    return module_with_lines([(0x1000, 10), (0x1200, 42), (0x1300, 50)], end=0x1400)
