"""Tests for txsim.core: settings loading, logging setup and result schemas."""

from __future__ import annotations

import io
import json
import logging

import pytest
from pydantic import ValidationError

from txsim.core.config import Settings, get_settings
from txsim.core.errors import Base64Error, ErrorCode, HostFaultError, ModuleFormatError, SchemaError
from txsim.core.logging import DevFormatter, JSONFormatter, record_context, setup_logging
from txsim.core.types import SimulationResult, SimulationStatus, SourceLocation


class TestSettings:
    """Verify settings defaults and environment overrides."""

    def test_defaults(self, settings):
        assert settings.app_env == "development"
        assert settings.host_cpu_insns_limit == 100_000_000
        assert settings.host_mem_bytes_limit == 41_943_040
        assert settings.rpc_url_list == []

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TXSIM_HOST_CPU_INSNS_LIMIT", "5000")
        monkeypatch.setenv("TXSIM_RPC_URLS", "https://a.example, https://b.example")
        s = Settings(_env_file=None)
        assert s.host_cpu_insns_limit == 5000
        assert s.rpc_url_list == ["https://a.example", "https://b.example"]

    def test_invalid_env(self, monkeypatch):
        monkeypatch.setenv("TXSIM_APP_ENV", "moon")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()


class TestErrors:
    def test_messages(self):
        assert Base64Error("Envelope", "bad").message == "Failed to decode Envelope Base64: bad"
        assert SchemaError("LedgerKey", "short").message == "Failed to parse LedgerKey XDR: short"
        assert ModuleFormatError("bad magic").message == "Failed to parse contract WASM: bad magic"

    def test_codes(self):
        assert Base64Error("x", "y").code == ErrorCode.BASE64
        assert HostFaultError(0x10).code == ErrorCode.HOST_FAULT
        assert HostFaultError(0x10).offset == 0x10


class TestLogging:
    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord("txsim.test", logging.INFO, __file__, 10, "Loaded %d entries", (3,), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter(self):
        entry = json.loads(JSONFormatter().format(self._record(entry_count=3, error_code="SCHEMA")))
        assert entry["message"] == "Loaded 3 entries"
        assert entry["level"] == "INFO"
        assert entry["entry_count"] == 3
        assert entry["error_code"] == "SCHEMA"

    def test_dev_formatter_request_id(self):
        line = DevFormatter().format(self._record(request_id="0123456789abcdef"))
        assert "[01234567] Loaded 3 entries" in line

    def test_dev_formatter_replay_context(self):
        line = DevFormatter().format(self._record(operation_index=2, fault_offset=0x1234))
        assert "operation_index=2 fault_offset=0x1234" in line

    def test_json_formatter_omits_unset_context(self):
        entry = json.loads(JSONFormatter().format(self._record(duration_ms=None)))
        assert "duration_ms" not in entry
        assert "line" not in entry

    def test_record_context_order(self):
        record = self._record(entry_count=1, request_id="r1")
        assert list(record_context(record)) == ["request_id", "entry_count"]

    def test_setup_logging_targets_stream(self):
        stream = io.StringIO()
        setup_logging("production", "INFO", stream=stream)
        logging.getLogger("txsim.test").info("hello")
        assert json.loads(stream.getvalue())["message"] == "hello"

    def test_setup_logging_level(self):
        stream = io.StringIO()
        setup_logging("development", "WARNING", stream=stream)
        logging.getLogger("txsim.test").info("quiet")
        assert stream.getvalue() == ""


class TestSimulationResult:
    def test_success_rejects_error(self):
        with pytest.raises(ValidationError):
            SimulationResult(status=SimulationStatus.SUCCESS, error="x")

    def test_error_requires_message(self):
        with pytest.raises(ValidationError):
            SimulationResult(status=SimulationStatus.ERROR)

    def test_wire_keeps_lists(self):
        wire = SimulationResult.failure("boom").to_wire()
        assert wire["events"] == [] and wire["logs"] == []
        assert "source_location" not in wire

    def test_source_location_str(self):
        assert str(SourceLocation(file="lib.rs", line=4)) == "lib.rs:4"
        assert str(SourceLocation(file="lib.rs", line=4, column=2)) == "lib.rs:4:2"
