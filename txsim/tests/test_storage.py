"""Tests for the contract storage growth report."""

from __future__ import annotations

import json

import pytest
from stellar_sdk import scval

from txsim.core.errors import SchemaError
from txsim.core.types import SimulationRequest
from txsim.replay.snapshot import Snapshot
from txsim.replay.storage import StorageGrowthReport, apply_changes, compare, storage_report
from txsim.tests.builders import (
    created,
    data_entry,
    data_key,
    ledger_record,
    removed,
    request_json,
    result_meta,
    updated,
    v1_envelope,
)
from txsim.xdr.codec import encode_b64_binary
from txsim.xdr.ledger import entry_size, format_ledger_key, ledger_key_of


def _snapshot(*entries) -> Snapshot:
    return Snapshot([(ledger_key_of(e), e) for e in entries], len(entries))


def _request(ledger_entries=None, meta=None) -> SimulationRequest:
    fields = {}
    if ledger_entries is not None:
        fields["ledger_entries"] = ledger_entries
    if meta is not None:
        fields["result_meta_xdr"] = encode_b64_binary(meta)
    return SimulationRequest.model_validate(json.loads(request_json(v1_envelope(), **fields)))


# ── Applying meta changes ────────────────────────────────────────────────────


class TestApplyChanges:
    def test_created_updated_removed(self):
        a = data_entry("a", scval.to_uint32(1))
        b = data_entry("b", scval.to_uint32(2))
        a2 = data_entry("a", scval.to_bytes(b"\x01" * 40), seq=2)
        c = data_entry("c", scval.to_uint32(3), seq=2)

        after = apply_changes(_snapshot(a, b), result_meta(updated(a2), removed(data_key("b")), created(c)))

        assert len(after) == 2
        assert after[data_key("a")].data.contract_data.val == scval.to_bytes(b"\x01" * 40)
        assert data_key("b") not in after
        assert data_key("c") in after

    def test_input_snapshot_untouched(self):
        a = data_entry("a", scval.to_uint32(1))
        before = _snapshot(a)
        apply_changes(before, result_meta(removed(data_key("a"))))
        assert data_key("a") in before

    def test_fee_processing_changes_applied_first(self):
        first = data_entry("a", scval.to_uint32(1))
        last = data_entry("a", scval.to_uint32(2), seq=3)
        after = apply_changes(Snapshot(), result_meta(updated(last), fee_changes=(created(first),)))
        assert after[data_key("a")].data.contract_data.val == scval.to_uint32(2)

    def test_removing_unknown_key_is_ignored(self):
        after = apply_changes(Snapshot(), result_meta(removed(data_key("ghost"))))
        assert len(after) == 0


# ── Comparison ───────────────────────────────────────────────────────────────


class TestCompare:
    def test_sizes_and_per_key_delta(self):
        small = data_entry("a", scval.to_uint32(1))
        large = data_entry("a", scval.to_bytes(b"\x00" * 64))
        report = compare(_snapshot(small), _snapshot(large), fee_charged=900)

        assert report.before_bytes == entry_size(small)
        assert report.after_bytes == entry_size(large)
        assert report.delta_bytes == entry_size(large) - entry_size(small) > 0
        assert report.per_key_delta == {format_ledger_key(data_key("a")): report.delta_bytes}
        assert report.fee_charged == 900

    def test_new_and_deleted_keys(self):
        a = data_entry("a", scval.to_uint32(1))
        b = data_entry("b", scval.to_uint32(1))
        report = compare(_snapshot(a), _snapshot(b))
        assert report.per_key_delta[format_ledger_key(data_key("a"))] == -entry_size(a)
        assert report.per_key_delta[format_ledger_key(data_key("b"))] == entry_size(b)
        assert report.delta_bytes == 0

    def test_keys_sorted(self):
        entries = [data_entry(name, scval.to_uint32(1)) for name in ("zeta", "alpha", "mid")]
        report = compare(Snapshot(), _snapshot(*entries))
        assert list(report.per_key_delta) == sorted(report.per_key_delta)


class TestRender:
    def test_lists_only_changed_keys(self):
        report = StorageGrowthReport(100, 160, 5000, {"CONTRACT_DATA:x": 60, "CONTRACT_DATA:y": 0})
        text = report.render()
        assert text.splitlines()[0] == "Contract Storage Growth Report"
        assert "Before: 100 bytes" in text
        assert "After:  160 bytes" in text
        assert "Delta:  +60 bytes" in text
        assert "Fee Impact: 5000 stroops" in text
        assert "  CONTRACT_DATA:x: +60 bytes" in text
        assert "CONTRACT_DATA:y" not in text

    def test_no_changes(self):
        text = StorageGrowthReport(10, 10).render()
        assert "Delta:  +0 bytes" in text
        assert text.endswith("Per-Key Changes:\n  (none)")

    def test_shrink_is_negative(self):
        assert "Delta:  -4 bytes" in StorageGrowthReport(10, 6).render()


# ── From a request ───────────────────────────────────────────────────────────


class TestStorageReport:
    def test_without_meta_nothing_changes(self):
        key, entry = ledger_record("counter", scval.to_uint32(1))
        report = storage_report(_request({key: entry}))
        assert report.before_bytes == report.after_bytes > 0
        assert report.fee_charged == 0
        assert all(delta == 0 for delta in report.per_key_delta.values())

    def test_meta_applied_to_snapshot(self):
        key, entry = ledger_record("counter", scval.to_uint32(1))
        grown = data_entry("counter", scval.to_bytes(b"\xff" * 100), seq=5)
        report = storage_report(_request({key: entry}, result_meta(updated(grown), fee_charged=1234)))
        assert report.after_bytes == entry_size(grown)
        assert report.delta_bytes > 0
        assert report.fee_charged == 1234

    def test_bad_meta(self):
        request = SimulationRequest.model_validate(json.loads(request_json(v1_envelope(), result_meta_xdr="AAAA")))
        with pytest.raises(SchemaError, match="ResultMeta"):
            storage_report(request)
