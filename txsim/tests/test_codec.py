"""Tests for txsim.xdr.codec: the base64 + XDR boundary over stellar-sdk types."""

from __future__ import annotations

import base64

import pytest
from stellar_sdk import scval
from stellar_sdk import xdr as stellar_xdr

from txsim.core.errors import Base64Error, SchemaError
from txsim.tests.builders import NETWORK_SELL_OFFER_XDR, data_entry, data_key, result_meta, v1_envelope
from txsim.xdr.codec import artifact_name, decode_b64_binary, decode_binary, encode_b64_binary


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode()


# ── Binary decoding ──────────────────────────────────────────────────────────


class TestDecodeBinary:
    def test_real_network_envelope(self):
        raw = base64.b64decode(NETWORK_SELL_OFFER_XDR)
        envelope = decode_binary(raw, stellar_xdr.TransactionEnvelope)
        assert envelope.type == stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX
        assert envelope.v1.tx.fee.uint32 == 1000

    def test_truncated(self):
        raw = data_key("counter").to_xdr_bytes()[:-3]
        with pytest.raises(SchemaError, match="LedgerKey XDR: unexpected end of data"):
            decode_binary(raw, stellar_xdr.LedgerKey)

    def test_unknown_discriminant(self):
        raw = (42).to_bytes(4, "big") + b"\x00" * 8
        with pytest.raises(SchemaError, match="Failed to parse LedgerKey XDR"):
            decode_binary(raw, stellar_xdr.LedgerKey)

    def test_trailing_bytes(self):
        raw = data_key("counter").to_xdr_bytes() + b"\x00" * 4
        with pytest.raises(SchemaError, match="trailing 4 bytes"):
            decode_binary(raw, stellar_xdr.LedgerKey)

    def test_non_zero_padding(self):
        raw = bytearray(scval.to_bytes(b"abc").to_xdr_bytes())
        assert raw[-1] == 0
        raw[-1] = 1
        with pytest.raises(SchemaError, match="non-canonical encoding"):
            decode_binary(bytes(raw), stellar_xdr.SCVal)

    def test_artifact_override(self):
        with pytest.raises(SchemaError, match="Failed to parse Snapshot XDR"):
            decode_binary(b"", stellar_xdr.LedgerKey, "Snapshot")


# ── Base64 boundary ──────────────────────────────────────────────────────────


class TestBase64Boundary:
    def test_round_trip_of_a_ledger_entry(self):
        entry = data_entry("counter", scval.to_uint32(7), seq=12)
        decoded = decode_b64_binary(encode_b64_binary(entry), stellar_xdr.LedgerEntry)
        assert decoded.last_modified_ledger_seq.uint32 == 12
        assert decoded.data.contract_data.val == scval.to_uint32(7)

    def test_invalid_characters(self):
        with pytest.raises(Base64Error, match="Failed to decode Envelope Base64"):
            decode_b64_binary("not*base64", stellar_xdr.TransactionEnvelope)

    def test_bad_padding(self):
        with pytest.raises(Base64Error):
            decode_b64_binary("AAAAAQ=", stellar_xdr.TransactionEnvelope)

    def test_schema_error_after_valid_base64(self):
        with pytest.raises(SchemaError, match="Failed to parse ResultMeta XDR"):
            decode_b64_binary(_b64(b"\x00\x00"), stellar_xdr.TransactionResultMeta)

    def test_empty_envelope_has_no_operations(self):
        decoded = decode_b64_binary(encode_b64_binary(v1_envelope()), stellar_xdr.TransactionEnvelope)
        assert decoded.v1.tx.operations == []

    def test_result_meta(self):
        decoded = decode_b64_binary(encode_b64_binary(result_meta(fee_charged=321)), stellar_xdr.TransactionResultMeta)
        assert decoded.result.result.fee_charged.int64 == 321


class TestArtifactNames:
    @pytest.mark.parametrize(
        "schema, name",
        [
            (stellar_xdr.TransactionEnvelope, "Envelope"),
            (stellar_xdr.TransactionResultMeta, "ResultMeta"),
            (stellar_xdr.LedgerKey, "LedgerKey"),
            (stellar_xdr.LedgerEntry, "LedgerEntry"),
            (stellar_xdr.SCVal, "SCVal"),
        ],
    )
    def test_names(self, schema, name):
        assert artifact_name(schema) == name
