"""Base64 boundary for the Stellar XDR artifacts the simulator accepts.

Every binary artifact (envelope, ledger key, ledger entry, result meta)
arrives as standard base64 text wrapping an XDR value, decoded with
stellar-sdk's generated types. The library already rejects truncation,
unknown discriminants, oversized arrays and trailing bytes. On top of that a
decoded value must re-encode to exactly the input bytes: ``xdrlib3`` does not
look at padding, so non-zero padding only shows up as a mismatch there.
"""

from __future__ import annotations

import base64
import binascii
import struct
from typing import Protocol, TypeVar

import xdrlib3
from stellar_sdk import xdr as stellar_xdr

from txsim.core.errors import Base64Error, SchemaError

T = TypeVar("T", bound="XdrValue")


class XdrValue(Protocol):
    """Shape shared by every stellar-sdk generated XDR class."""

    @classmethod
    def from_xdr_bytes(cls: type[T], xdr: bytes) -> T: ...

    def to_xdr_bytes(self) -> bytes: ...


# Names used in "Failed to parse <artifact> XDR" messages.
ARTIFACT_NAMES: dict[type, str] = {
    stellar_xdr.TransactionEnvelope: "Envelope",
    stellar_xdr.TransactionResultMeta: "ResultMeta",
    stellar_xdr.LedgerKey: "LedgerKey",
    stellar_xdr.LedgerEntry: "LedgerEntry",
}

# What the generated unpackers raise on malformed input.
XDR_ERRORS = (EOFError, ValueError, struct.error, xdrlib3.Error)


def artifact_name(schema: type) -> str:
    return ARTIFACT_NAMES.get(schema, schema.__name__)


def decode_binary(raw: bytes, schema: type[T], artifact: str | None = None) -> T:
    """Parse ``raw`` as exactly one canonical ``schema`` value.

    Raises:
        SchemaError: the bytes do not match the schema.
    """
    name = artifact or artifact_name(schema)
    try:
        value = schema.from_xdr_bytes(raw)
        canonical = value.to_xdr_bytes()
    except XDR_ERRORS as exc:
        raise SchemaError(name, _describe(exc)) from exc
    if canonical != raw:
        raise SchemaError(name, "non-canonical encoding (non-zero padding or out-of-range value)")
    return value


def decode_b64_binary(text: str, schema: type[T], artifact: str | None = None) -> T:
    """Decode standard base64 ``text`` and parse it as ``schema``.

    Args:
        text: Base64 text (standard alphabet, padded).
        schema: A stellar-sdk XDR class such as ``TransactionEnvelope``.
        artifact: Name used in error messages; defaults to the name in
            :data:`ARTIFACT_NAMES`.

    Raises:
        Base64Error: invalid base64 characters or padding.
        SchemaError: the bytes do not match the schema.
    """
    name = artifact or artifact_name(schema)
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise Base64Error(name, str(exc)) from exc
    return decode_binary(raw, schema, name)


def encode_b64_binary(value: XdrValue) -> str:
    return base64.b64encode(value.to_xdr_bytes()).decode("ascii")


def _describe(exc: Exception) -> str:
    if isinstance(exc, EOFError):
        return "unexpected end of data"
    return str(exc) or type(exc).__name__
