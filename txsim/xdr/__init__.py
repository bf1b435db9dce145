"""Stellar XDR artifacts: base64 boundary, envelope operations, ledger records."""

from txsim.xdr.codec import decode_b64_binary, decode_binary, encode_b64_binary
from txsim.xdr.envelope import ContractInvocation, contract_invocation, envelope_operations
from txsim.xdr.ledger import LedgerEntry, LedgerKey, TransactionResultMeta, ledger_key_of

__all__ = [
    "ContractInvocation",
    "LedgerEntry",
    "LedgerKey",
    "TransactionResultMeta",
    "contract_invocation",
    "decode_b64_binary",
    "decode_binary",
    "encode_b64_binary",
    "envelope_operations",
    "ledger_key_of",
]
