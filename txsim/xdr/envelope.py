"""Operation access on decoded ``TransactionEnvelope`` values.

The envelope union has three arms (legacy v0, v1, fee-bump). A fee-bump
wraps exactly one v1 envelope; stellar-sdk rejects any other inner
discriminant while decoding, so one level of unwrapping is always enough.
"""

from __future__ import annotations

from dataclasses import dataclass

from stellar_sdk import Address
from stellar_sdk import xdr as stellar_xdr

from txsim.core.errors import SchemaError
from txsim.xdr.codec import artifact_name

EnvelopeType = stellar_xdr.EnvelopeType
OperationType = stellar_xdr.OperationType
HostFunctionType = stellar_xdr.HostFunctionType

ENVELOPE = artifact_name(stellar_xdr.TransactionEnvelope)


@dataclass(frozen=True)
class ContractInvocation:
    """The ``InvokeContract`` arm of a host function, ready for the host."""

    contract_address: str
    function_name: str
    args: tuple[stellar_xdr.SCVal, ...] = ()

    @property
    def arg_count(self) -> int:
        return len(self.args)


def envelope_operations(envelope: stellar_xdr.TransactionEnvelope) -> list[stellar_xdr.Operation]:
    """Operations in envelope order, unwrapping a fee-bump's inner v1 transaction."""
    if envelope.type == EnvelopeType.ENVELOPE_TYPE_TX_V0:
        return list(envelope.v0.tx.operations)
    if envelope.type == EnvelopeType.ENVELOPE_TYPE_TX:
        return list(envelope.v1.tx.operations)
    if envelope.type == EnvelopeType.ENVELOPE_TYPE_TX_FEE_BUMP:
        return list(envelope.fee_bump.tx.inner_tx.v1.tx.operations)
    raise SchemaError(ENVELOPE, f"unsupported envelope type {envelope.type.name}")


def format_sc_address(address: stellar_xdr.SCAddress) -> str:
    """Render an ``SCAddress`` as its StrKey (``C...`` for contracts, ``G...`` for accounts)."""
    try:
        return Address.from_xdr_sc_address(address).address
    except ValueError as exc:
        raise SchemaError(ENVELOPE, f"unrenderable contract address: {exc}") from exc


def contract_invocation(op: stellar_xdr.Operation) -> ContractInvocation | None:
    """The contract call carried by ``op``; None for anything but ``InvokeContract``."""
    body = op.body
    if body.type != OperationType.INVOKE_HOST_FUNCTION:
        return None
    host_function = body.invoke_host_function_op.host_function
    if host_function.type != HostFunctionType.HOST_FUNCTION_TYPE_INVOKE_CONTRACT:
        return None

    call = host_function.invoke_contract
    return ContractInvocation(
        contract_address=format_sc_address(call.contract_address),
        function_name=call.function_name.sc_symbol.decode("utf-8", errors="replace"),
        args=tuple(call.args),
    )
