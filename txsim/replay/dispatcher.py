"""Walks an envelope's operations and drives contract invocations through the host."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from stellar_sdk import xdr as stellar_xdr

from txsim.core.errors import HostFaultError
from txsim.core.types import SourceLocation
from txsim.debug.symbols import DebugSymbolMapper
from txsim.host.base import ExecutionHost
from txsim.xdr.envelope import OperationType, contract_invocation, envelope_operations
from txsim.xdr.ledger import LedgerEntry, LedgerKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocatedFault:
    """A host fault, with its source position when symbols resolved it."""

    offset: int
    message: str
    operation_index: int
    location: SourceLocation | None = None


@dataclass
class DispatchOutcome:
    trace: list[str] = field(default_factory=list)
    invoked: int = 0
    skipped: int = 0
    fault: LocatedFault | None = None

    @property
    def clean(self) -> bool:
        return self.fault is None


class OperationDispatcher:
    """Replays operations in envelope order, halting at the first fault."""

    def __init__(self, host: ExecutionHost, symbols: DebugSymbolMapper | None = None) -> None:
        self.host = host
        self.symbols = symbols if symbols is not None and symbols.has_debug_symbols() else None

    def dispatch(
        self,
        envelope: stellar_xdr.TransactionEnvelope,
        snapshot: Mapping[LedgerKey, LedgerEntry],
    ) -> DispatchOutcome:
        outcome = DispatchOutcome()

        for index, op in enumerate(envelope_operations(envelope)):
            if op.body.type != OperationType.INVOKE_HOST_FUNCTION:
                outcome.trace.append(f"Skipping {op.body.type.name} operation")
                outcome.skipped += 1
                continue

            invocation = contract_invocation(op)
            if invocation is None:
                outcome.trace.append("Skipping non-InvokeContract Host Function")
                outcome.skipped += 1
                continue

            outcome.trace.append(f"About to Invoke Contract: {invocation.contract_address}")
            outcome.trace.append(f"Function: {invocation.function_name}")
            outcome.trace.append(f"Args Count: {invocation.arg_count}")
            outcome.invoked += 1

            try:
                self.host.invoke(invocation.contract_address, invocation.function_name, invocation.args, snapshot)
            except HostFaultError as exc:
                location = self.symbols.resolve(exc.offset) if self.symbols else None
                outcome.fault = LocatedFault(exc.offset, exc.message, index, location)
                logger.info(
                    "Host fault in operation %d at offset %#x: %s",
                    index,
                    exc.offset,
                    exc.message,
                    extra={"operation_index": index, "fault_offset": exc.offset},
                )
                break

        return outcome
