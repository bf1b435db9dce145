"""Execution host interface consumed by the replay pipeline.

The pipeline never interprets contract bytecode itself. It hands every
contract invocation to an object implementing :class:`ExecutionHost` and
reads back diagnostic events and resource usage.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from stellar_sdk import xdr as stellar_xdr

from txsim.xdr.ledger import LedgerEntry, LedgerKey


@dataclass(frozen=True)
class HostEvent:
    """One diagnostic event emitted by the host."""

    kind: str
    contract: str | None = None
    topics: tuple[str, ...] = ()
    data: str = ""

    def __str__(self) -> str:
        parts = [f"kind={self.kind}"]
        if self.contract:
            parts.append(f"contract={self.contract}")
        if self.topics:
            parts.append(f"topics=[{', '.join(self.topics)}]")
        if self.data:
            parts.append(f"data={self.data}")
        return f"HostEvent({', '.join(parts)})"


@dataclass
class BudgetSnapshot:
    """Resource usage of the host at one point in time."""

    cpu_insns_consumed: int = 0
    cpu_insns_limit: int = 0
    mem_bytes_consumed: int = 0
    mem_bytes_limit: int = 0
    extra: dict[str, int] = field(default_factory=dict)

    def __str__(self) -> str:
        return (
            f"Budget(cpu_insns={self.cpu_insns_consumed}/{self.cpu_insns_limit}, "
            f"mem_bytes={self.mem_bytes_consumed}/{self.mem_bytes_limit})"
        )


@runtime_checkable
class ExecutionHost(Protocol):
    """Black-box contract execution host."""

    def invoke(
        self,
        contract_address: str,
        function_name: str,
        args: Sequence[stellar_xdr.SCVal],
        snapshot: Mapping[LedgerKey, LedgerEntry],
    ) -> None:
        """Run one contract function against ``snapshot``.

        Raises:
            HostFaultError: the contract trapped; carries the bytecode offset.
        """
        ...

    def get_events(self) -> list[HostEvent]:
        """Return every event emitted so far, in emission order.

        Raises:
            HostEventRetrievalError: the event buffer is unavailable.
        """
        ...

    def budget(self) -> BudgetSnapshot: ...
