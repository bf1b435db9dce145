"""Deterministic in-process host used by the CLI, the API and the tests.

It does not execute bytecode. Every invocation is recorded as a pair of
diagnostic events and charged a fixed budget cost; functions listed in
``faults`` trap at the configured bytecode offset instead of returning.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from stellar_sdk import xdr as stellar_xdr

from txsim.core.config import Settings, get_settings
from txsim.core.errors import HostEventRetrievalError, HostFaultError
from txsim.host.base import BudgetSnapshot, HostEvent
from txsim.xdr.ledger import LedgerEntry, LedgerKey, key_id

logger = logging.getLogger(__name__)


class RecordingHost:
    """Records invocations; optionally scripted to fault."""

    def __init__(
        self,
        settings: Settings | None = None,
        faults: Mapping[str, int] | None = None,
        fail_events: bool = False,
    ) -> None:
        self.settings = settings or get_settings()
        self.faults = dict(faults or {})
        self.fail_events = fail_events
        self.invocations: list[tuple[str, str, int]] = []
        self.storage: dict[bytes, LedgerEntry] = {}
        self._events: list[HostEvent] = []
        self._budget = BudgetSnapshot(
            cpu_insns_limit=self.settings.host_cpu_insns_limit,
            mem_bytes_limit=self.settings.host_mem_bytes_limit,
        )

    def invoke(
        self,
        contract_address: str,
        function_name: str,
        args: Sequence[stellar_xdr.SCVal],
        snapshot: Mapping[LedgerKey, LedgerEntry],
    ) -> None:
        for key, entry in snapshot.items():
            self.storage[key_id(key)] = entry
        self.invocations.append((contract_address, function_name, len(args)))
        self._charge(args)
        self._events.append(
            HostEvent(kind="fn_call", contract=contract_address, topics=(function_name,), data=f"args={len(args)}")
        )

        offset = self.faults.get(function_name)
        if offset is not None:
            message = f"wasm trap: unreachable in {function_name}"
            self._events.append(
                HostEvent(kind="error", contract=contract_address, topics=(function_name, "trap"), data=f"{offset:#x}")
            )
            logger.debug("Scripted fault in %s at offset %#x", function_name, offset)
            raise HostFaultError(offset, message)

        self._events.append(HostEvent(kind="fn_return", contract=contract_address, topics=(function_name,)))

    def get_events(self) -> list[HostEvent]:
        if self.fail_events:
            raise HostEventRetrievalError("event buffer unavailable")
        return list(self._events)

    def budget(self) -> BudgetSnapshot:
        return BudgetSnapshot(
            cpu_insns_consumed=self._budget.cpu_insns_consumed,
            cpu_insns_limit=self._budget.cpu_insns_limit,
            mem_bytes_consumed=self._budget.mem_bytes_consumed,
            mem_bytes_limit=self._budget.mem_bytes_limit,
        )

    def _charge(self, args: Sequence[stellar_xdr.SCVal]) -> None:
        # Charged for visibility only; limits are reported, not enforced.
        self._budget.cpu_insns_consumed += self.settings.host_cpu_insns_per_invocation
        arg_bytes = sum(len(a.to_xdr_bytes()) for a in args)
        self._budget.mem_bytes_consumed += self.settings.host_mem_bytes_per_invocation + arg_bytes
