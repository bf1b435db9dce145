"""Contract storage growth: the request's ledger snapshot before and after the transaction.

"Before" is the snapshot supplied with the request. "After" is that snapshot
with every ledger change recorded in the result meta applied in order. Sizes
are the encoded XDR size of each entry.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from txsim.core.types import SimulationRequest
from txsim.replay.snapshot import Snapshot, build_snapshot
from txsim.xdr.codec import decode_b64_binary
from txsim.xdr.ledger import (
    LedgerEntry,
    LedgerEntryChangeType,
    LedgerKey,
    TransactionResultMeta,
    entry_size,
    format_ledger_key,
    key_id,
    ledger_key_of,
    meta_changes,
    meta_fee_charged,
)

logger = logging.getLogger(__name__)

_WRITES = (
    LedgerEntryChangeType.LEDGER_ENTRY_CREATED,
    LedgerEntryChangeType.LEDGER_ENTRY_UPDATED,
    LedgerEntryChangeType.LEDGER_ENTRY_RESTORED,
)


@dataclass
class StorageGrowthReport:
    before_bytes: int = 0
    after_bytes: int = 0
    fee_charged: int = 0
    per_key_delta: dict[str, int] = field(default_factory=dict)

    @property
    def delta_bytes(self) -> int:
        return self.after_bytes - self.before_bytes

    def render(self) -> str:
        lines = [
            "Contract Storage Growth Report",
            "------------------------------",
            f"Before: {self.before_bytes} bytes",
            f"After:  {self.after_bytes} bytes",
            f"Delta:  {self.delta_bytes:+d} bytes",
            f"Fee Impact: {self.fee_charged} stroops",
            "",
            "Per-Key Changes:",
        ]
        changed = [(key, delta) for key, delta in self.per_key_delta.items() if delta]
        lines.extend(f"  {key}: {delta:+d} bytes" for key, delta in changed)
        if not changed:
            lines.append("  (none)")
        return "\n".join(lines)


def apply_changes(snapshot: Mapping[LedgerKey, LedgerEntry], meta: TransactionResultMeta) -> Snapshot:
    """``snapshot`` with the meta's created, updated, restored and removed entries applied."""
    state: dict[bytes, tuple[LedgerKey, LedgerEntry]] = {key_id(k): (k, e) for k, e in snapshot.items()}
    for change in meta_changes(meta):
        if change.type in _WRITES:
            entry = change.created or change.updated or change.restored
            key = ledger_key_of(entry)
            state[key_id(key)] = (key, entry)
        elif change.type == LedgerEntryChangeType.LEDGER_ENTRY_REMOVED:
            state.pop(key_id(change.removed), None)
    return Snapshot(state.values(), len(state))


def compare(
    before: Mapping[LedgerKey, LedgerEntry],
    after: Mapping[LedgerKey, LedgerEntry],
    fee_charged: int = 0,
) -> StorageGrowthReport:
    sizes_before = {format_ledger_key(k): entry_size(e) for k, e in before.items()}
    sizes_after = {format_ledger_key(k): entry_size(e) for k, e in after.items()}
    report = StorageGrowthReport(
        before_bytes=sum(sizes_before.values()),
        after_bytes=sum(sizes_after.values()),
        fee_charged=fee_charged,
    )
    for key in sorted(sizes_before.keys() | sizes_after.keys()):
        report.per_key_delta[key] = sizes_after.get(key, 0) - sizes_before.get(key, 0)
    return report


def storage_report(request: SimulationRequest) -> StorageGrowthReport:
    """Growth report for a request; without result meta nothing changes.

    Raises:
        Base64Error, SchemaError: a ledger record or the result meta does
            not decode.
    """
    before = build_snapshot(request.ledger_entries)
    if not request.result_meta_xdr:
        return compare(before, before)

    meta = decode_b64_binary(request.result_meta_xdr, TransactionResultMeta)
    after = apply_changes(before, meta)
    report = compare(before, after, meta_fee_charged(meta))
    logger.debug("Storage grew by %d bytes across %d key(s)", report.delta_bytes, len(report.per_key_delta))
    return report
