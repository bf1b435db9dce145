"""Ledger snapshot built from the request's ``ledger_entries`` map."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping

from txsim.xdr.codec import decode_b64_binary
from txsim.xdr.ledger import LedgerEntry, LedgerKey, key_id

logger = logging.getLogger(__name__)


class Snapshot(Mapping[LedgerKey, LedgerEntry]):
    """Read-only view of the ledger state seen by the host.

    Keys compare by their canonical XDR bytes, so two encodings of the same
    logical key land on one slot. ``loaded_count`` counts decoded records,
    including ones later overwritten by a duplicate key, so it can differ
    from ``len()``.
    """

    def __init__(self, pairs: Iterable[tuple[LedgerKey, LedgerEntry]] = (), loaded_count: int = 0) -> None:
        self._entries: dict[bytes, tuple[LedgerKey, LedgerEntry]] = {}
        for key, entry in pairs:
            self._entries[key_id(key)] = (key, entry)
        self.loaded_count = loaded_count

    def __getitem__(self, key: LedgerKey) -> LedgerEntry:
        return self._entries[key_id(key)][1]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, LedgerKey) and key_id(key) in self._entries

    def __iter__(self) -> Iterator[LedgerKey]:
        return (key for key, _ in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Snapshot(entries={len(self)}, loaded={self.loaded_count})"


def build_snapshot(records: Mapping[str, str] | None) -> Snapshot:
    """Decode every ``key_b64 -> entry_b64`` pair.

    The first pair that fails to decode aborts the build. When two keys
    decode to the same logical key the later one wins.

    Raises:
        Base64Error, SchemaError: from the failing pair.
    """
    pairs: list[tuple[LedgerKey, LedgerEntry]] = []
    seen: set[bytes] = set()
    for key_text, entry_text in (records or {}).items():
        key = decode_b64_binary(key_text, LedgerKey)
        entry = decode_b64_binary(entry_text, LedgerEntry)
        if key_id(key) in seen:
            logger.debug("Duplicate ledger key %s, keeping the later entry", key.type.name)
        seen.add(key_id(key))
        pairs.append((key, entry))

    logger.info("Loaded %d ledger entries", len(pairs), extra={"entry_count": len(pairs)})
    return Snapshot(pairs, len(pairs))
