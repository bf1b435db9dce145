"""Offset-to-source symbol table built from a module's DWARF line programs.

The table is a sorted, non-overlapping tuple of :class:`SymbolRange`. Lookup
is a binary search for the range with the largest start not exceeding the
offset; that range matches when it is open-ended or its end lies past the
offset.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from collections.abc import Iterable
from dataclasses import dataclass, replace

from txsim.core.types import SourceLocation
from txsim.debug.dwarf import LineSequence, parse_line_programs
from txsim.debug.wasm import parse_wasm_module

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SymbolRange:
    """``[start_offset, end_offset)`` mapped to a source position.

    ``end_offset`` is None for an open-ended range.
    """

    start_offset: int
    end_offset: int | None
    file: str
    line: int
    column: int | None = None

    def contains(self, offset: int) -> bool:
        if offset < self.start_offset:
            return False
        return self.end_offset is None or offset < self.end_offset

    @property
    def location(self) -> SourceLocation:
        return SourceLocation(file=self.file, line=self.line, column=self.column)


def ranges_from_sequences(sequences: Iterable[LineSequence]) -> list[SymbolRange]:
    """Turn line-table rows into ranges, in definition order.

    Each row covers up to the next row's address. Rows with a line of 0 (or
    below, after a bogus line advance) carry no source position and produce
    nothing. The last row of a sequence that was never terminated produces
    an open-ended range.
    """
    ranges: list[SymbolRange] = []
    for seq in sequences:
        rows = seq.rows
        for i, row in enumerate(rows):
            if row.end_sequence or row.line <= 0:
                continue
            if i + 1 < len(rows):
                end = rows[i + 1].address
                if end <= row.address:
                    continue
            elif seq.terminated:
                continue
            else:
                end = None
            ranges.append(SymbolRange(row.address, end, row.file, row.line, row.column))
    return ranges


def _gaps(rng: SymbolRange, limit: int | None, closed: list[SymbolRange]) -> list[SymbolRange]:
    """Pieces of ``[rng.start_offset, limit)`` not covered by ``closed`` (sorted, disjoint)."""
    pieces: list[SymbolRange] = []
    cursor = rng.start_offset
    for other in closed:
        if limit is not None and cursor >= limit:
            return pieces
        if other.end_offset <= cursor:
            continue
        if other.start_offset > cursor:
            end = other.start_offset if limit is None else min(other.start_offset, limit)
            pieces.append(replace(rng, start_offset=cursor, end_offset=end))
        cursor = max(cursor, other.end_offset)
    if limit is None or cursor < limit:
        pieces.append(replace(rng, start_offset=cursor, end_offset=limit))
    return pieces


class DebugSymbolTable:
    """Immutable, sorted, non-overlapping symbol ranges.

    Closed ranges are merged first; where they overlap the earlier start
    keeps the overlap (equal starts keep the first-defined range). Open-ended
    ranges then fill whatever no closed range covers, each from its own start
    up to the next open range's start.
    """

    def __init__(self, ranges: Iterable[SymbolRange] = ()) -> None:
        # Stable sort keeps definition order among equal starts.
        ordered = sorted(ranges, key=lambda r: r.start_offset)

        closed: list[SymbolRange] = []
        claimed = 0  # offsets below this belong to an earlier range
        for rng in ordered:
            if rng.end_offset is None:
                continue
            start = max(rng.start_offset, claimed)
            if rng.end_offset <= start:
                continue
            closed.append(replace(rng, start_offset=start) if start != rng.start_offset else rng)
            claimed = rng.end_offset

        open_ended: dict[int, SymbolRange] = {}
        for rng in ordered:
            if rng.end_offset is None:
                open_ended.setdefault(rng.start_offset, rng)
        heads = list(open_ended.values())

        fills: list[SymbolRange] = []
        for i, rng in enumerate(heads):
            limit = heads[i + 1].start_offset if i + 1 < len(heads) else None
            fills.extend(_gaps(rng, limit, closed))

        merged = sorted(closed + fills, key=lambda r: r.start_offset)
        self._ranges: tuple[SymbolRange, ...] = tuple(merged)
        self._starts: tuple[int, ...] = tuple(r.start_offset for r in merged)

    @property
    def ranges(self) -> tuple[SymbolRange, ...]:
        return self._ranges

    def __len__(self) -> int:
        return len(self._ranges)

    def __iter__(self):
        return iter(self._ranges)

    def has_debug_symbols(self) -> bool:
        return bool(self._ranges)

    def resolve(self, offset: int) -> SourceLocation | None:
        """Map ``offset`` to the closest preceding range that covers it."""
        idx = bisect_right(self._starts, offset) - 1
        if idx < 0:
            return None
        candidate = self._ranges[idx]
        if candidate.end_offset is not None and offset >= candidate.end_offset:
            return None
        return candidate.location


def build_symbol_table(module_bytes: bytes) -> DebugSymbolTable:
    """Build the table for a compiled module.

    A module without a ``.debug_line`` section yields an empty table.

    Raises:
        ModuleFormatError: malformed container or line programs.
    """
    module = parse_wasm_module(module_bytes)
    if not module.has_debug_info:
        logger.info("Module has no .debug_line section; source mapping disabled")
        return DebugSymbolTable()

    sequences = parse_line_programs(
        module.custom_section(".debug_line"),
        line_str=module.custom_section(".debug_line_str") or b"",
        str_section=module.custom_section(".debug_str") or b"",
    )
    table = DebugSymbolTable(ranges_from_sequences(sequences))
    logger.info("Loaded %d debug symbol range(s)", len(table))
    return table


class DebugSymbolMapper:
    """Resolves host fault offsets to source locations for one module."""

    def __init__(self, module_bytes: bytes) -> None:
        self.table = build_symbol_table(module_bytes)

    @classmethod
    def from_table(cls, table: DebugSymbolTable) -> "DebugSymbolMapper":
        mapper = cls.__new__(cls)
        mapper.table = table
        return mapper

    def has_debug_symbols(self) -> bool:
        return self.table.has_debug_symbols()

    def resolve(self, offset: int) -> SourceLocation | None:
        return self.table.resolve(offset)
