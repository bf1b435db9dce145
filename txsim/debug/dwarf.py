"""DWARF ``.debug_line`` decoder.

Runs the line-number state machine of every unit in the section and returns
the emitted rows grouped into sequences. Supports DWARF versions 2 to 5 in
both the 32-bit and 64-bit formats. Version 5 string forms are resolved
against ``.debug_line_str`` / ``.debug_str`` when those sections are given.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field

from txsim.core.errors import ModuleFormatError
from txsim.debug.reader import ByteCursor

logger = logging.getLogger(__name__)


# ── Opcodes & forms ──────────────────────────────────────────────────────────

DW_LNS_COPY = 0x01
DW_LNS_ADVANCE_PC = 0x02
DW_LNS_ADVANCE_LINE = 0x03
DW_LNS_SET_FILE = 0x04
DW_LNS_SET_COLUMN = 0x05
DW_LNS_NEGATE_STMT = 0x06
DW_LNS_SET_BASIC_BLOCK = 0x07
DW_LNS_CONST_ADD_PC = 0x08
DW_LNS_FIXED_ADVANCE_PC = 0x09
DW_LNS_SET_PROLOGUE_END = 0x0A
DW_LNS_SET_EPILOGUE_BEGIN = 0x0B
DW_LNS_SET_ISA = 0x0C

DW_LNE_END_SEQUENCE = 0x01
DW_LNE_SET_ADDRESS = 0x02
DW_LNE_DEFINE_FILE = 0x03
DW_LNE_SET_DISCRIMINATOR = 0x04

DW_LNCT_PATH = 0x1
DW_LNCT_DIRECTORY_INDEX = 0x2

DW_FORM_BLOCK2 = 0x03
DW_FORM_BLOCK4 = 0x04
DW_FORM_DATA2 = 0x05
DW_FORM_DATA4 = 0x06
DW_FORM_DATA8 = 0x07
DW_FORM_STRING = 0x08
DW_FORM_BLOCK = 0x09
DW_FORM_BLOCK1 = 0x0A
DW_FORM_DATA1 = 0x0B
DW_FORM_FLAG = 0x0C
DW_FORM_SDATA = 0x0D
DW_FORM_STRP = 0x0E
DW_FORM_UDATA = 0x0F
DW_FORM_DATA16 = 0x1E
DW_FORM_LINE_STRP = 0x1F

_FIXED_FORM_SIZES = {
    DW_FORM_DATA1: 1,
    DW_FORM_FLAG: 1,
    DW_FORM_DATA2: 2,
    DW_FORM_DATA4: 4,
    DW_FORM_DATA8: 8,
    DW_FORM_DATA16: 16,
}


# ── Data Classes ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FileEntry:
    name: str
    dir_index: int = 0


@dataclass(frozen=True)
class LineRow:
    """One row of the line table."""
    address: int
    file: str
    line: int
    column: int | None = None
    end_sequence: bool = False


@dataclass
class LineSequence:
    """Rows of one contiguous address sequence.

    ``terminated`` is False when the unit ended before ``DW_LNE_end_sequence``;
    the last row then has no known end address.
    """
    rows: list[LineRow] = field(default_factory=list)
    terminated: bool = True


@dataclass
class LineProgramHeader:
    version: int
    offset_size: int
    minimum_instruction_length: int
    default_is_stmt: bool
    line_base: int
    line_range: int
    opcode_base: int
    standard_opcode_lengths: list[int]
    include_directories: list[str] = field(default_factory=list)
    file_names: list[FileEntry] = field(default_factory=list)

    def file_path(self, index: int) -> str:
        """Resolve a file register value to a path.

        DWARF 5 numbers files from 0, earlier versions from 1. Directory 0 is
        the compilation directory, which is left implicit.
        """
        slot = index if self.version >= 5 else index - 1
        if slot < 0 or slot >= len(self.file_names):
            return "<unknown>"
        entry = self.file_names[slot]
        if entry.dir_index == 0 or posixpath.isabs(entry.name):
            return entry.name
        dir_slot = entry.dir_index if self.version >= 5 else entry.dir_index - 1
        if 0 <= dir_slot < len(self.include_directories):
            return posixpath.join(self.include_directories[dir_slot], entry.name)
        return entry.name


# ── Header parsing ───────────────────────────────────────────────────────────


def _string_at(section: bytes, offset: int, name: str) -> str:
    if offset >= len(section):
        raise ModuleFormatError(f"string offset {offset:#x} outside {name}")
    return ByteCursor(section, offset, what=name).cstring()


class _FormReader:
    def __init__(self, cur: ByteCursor, offset_size: int, line_str: bytes, str_section: bytes) -> None:
        self.cur = cur
        self.offset_size = offset_size
        self.line_str = line_str
        self.str_section = str_section

    def read(self, form: int) -> int | str | bytes:
        cur = self.cur
        if form == DW_FORM_STRING:
            return cur.cstring()
        if form == DW_FORM_LINE_STRP:
            return _string_at(self.line_str, cur.uint(self.offset_size), ".debug_line_str")
        if form == DW_FORM_STRP:
            return _string_at(self.str_section, cur.uint(self.offset_size), ".debug_str")
        if form == DW_FORM_UDATA:
            return cur.uleb128()
        if form == DW_FORM_SDATA:
            return cur.sleb128()
        if form in _FIXED_FORM_SIZES:
            return cur.uint(_FIXED_FORM_SIZES[form])
        if form == DW_FORM_BLOCK:
            return cur.take(cur.uleb128())
        if form == DW_FORM_BLOCK1:
            return cur.take(cur.u8())
        if form == DW_FORM_BLOCK2:
            return cur.take(cur.u16())
        if form == DW_FORM_BLOCK4:
            return cur.take(cur.u32())
        raise ModuleFormatError(f"unsupported DWARF form {form:#x} in line table header")

    def entries(self) -> list[dict[int, int | str | bytes]]:
        cur = self.cur
        formats = [(cur.uleb128(), cur.uleb128()) for _ in range(cur.u8())]
        count = cur.uleb128()
        return [{content: self.read(form) for content, form in formats} for _ in range(count)]


def _entry_path(entry: dict[int, int | str | bytes]) -> str:
    path = entry.get(DW_LNCT_PATH, "")
    if not isinstance(path, str):
        raise ModuleFormatError("DW_LNCT_path must use a string form")
    return path


def _entry_directory(entry: dict[int, int | str | bytes]) -> int:
    index = entry.get(DW_LNCT_DIRECTORY_INDEX, 0)
    if not isinstance(index, int) or index < 0:
        raise ModuleFormatError("DW_LNCT_directory_index must be an unsigned constant")
    return index


def _parse_header(
    cur: ByteCursor, version: int, offset_size: int, line_str: bytes, str_section: bytes,
) -> LineProgramHeader:
    min_inst = cur.u8()
    if version >= 4:
        cur.u8()  # maximum_operations_per_instruction; VLIW is not used by WASM
    default_is_stmt = cur.u8() != 0
    line_base = cur.i8()
    line_range = cur.u8()
    opcode_base = cur.u8()
    if line_range == 0:
        raise ModuleFormatError("line_range of 0 in line table header")
    if opcode_base == 0:
        raise ModuleFormatError("opcode_base of 0 in line table header")
    lengths = [cur.u8() for _ in range(opcode_base - 1)]

    header = LineProgramHeader(
        version=version,
        offset_size=offset_size,
        minimum_instruction_length=min_inst,
        default_is_stmt=default_is_stmt,
        line_base=line_base,
        line_range=line_range,
        opcode_base=opcode_base,
        standard_opcode_lengths=lengths,
    )

    if version >= 5:
        forms = _FormReader(cur, offset_size, line_str, str_section)
        for entry in forms.entries():
            header.include_directories.append(_entry_path(entry))
        for entry in forms.entries():
            header.file_names.append(FileEntry(_entry_path(entry), _entry_directory(entry)))
        return header

    while True:
        directory = cur.cstring()
        if not directory:
            break
        header.include_directories.append(directory)
    while True:
        name = cur.cstring()
        if not name:
            break
        dir_index = cur.uleb128()
        cur.uleb128()  # mtime
        cur.uleb128()  # length
        header.file_names.append(FileEntry(name, dir_index))
    return header


# ── State machine ────────────────────────────────────────────────────────────


class _Registers:
    __slots__ = ("address", "file", "line", "column")

    def __init__(self) -> None:
        self.address = 0
        self.file = 1
        self.line = 1
        self.column = 0


def _run_program(cur: ByteCursor, header: LineProgramHeader) -> list[LineSequence]:
    sequences: list[LineSequence] = []
    current = LineSequence()
    regs = _Registers()
    min_inst = header.minimum_instruction_length

    def emit(end_sequence: bool = False) -> None:
        current.rows.append(
            LineRow(
                address=regs.address,
                file=header.file_path(regs.file),
                line=regs.line,
                column=regs.column or None,
                end_sequence=end_sequence,
            )
        )

    while not cur.at_end():
        opcode = cur.u8()

        if opcode >= header.opcode_base:
            adjusted = opcode - header.opcode_base
            regs.address += (adjusted // header.line_range) * min_inst
            regs.line += header.line_base + adjusted % header.line_range
            emit()

        elif opcode == 0:
            length = cur.uleb128()
            if length == 0:
                continue
            end = cur.pos + length
            if end > cur.end:
                raise ModuleFormatError(f"extended opcode at offset {cur.pos} overruns the line program")
            sub = cur.u8()
            if sub == DW_LNE_END_SEQUENCE:
                emit(end_sequence=True)
                sequences.append(current)
                current = LineSequence()
                regs = _Registers()
            elif sub == DW_LNE_SET_ADDRESS:
                regs.address = cur.uint(length - 1)
            elif sub == DW_LNE_DEFINE_FILE:
                name = cur.cstring()
                dir_index = cur.uleb128()
                header.file_names.append(FileEntry(name, dir_index))
            cur.pos = end

        elif opcode == DW_LNS_COPY:
            emit()
        elif opcode == DW_LNS_ADVANCE_PC:
            regs.address += cur.uleb128() * min_inst
        elif opcode == DW_LNS_ADVANCE_LINE:
            regs.line += cur.sleb128()
        elif opcode == DW_LNS_SET_FILE:
            regs.file = cur.uleb128()
        elif opcode == DW_LNS_SET_COLUMN:
            regs.column = cur.uleb128()
        elif opcode == DW_LNS_CONST_ADD_PC:
            regs.address += ((255 - header.opcode_base) // header.line_range) * min_inst
        elif opcode == DW_LNS_FIXED_ADVANCE_PC:
            regs.address += cur.u16()
        elif opcode in (
            DW_LNS_NEGATE_STMT,
            DW_LNS_SET_BASIC_BLOCK,
            DW_LNS_SET_PROLOGUE_END,
            DW_LNS_SET_EPILOGUE_BEGIN,
        ):
            pass
        else:
            # DW_LNS_set_isa and vendor opcodes: skip their ULEB operands.
            for _ in range(header.standard_opcode_lengths[opcode - 1]):
                cur.uleb128()

    if current.rows:
        current.terminated = False
        sequences.append(current)
    return sequences


def parse_line_programs(
    debug_line: bytes,
    line_str: bytes = b"",
    str_section: bytes = b"",
) -> list[LineSequence]:
    """Decode every line-number program unit in ``debug_line``.

    Raises:
        ModuleFormatError: on any malformed header or program.
    """
    sequences: list[LineSequence] = []
    pos = 0
    units = 0
    while pos < len(debug_line):
        if not any(debug_line[pos:]):
            break  # trailing alignment padding
        cur = ByteCursor(debug_line, pos, what=".debug_line")
        unit_length = cur.u32()
        offset_size = 4
        if unit_length == 0xFFFFFFFF:
            unit_length = cur.u64()
            offset_size = 8
        elif unit_length >= 0xFFFFFFF0:
            raise ModuleFormatError(f"reserved unit length {unit_length:#x} in .debug_line")
        unit_end = cur.pos + unit_length
        if unit_end > len(debug_line):
            raise ModuleFormatError(f"line program unit at offset {pos} overruns .debug_line")

        unit = ByteCursor(debug_line, cur.pos, unit_end, what=".debug_line unit")
        version = unit.u16()
        if version not in (2, 3, 4, 5):
            raise ModuleFormatError(f"unsupported DWARF line table version {version}")
        if version >= 5:
            unit.u8()  # address_size
            unit.u8()  # segment_selector_size
        header_length = unit.uint(offset_size)
        program_start = unit.pos + header_length
        if program_start > unit_end:
            raise ModuleFormatError(f"line table header at offset {pos} overruns its unit")

        header = _parse_header(
            ByteCursor(debug_line, unit.pos, program_start, what="line table header"),
            version,
            offset_size,
            line_str,
            str_section,
        )
        sequences.extend(_run_program(ByteCursor(debug_line, program_start, unit_end, what="line program"), header))
        units += 1
        pos = unit_end

    logger.debug("Decoded %d line program unit(s), %d sequence(s)", units, len(sequences))
    return sequences
