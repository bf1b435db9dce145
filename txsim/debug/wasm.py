"""WebAssembly container parsing: just enough to find custom sections.

Layout: ``\\0asm`` magic, a little-endian u32 version, then a sequence of
sections ``(id: u8, size: uleb128, payload)``. Custom sections (id 0) start
their payload with a uleb128-prefixed UTF-8 name; DWARF data lives in custom
sections named ``.debug_*``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from txsim.core.errors import ModuleFormatError
from txsim.debug.reader import ByteCursor

logger = logging.getLogger(__name__)

WASM_MAGIC = b"\x00asm"
WASM_VERSION = 1
CUSTOM_SECTION_ID = 0


@dataclass
class WasmModule:
    """Section inventory of a compiled module."""

    size: int
    section_ids: list[int] = field(default_factory=list)
    custom_sections: dict[str, bytes] = field(default_factory=dict)

    def custom_section(self, name: str) -> bytes | None:
        return self.custom_sections.get(name)

    @property
    def has_debug_info(self) -> bool:
        return ".debug_line" in self.custom_sections


def parse_wasm_module(data: bytes) -> WasmModule:
    """Walk the section list of ``data``.

    Raises:
        ModuleFormatError: bad magic/version or a section that overruns the
            module.
    """
    if len(data) < 8 or data[:4] != WASM_MAGIC:
        raise ModuleFormatError("not a WebAssembly module (bad magic)")
    cur = ByteCursor(data, 4, what="module")
    version = cur.u32()
    if version != WASM_VERSION:
        raise ModuleFormatError(f"unsupported WebAssembly version {version}")

    module = WasmModule(size=len(data))
    while not cur.at_end():
        section_id = cur.u8()
        size = cur.uleb128(max_bytes=5)
        if size > cur.remaining:
            raise ModuleFormatError(
                f"section {section_id} at offset {cur.pos} declares {size} bytes, {cur.remaining} left"
            )
        payload_end = cur.pos + size
        module.section_ids.append(section_id)
        if section_id == CUSTOM_SECTION_ID:
            section = ByteCursor(data, cur.pos, payload_end, what="custom section")
            name_len = section.uleb128(max_bytes=5)
            name = section.take(name_len).decode("utf-8", errors="replace")
            # First occurrence wins when a name repeats.
            module.custom_sections.setdefault(name, data[section.pos:payload_end])
        cur.pos = payload_end

    logger.debug(
        "Parsed WASM module: %d bytes, %d sections, custom=%s",
        module.size,
        len(module.section_ids),
        sorted(module.custom_sections),
    )
    return module
