"""Little-endian byte cursor shared by the WASM and DWARF parsers."""

from __future__ import annotations

import struct

from txsim.core.errors import ModuleFormatError


class ByteCursor:
    """Bounds-checked cursor; every overrun raises :class:`ModuleFormatError`."""

    def __init__(self, data: bytes, pos: int = 0, end: int | None = None, what: str = "module") -> None:
        self.data = data
        self.pos = pos
        self.end = len(data) if end is None else end
        self.what = what
        if self.end > len(data):
            raise ModuleFormatError(f"{what} extends past the end of its section")

    @property
    def remaining(self) -> int:
        return self.end - self.pos

    def at_end(self) -> bool:
        return self.pos >= self.end

    def take(self, n: int) -> bytes:
        if n < 0 or n > self.remaining:
            raise ModuleFormatError(
                f"truncated {self.what}: need {n} bytes at offset {self.pos}, {self.remaining} left"
            )
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def i8(self) -> int:
        return struct.unpack("<b", self.take(1))[0]

    def u16(self) -> int:
        return struct.unpack("<H", self.take(2))[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self.take(8))[0]

    def uint(self, size: int) -> int:
        return int.from_bytes(self.take(size), "little")

    def uleb128(self, max_bytes: int = 10) -> int:
        result = 0
        shift = 0
        for _ in range(max_bytes):
            byte = self.u8()
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
            shift += 7
        raise ModuleFormatError(f"LEB128 value in {self.what} longer than {max_bytes} bytes")

    def sleb128(self, max_bytes: int = 10) -> int:
        result = 0
        shift = 0
        for _ in range(max_bytes):
            byte = self.u8()
            result |= (byte & 0x7F) << shift
            shift += 7
            if not byte & 0x80:
                if byte & 0x40:
                    result -= 1 << shift
                return result
        raise ModuleFormatError(f"LEB128 value in {self.what} longer than {max_bytes} bytes")

    def cstring(self) -> str:
        nul = self.data.find(b"\x00", self.pos, self.end)
        if nul < 0:
            raise ModuleFormatError(f"unterminated string in {self.what} at offset {self.pos}")
        raw = self.data[self.pos:nul]
        self.pos = nul + 1
        return raw.decode("utf-8", errors="replace")
