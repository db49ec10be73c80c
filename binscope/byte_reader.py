"""
Bounds-checked field reader over an immutable buffer.

Every multi-byte read goes through here so a parser can never index
past the end of the file: an out-of-range read raises TruncationError
instead of returning short data. The byte order is fixed per reader;
ELF and Mach-O create one after they have sniffed the file's encoding.
"""

import struct

from .errors import TruncationError

_LE = {1: struct.Struct("<B"), 2: struct.Struct("<H"), 4: struct.Struct("<I"), 8: struct.Struct("<Q")}
_BE = {1: struct.Struct(">B"), 2: struct.Struct(">H"), 4: struct.Struct(">I"), 8: struct.Struct(">Q")}
_I32 = {True: struct.Struct("<i"), False: struct.Struct(">i")}


class ByteReader:
    """
    Endian-aware reads from `data` (bytes, bytearray or mmap).

    Usage:
        r = ByteReader(data, little_endian=True)
        magic = r.u16(0)
        entry = r.uint(24, 8)      # pointer-width read
    """

    def __init__(self, data, little_endian: bool = True):
        self._data = data
        self._size = len(data)
        self.little_endian = little_endian
        self._fmt = _LE if little_endian else _BE

    @property
    def size(self) -> int:
        return self._size

    def with_endian(self, little_endian: bool) -> "ByteReader":
        return ByteReader(self._data, little_endian)

    def remaining(self, offset: int) -> int:
        """Bytes available from `offset` to the end (0 if past it)."""
        return max(0, self._size - offset)

    def has(self, offset: int, size: int) -> bool:
        return offset >= 0 and size >= 0 and offset + size <= self._size

    def _check(self, offset: int, size: int):
        if not self.has(offset, size):
            raise TruncationError(
                f"read of {size} bytes at 0x{offset:X} runs past end "
                f"of buffer (0x{self._size:X})",
                offset=offset, size=size,
            )

    # ── Integers ──

    def uint(self, offset: int, width: int) -> int:
        """Unsigned integer of 1, 2, 4 or 8 bytes."""
        self._check(offset, width)
        return self._fmt[width].unpack_from(self._data, offset)[0]

    def u8(self, offset: int) -> int:
        return self.uint(offset, 1)

    def u16(self, offset: int) -> int:
        return self.uint(offset, 2)

    def u32(self, offset: int) -> int:
        return self.uint(offset, 4)

    def u64(self, offset: int) -> int:
        return self.uint(offset, 8)

    def i32(self, offset: int) -> int:
        self._check(offset, 4)
        return _I32[self.little_endian].unpack_from(self._data, offset)[0]

    # ── Bytes & strings ──

    def bytes_at(self, offset: int, size: int) -> bytes:
        self._check(offset, size)
        return bytes(self._data[offset:offset + size])

    def fixed_string(self, offset: int, length: int) -> str:
        """Fixed-width field, cut at the first NUL (e.g. PE/Mach-O names)."""
        raw = self.bytes_at(offset, length)
        nul = raw.find(b"\x00")
        if nul != -1:
            raw = raw[:nul]
        return raw.decode("latin-1")

    def cstring(self, offset: int, limit: int = 256) -> str:
        """
        NUL-terminated string, bounded by `limit` and by the buffer end.

        A string that runs into the end of the buffer is returned as-is
        (truncated), not treated as an error.
        """
        if offset < 0 or offset >= self._size:
            raise TruncationError(
                f"string offset 0x{offset:X} outside buffer", offset=offset)
        end = min(self._size, offset + limit)
        raw = bytes(self._data[offset:end])
        nul = raw.find(b"\x00")
        if nul != -1:
            raw = raw[:nul]
        return raw.decode("latin-1")
