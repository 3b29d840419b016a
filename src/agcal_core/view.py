"""Bounds-checked views over untrusted byte buffers."""
from __future__ import annotations

import struct

from .errors import MalformedDataError


class ByteView:
    """Read-only window over a byte buffer.

    Every accessor validates offset and size against the window before
    touching memory, so a length field read from the buffer can never be
    used to address past its end. Slicing is zero-copy.
    """

    __slots__ = ("_mv",)

    def __init__(self, data) -> None:
        mv = data._mv if isinstance(data, ByteView) else memoryview(data)
        self._mv = mv.cast("B") if mv.format != "B" or mv.ndim != 1 else mv

    def __len__(self) -> int:
        return len(self._mv)

    def require(self, offset: int, size: int, what: str = "field") -> None:
        if offset < 0 or size < 0 or offset + size > len(self._mv):
            raise MalformedDataError(
                "E_TRUNCATED",
                f"{what} needs {size} bytes at offset {offset}, buffer has {len(self._mv)}",
            )

    def unpack(self, fmt: str, offset: int = 0, what: str = "header") -> tuple:
        self.require(offset, struct.calcsize(fmt), what)
        return struct.unpack_from(fmt, self._mv, offset)

    def u32(self, offset: int, what: str = "u32") -> int:
        return self.unpack("<I", offset, what)[0]

    def startswith(self, magic: bytes) -> bool:
        return len(self._mv) >= len(magic) and self._mv[: len(magic)] == magic

    def slice(self, offset: int, size: int | None = None, what: str = "range") -> "ByteView":
        if size is None:
            size = len(self._mv) - offset
        self.require(offset, size, what)
        return ByteView(self._mv[offset : offset + size])

    def cstring(self, offset: int, limit: int) -> bytes:
        """Bytes from ``offset`` up to the first NUL, at most ``limit`` bytes."""
        limit = max(0, min(limit, len(self._mv) - offset))
        raw = bytes(self._mv[offset : offset + limit])
        end = raw.find(b"\x00")
        return raw if end == -1 else raw[:end]

    def memory(self) -> memoryview:
        return self._mv

    def tobytes(self) -> bytes:
        return self._mv.tobytes()
