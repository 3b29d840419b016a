"""AGCAL flat entry table.

[Magic(8) | n_entries(4)] followed by n_entries of
[name_len(4) | data_len(4) | name (NUL-terminated) | data].
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterable, Iterator

from agcal_core.errors import MalformedDataError
from agcal_core.protocol import (
    ARCHIVE_HEADER_FMT,
    ARCHIVE_HEADER_LEN,
    ARCHIVE_MAGIC,
    ENTRY_HEADER_FMT,
    ENTRY_HEADER_LEN,
)
from agcal_core.view import ByteView


@dataclass(frozen=True)
class Entry:
    name: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def build_archive(entries: Iterable[Entry]) -> bytes:
    entries = list(entries)
    seen: set[str] = set()
    out = bytearray(struct.pack(ARCHIVE_HEADER_FMT, ARCHIVE_MAGIC, len(entries)))
    for e in entries:
        if not e.name or "\x00" in e.name:
            raise MalformedDataError("E_ENTRY_NAME", repr(e.name))
        if e.name in seen:
            raise MalformedDataError("E_DUPLICATE_ENTRY", e.name)
        seen.add(e.name)

        name = e.name.encode("utf-8") + b"\x00"
        out += struct.pack(ENTRY_HEADER_FMT, len(name), len(e.data))
        out += name
        out += e.data
    return bytes(out)


def _scan(view: ByteView) -> list[tuple[str, ByteView]]:
    """Validate every entry header against the buffer before exposing any payload."""
    magic, n_entries = view.unpack(ARCHIVE_HEADER_FMT, 0, "archive header")
    if magic != ARCHIVE_MAGIC:
        raise MalformedDataError("E_BAD_MAGIC", f"archive magic {magic!r}")

    # Each entry needs at least its 8-byte header.
    remaining = len(view) - ARCHIVE_HEADER_LEN
    if n_entries * ENTRY_HEADER_LEN > remaining:
        raise MalformedDataError(
            "E_ENTRY_COUNT", f"{n_entries} entries declared, {remaining} bytes present"
        )

    found: list[tuple[str, ByteView]] = []
    names: set[str] = set()
    off = ARCHIVE_HEADER_LEN
    for i in range(n_entries):
        if off + ENTRY_HEADER_LEN > len(view):
            raise MalformedDataError("E_ENTRY_BOUNDS", f"truncated entry header at #{i}")
        name_len, data_len = view.unpack(ENTRY_HEADER_FMT, off, f"entry #{i} header")
        off += ENTRY_HEADER_LEN

        if off + name_len + data_len > len(view):
            raise MalformedDataError("E_ENTRY_BOUNDS", f"truncated entry data at #{i}")
        if name_len == 0:
            raise MalformedDataError("E_ENTRY_NAME", f"empty name at #{i}")

        raw_name = view.cstring(off, name_len)
        try:
            name = raw_name.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedDataError("E_ENTRY_NAME", f"undecodable name at #{i}") from None
        if not name:
            raise MalformedDataError("E_ENTRY_NAME", f"empty name at #{i}")
        if name in names:
            raise MalformedDataError("E_DUPLICATE_ENTRY", name)
        names.add(name)

        found.append((name, view.slice(off + name_len, data_len, f"entry {name}")))
        off += name_len + data_len

    return found


def read_entries(data) -> list[Entry]:
    """Decode every entry; the whole archive is rejected on the first bad header."""
    return [Entry(name, payload.tobytes()) for name, payload in _scan(ByteView(data))]


def iter_entries(data) -> Iterator[tuple[str, ByteView]]:
    """Yield ``(name, payload view)`` pairs without copying payloads.

    The archive is fully validated before the first pair is yielded.
    """
    yield from _scan(ByteView(data))
