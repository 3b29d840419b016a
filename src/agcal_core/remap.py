"""Stereo rectification remap tables (RMAP) and the compact 3-byte encoding.

Standard format stores one little-endian uint32 source-pixel index per
output pixel; the all-ones sentinel marks pixels with no source. Indices
address images of at most a few megapixels, so the high byte is always
zero and the compact format (flags=1) keeps only the low three bytes.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from .errors import MalformedDataError
from .protocol import (
    REMAP_COMPACT_FLAG,
    REMAP_COMPACT_SENTINEL,
    REMAP_HEADER_FMT,
    REMAP_HEADER_LEN,
    REMAP_MAGIC,
    REMAP_MAX_DIM,
    REMAP_SENTINEL,
    REMAP_STANDARD_FLAG,
)
from .view import ByteView


@dataclass(frozen=True, eq=False)
class RemapTable:
    """Per-pixel source offsets, row-major, ``width * height`` entries."""

    width: int
    height: int
    offsets: np.ndarray

    def __post_init__(self) -> None:
        offsets = np.ascontiguousarray(self.offsets, dtype=np.uint32).reshape(-1)
        if offsets.size != self.width * self.height:
            raise MalformedDataError(
                "E_REMAP_DIMS",
                f"{offsets.size} offsets for {self.width}x{self.height}",
            )
        offsets.setflags(write=False)
        object.__setattr__(self, "offsets", offsets)

    def grid(self) -> np.ndarray:
        return self.offsets.reshape(self.height, self.width)

    def to_bytes(self) -> bytes:
        """Serialize in standard 4-byte-per-offset format."""
        header = struct.pack(REMAP_HEADER_FMT, REMAP_MAGIC, self.width, self.height, REMAP_STANDARD_FLAG)
        return header + self.offsets.astype("<u4", copy=False).tobytes()


def parse_header(data) -> tuple[int, int, int]:
    """Return ``(width, height, flags)`` after checking magic."""
    view = ByteView(data)
    magic, width, height, flags = view.unpack(REMAP_HEADER_FMT, 0, "remap header")
    if magic != REMAP_MAGIC:
        raise MalformedDataError("E_BAD_MAGIC", f"remap table magic {magic!r}")
    return width, height, flags


def is_compact(data) -> bool:
    view = ByteView(data)
    if len(view) < REMAP_HEADER_LEN:
        return False
    return view.u32(12) == REMAP_COMPACT_FLAG


def _offsets(view: ByteView, n_pixels: int, width_bytes: int) -> np.ndarray:
    need = n_pixels * width_bytes
    view.require(REMAP_HEADER_LEN, need, "remap offsets")
    return np.frombuffer(view.memory(), dtype=np.uint8, count=need, offset=REMAP_HEADER_LEN)


def compact(data) -> bytes:
    """Standard (4-byte) table -> compact (3-byte) table."""
    view = ByteView(data)
    width, height, _flags = parse_header(view)
    n_pixels = width * height

    raw = _offsets(view, n_pixels, 4)
    offsets = raw.view("<u4")
    sentinel = offsets == REMAP_SENTINEL
    if np.any(offsets[~sentinel] >= REMAP_COMPACT_SENTINEL):
        raise MalformedDataError("E_REMAP_RANGE", f"max offset {int(offsets[~sentinel].max())}")

    packed = np.where(sentinel, np.uint32(REMAP_COMPACT_SENTINEL), offsets).astype("<u4")
    low3 = packed.view(np.uint8).reshape(-1, 4)[:, :3]

    header = struct.pack(REMAP_HEADER_FMT, REMAP_MAGIC, width, height, REMAP_COMPACT_FLAG)
    return header + low3.tobytes()


def expand(data) -> bytes:
    """Compact (3-byte) table -> standard (4-byte) table.

    Refuses input that is already in standard format.
    """
    view = ByteView(data)
    width, height, flags = parse_header(view)
    if flags != REMAP_COMPACT_FLAG:
        raise MalformedDataError("E_REMAP_FORMAT", f"flags={flags}, table is not compact")
    n_pixels = width * height

    low3 = _offsets(view, n_pixels, 3).reshape(-1, 3)
    wide = np.zeros((n_pixels, 4), dtype=np.uint8)
    wide[:, :3] = low3
    offsets = wide.view("<u4").reshape(-1)
    offsets[offsets == REMAP_COMPACT_SENTINEL] = REMAP_SENTINEL

    header = struct.pack(REMAP_HEADER_FMT, REMAP_MAGIC, width, height, REMAP_STANDARD_FLAG)
    return header + offsets.tobytes()


def load_table(data) -> RemapTable:
    """Decode a remap table held in memory, expanding compact tables."""
    view = ByteView(data)
    width, height, flags = parse_header(view)
    if width == 0 or height == 0 or width > REMAP_MAX_DIM or height > REMAP_MAX_DIM:
        raise MalformedDataError("E_REMAP_DIMS", f"implausible dimensions {width}x{height}")

    if flags == REMAP_COMPACT_FLAG:
        view = ByteView(expand(view))
    elif flags != REMAP_STANDARD_FLAG:
        raise MalformedDataError("E_REMAP_FORMAT", f"unknown flags {flags}")

    n_pixels = width * height
    offsets = _offsets(view, n_pixels, 4).view("<u4").astype(np.uint32)
    return RemapTable(width=width, height=height, offsets=offsets)


def read_table(path: Path) -> RemapTable:
    return load_table(Path(path).read_bytes())


def write_table(table: RemapTable, path: Path) -> None:
    Path(path).write_bytes(table.to_bytes())
