"""AGCZ compression envelope and AGST fixed-size stash header.

Unpacking accepts a stash, a bare envelope or a bare archive: known
prefixes are peeled in priority order and the result records which layers
were found.
"""
from __future__ import annotations

import enum
import json
import struct
import zlib
from dataclasses import dataclass

from agcal_core.errors import MalformedDataError
from agcal_core.protocol import (
    ARCHIVE_MAGIC,
    DEFAULT_COMPRESSION_LEVEL,
    DEFAULT_MAX_ARCHIVE_SIZE,
    ENVELOPE_HEADER_FMT,
    ENVELOPE_HEADER_LEN,
    ENVELOPE_MAGIC,
    STASH_HEADER_SIZE,
    STASH_MAGIC,
    STASH_PREFIX_FMT,
    STASH_PREFIX_LEN,
)
from agcal_core.view import ByteView


class Layer(enum.Enum):
    STASH = "AGST"
    ENVELOPE = "AGCZ"
    ARCHIVE = "AGCAL"


@dataclass(frozen=True)
class Decoded:
    """Archive bytes recovered from a stored blob."""

    archive: ByteView
    layers: tuple[Layer, ...]
    stored_size: int

    @property
    def compressed(self) -> bool:
        return Layer.ENVELOPE in self.layers


# --- AGCZ --------------------------------------------------------------------

def compress_archive(raw: bytes, level: int = DEFAULT_COMPRESSION_LEVEL) -> bytes:
    """Wrap a raw archive in an AGCZ envelope. Raises zlib.error on failure."""
    header = struct.pack(ENVELOPE_HEADER_FMT, ENVELOPE_MAGIC, len(raw))
    return header + zlib.compress(raw, level)


def decompress_envelope(data, max_size: int = DEFAULT_MAX_ARCHIVE_SIZE) -> bytes:
    view = ByteView(data)
    magic, declared = view.unpack(ENVELOPE_HEADER_FMT, 0, "envelope header")
    if magic != ENVELOPE_MAGIC:
        raise MalformedDataError("E_BAD_MAGIC", f"envelope magic {magic!r}")

    # Zip bomb protection
    if declared > max_size:
        raise MalformedDataError("E_TOO_LARGE", f"uncompressed size {declared} > {max_size}")

    d = zlib.decompressobj()
    try:
        # One byte of headroom so an over-long stream is detected, not clipped.
        out = d.decompress(view.memory()[ENVELOPE_HEADER_LEN:], declared + 1)
    except zlib.error as e:
        raise MalformedDataError("E_INFLATE", str(e)) from e

    if not d.eof:
        raise MalformedDataError("E_INFLATE", "compressed stream truncated or overlong")
    if len(out) != declared:
        raise MalformedDataError("E_SIZE_MISMATCH", f"declared {declared}, inflated {len(out)}")
    return out


# --- AGST --------------------------------------------------------------------

def encode_summary(summary: dict | None, header_size: int = STASH_HEADER_SIZE, prefix_len: int = STASH_PREFIX_LEN) -> bytes:
    """Serialize a JSON summary to fit a fixed header, NUL terminator included."""
    if not summary:
        return b""
    room = header_size - prefix_len - 1
    text = json.dumps(summary, indent=2, ensure_ascii=False).encode("utf-8")
    if len(text) > room:
        text = json.dumps(summary, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    if len(text) > room:
        raise MalformedDataError("E_HEADER_OVERFLOW", f"{len(text)} > {room} bytes")
    return text


def build_stash(summary: dict | None, payload: bytes) -> bytes:
    text = encode_summary(summary)
    header = bytearray(STASH_HEADER_SIZE)
    struct.pack_into(STASH_PREFIX_FMT, header, 0, STASH_MAGIC, STASH_HEADER_SIZE)
    header[STASH_PREFIX_LEN : STASH_PREFIX_LEN + len(text)] = text
    return bytes(header) + payload


def stash_header_size(view: ByteView) -> int:
    magic, header_size = view.unpack(STASH_PREFIX_FMT, 0, "stash header")
    if magic != STASH_MAGIC:
        raise MalformedDataError("E_BAD_MAGIC", f"stash magic {magic!r}")
    if header_size < STASH_PREFIX_LEN or header_size > len(view):
        raise MalformedDataError(
            "E_TRUNCATED", f"stash header_size {header_size} with {len(view)} bytes present"
        )
    return header_size


def read_stash_summary(data) -> dict:
    """Summary JSON from a stash header; only the header bytes are needed.

    An empty summary yields ``{}``.
    """
    view = ByteView(data)
    magic, header_size = view.unpack(STASH_PREFIX_FMT, 0, "stash header")
    if magic != STASH_MAGIC:
        raise MalformedDataError("E_BAD_MAGIC", f"stash magic {magic!r}")

    limit = min(len(view), header_size) - STASH_PREFIX_LEN
    text = view.cstring(STASH_PREFIX_LEN, limit)
    if not text:
        return {}
    try:
        root = json.loads(text.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedDataError("E_HEADER_JSON", str(e)) from e
    if not isinstance(root, dict):
        raise MalformedDataError("E_HEADER_JSON", "summary is not an object")
    return root


# --- Layer detection ---------------------------------------------------------

def detect_layer(data) -> Layer | None:
    """Outermost layer by magic, in priority order; ``None`` if unrecognised."""
    view = ByteView(data)
    if view.startswith(STASH_MAGIC):
        return Layer.STASH
    if view.startswith(ENVELOPE_MAGIC):
        return Layer.ENVELOPE
    return Layer.ARCHIVE if view.startswith(ARCHIVE_MAGIC) else None


def strip_layers(data, max_size: int = DEFAULT_MAX_ARCHIVE_SIZE) -> Decoded:
    """Peel stash header then compression envelope; whatever is left is
    assumed to be a raw archive and is validated by the archive reader.
    """
    view = ByteView(data)
    stored = len(view)
    layers: list[Layer] = []

    layer = detect_layer(view)
    if layer is Layer.STASH:
        view = view.slice(stash_header_size(view))
        layers.append(Layer.STASH)
        layer = detect_layer(view)

    if layer is Layer.ENVELOPE:
        view = ByteView(decompress_envelope(view, max_size))
        layers.append(Layer.ENVELOPE)

    layers.append(Layer.ARCHIVE)
    return Decoded(archive=view, layers=tuple(layers), stored_size=stored)
