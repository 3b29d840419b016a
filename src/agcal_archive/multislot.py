"""AGMS multi-slot container.

Up to MAX_SLOTS independent AGST blobs live back-to-back after a fixed
4 KB header whose JSON index records each slot's byte range plus a few
summary fields for header-only listing. Every rebuild repacks occupied
slots contiguously in slot order.
"""
from __future__ import annotations

import json
import struct
from dataclasses import dataclass, field
from warnings import warn

from agcal_core.errors import MalformedDataError, MissingContentError, SlotRangeError
from agcal_core.meta import get_image_size, get_number
from agcal_core.protocol import (
    MAX_SLOTS,
    MULTISLOT_HEADER_SIZE,
    MULTISLOT_MAGIC,
    MULTISLOT_PREFIX_FMT,
    MULTISLOT_PREFIX_LEN,
    PACKED_AT_MAX,
    STASH_MAGIC,
)
from agcal_core.view import ByteView

from .envelope import encode_summary, read_stash_summary

_U32_MAX = 0xFFFFFFFF


@dataclass
class SlotInfo:
    occupied: bool = False
    offset: int = 0
    size: int = 0
    image_w: int = 0
    image_h: int = 0
    rms_stereo_px: float = 0.0
    packed_at: str = ""

    def to_json(self) -> dict | None:
        if not self.occupied:
            return None
        entry: dict = {"offset": self.offset, "size": self.size}
        if self.image_w > 0 and self.image_h > 0:
            entry["image_size"] = [self.image_w, self.image_h]
        if self.rms_stereo_px > 0.0:
            entry["rms_stereo_px"] = self.rms_stereo_px
        if self.packed_at:
            entry["packed_at"] = self.packed_at
        return entry

    @classmethod
    def from_json(cls, entry) -> "SlotInfo":
        """Index entry -> SlotInfo; anything without numeric offset/size is empty."""
        if not isinstance(entry, dict):
            return cls()
        offset = get_number(entry, "offset")
        size = get_number(entry, "size")
        if offset is None or size is None or offset < 0 or size < 0:
            return cls()
        return cls(occupied=True, offset=int(offset), size=int(size), **_summary_fields(entry))


@dataclass
class SlotIndex:
    num_slots: int = MAX_SLOTS
    slots: list[SlotInfo] = field(default_factory=lambda: [SlotInfo() for _ in range(MAX_SLOTS)])

    def occupied(self) -> list[int]:
        return [i for i, s in enumerate(self.slots[: self.num_slots]) if s.occupied]


def _summary_fields(root: dict) -> dict:
    size = get_image_size(root) or (0, 0)
    packed_at = root.get("packed_at")
    return {
        "image_w": size[0],
        "image_h": size[1],
        "rms_stereo_px": float(get_number(root, "rms_stereo_px", 0.0)),
        "packed_at": packed_at[:PACKED_AT_MAX] if isinstance(packed_at, str) else "",
    }


def _check_slot(slot: int) -> None:
    if not 0 <= slot < MAX_SLOTS:
        raise SlotRangeError("E_SLOT_RANGE", f"slot {slot} out of range (0..{MAX_SLOTS - 1})")


def detect_container(data) -> str | None:
    """'multislot', 'stash', or None for anything else."""
    view = ByteView(data)
    if view.startswith(MULTISLOT_MAGIC):
        return "multislot"
    if view.startswith(STASH_MAGIC):
        return "stash"
    return None


def slot_info_from_stash(blob) -> SlotInfo:
    """Summary fields from an AGST header; offset/size are left to the caller."""
    info = SlotInfo(occupied=True)
    try:
        summary = read_stash_summary(blob)
    except MalformedDataError as e:
        warn(f"Stash header unreadable ({e}); slot summary left blank")
        return info
    for k, v in _summary_fields(summary).items():
        setattr(info, k, v)
    return info


# --- Index -------------------------------------------------------------------

def parse_index(data) -> SlotIndex:
    """Parse the AGMS header. Only the first header_size bytes are required."""
    view = ByteView(data)
    magic, header_size, num_slots = view.unpack(MULTISLOT_PREFIX_FMT, 0, "multislot header")
    if magic != MULTISLOT_MAGIC:
        raise MalformedDataError("E_BAD_MAGIC", f"container magic {magic!r}")
    if header_size < MULTISLOT_PREFIX_LEN or header_size > len(view):
        raise MalformedDataError("E_INDEX", f"header_size {header_size} with {len(view)} bytes present")
    if num_slots > MAX_SLOTS:
        raise MalformedDataError("E_INDEX", f"num_slots {num_slots} > {MAX_SLOTS}")

    index = SlotIndex(num_slots=num_slots)

    text = view.cstring(MULTISLOT_PREFIX_LEN, header_size - MULTISLOT_PREFIX_LEN)
    if not text:
        return index  # no JSON: all slots empty

    try:
        root = json.loads(text.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedDataError("E_INDEX", f"index JSON: {e}") from e

    slots = root.get("slots") if isinstance(root, dict) else None
    if not isinstance(slots, list):
        raise MalformedDataError("E_INDEX", "missing 'slots' array")

    for i, entry in enumerate(slots[:num_slots]):
        index.slots[i] = SlotInfo.from_json(entry)
    return index


def format_index(index: SlotIndex) -> list[str]:
    lines = ["", f"Calibration slots ({index.num_slots} total):"]
    for i in range(index.num_slots):
        si = index.slots[i]
        if not si.occupied:
            lines.append(f"  Slot {i}: (empty)")
            continue
        line = f"  Slot {i}: {si.image_w}x{si.image_h}"
        if si.rms_stereo_px > 0.0:
            line += f"  RMS {si.rms_stereo_px:.4f} px"
        if si.packed_at:
            line += f"  packed {si.packed_at}"
        line += f"  ({si.size / 1048576.0:.1f} MB)"
        lines.append(line)
    return lines


def _encode_index(slots: list[SlotInfo]) -> bytes:
    return encode_summary(
        {"slots": [s.to_json() for s in slots]},
        header_size=MULTISLOT_HEADER_SIZE,
        prefix_len=MULTISLOT_PREFIX_LEN,
    )


# --- Build -------------------------------------------------------------------

def _existing_slots(existing) -> tuple[list[ByteView | None], list[SlotInfo]]:
    blobs: list[ByteView | None] = [None] * MAX_SLOTS
    infos = [SlotInfo() for _ in range(MAX_SLOTS)]
    if existing is None:
        return blobs, infos

    view = ByteView(existing)
    kind = detect_container(view)
    if len(view) == 0:
        return blobs, infos

    if kind == "multislot":
        index = parse_index(view)
        for i in index.occupied():
            si = index.slots[i]
            if si.offset + si.size > len(view):
                raise MalformedDataError(
                    "E_SLOT_BOUNDS",
                    f"slot {i} overflows file (offset={si.offset} size={si.size} file={len(view)})",
                )
            blobs[i] = view.slice(si.offset, si.size)
            infos[i] = si
    elif kind == "stash":
        # Legacy single-slot file: becomes slot 0.
        blobs[0] = view
        infos[0] = slot_info_from_stash(view)
    else:
        warn("Existing file has an unrecognized format; treating it as empty")
    return blobs, infos


def build(existing, slot: int, blob) -> bytes:
    """Rebuild the container with ``slot`` replaced by ``blob`` (or deleted when None).

    ``existing`` may be None/empty, a legacy AGST blob or an AGMS file.
    Returns b"" when no slot remains occupied: the caller should delete
    the backing file rather than write an empty container.
    """
    _check_slot(slot)
    blobs, infos = _existing_slots(existing)

    if blob is not None and len(blob) > 0:
        new = ByteView(blob)
        if not new.startswith(STASH_MAGIC):
            raise MalformedDataError("E_BAD_MAGIC", "slot payload must be an AGST blob")
        blobs[slot] = new
        infos[slot] = slot_info_from_stash(new)
    else:
        blobs[slot] = None
        infos[slot] = SlotInfo()

    if not any(b is not None for b in blobs):
        return b""

    # Contiguous offsets in slot order.
    write_offset = MULTISLOT_HEADER_SIZE
    for i, b in enumerate(blobs):
        if b is None:
            infos[i] = SlotInfo()
            continue
        infos[i].occupied = True
        infos[i].offset = write_offset
        infos[i].size = len(b)
        write_offset += len(b)

    if write_offset > _U32_MAX:
        raise MalformedDataError("E_TOO_LARGE", f"container would be {write_offset} bytes")

    text = _encode_index(infos)
    out = bytearray(write_offset)
    struct.pack_into(MULTISLOT_PREFIX_FMT, out, 0, MULTISLOT_MAGIC, MULTISLOT_HEADER_SIZE, MAX_SLOTS)
    out[MULTISLOT_PREFIX_LEN : MULTISLOT_PREFIX_LEN + len(text)] = text
    for i, b in enumerate(blobs):
        if b is not None:
            out[infos[i].offset : infos[i].offset + infos[i].size] = b.memory()
    return bytes(out)


# --- Extract -----------------------------------------------------------------

def extract_slot(data, slot: int) -> memoryview:
    """Byte range of one slot's AGST blob (a view into ``data``, not a copy)."""
    _check_slot(slot)
    view = ByteView(data)
    kind = detect_container(view)

    if kind == "stash":
        if slot != 0:
            raise MissingContentError("E_SLOT_EMPTY", f"legacy single-slot file has no slot {slot}")
        return view.memory()

    if kind != "multislot":
        raise MalformedDataError("E_BAD_MAGIC", "not a calibration container")

    index = parse_index(view)
    if slot >= index.num_slots or not index.slots[slot].occupied:
        raise MissingContentError("E_SLOT_EMPTY", f"slot {slot}")

    si = index.slots[slot]
    if si.offset + si.size > len(view):
        raise MalformedDataError("E_SLOT_BOUNDS", f"slot {slot} data overflows file")
    return view.slice(si.offset, si.size).memory()
