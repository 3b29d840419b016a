"""On-camera calibration stash workflows: list, upload, download, delete, purge.

Every update is read-modify-write of the whole device file through the
multi-slot builder. There is no versioning check, so two writers racing
on one camera can overwrite each other's slot.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from warnings import warn

from agcal_archive.codec import ArchiveListing, extract_to_dir, format_listing, list_archive, pack_session
from agcal_archive.envelope import read_stash_summary
from agcal_archive.multislot import SlotIndex, build, detect_container, extract_slot, format_index, parse_index
from agcal_core.errors import CalibError, MalformedDataError, MissingContentError, SlotRangeError
from agcal_core.meta import format_summary
from agcal_core.protocol import DEFAULT_COMPRESSION_LEVEL, DEFAULT_FILE_SELECTOR, MAX_SLOTS, MULTISLOT_HEADER_SIZE
from agcal_device.file_access import (
    FeatureDevice,
    FileInfo,
    ProgressFn,
    delete_file,
    file_info,
    file_size,
    read_file,
    read_head,
    write_file,
)

Echo = Callable[[str], None]


class DeleteOutcome(enum.Enum):
    NOTHING = "nothing"            # no file, or slot already empty
    FILE_REMOVED = "file-removed"  # last slot gone, device file deleted
    SLOT_REMOVED = "slot-removed"  # other slots rewritten


@dataclass
class StashListing:
    info: FileInfo
    kind: Optional[str] = None
    index: Optional[SlotIndex] = None
    summary: Optional[dict] = None
    listing: Optional[ArchiveListing] = None


def _mb(n: int) -> float:
    return n / (1024.0 * 1024.0)


def _check_slot(slot: int) -> None:
    if not 0 <= slot < MAX_SLOTS:
        raise SlotRangeError("E_SLOT_RANGE", f"--slot must be 0..{MAX_SLOTS - 1}")


def _head(device: FeatureDevice, selector: str) -> bytes:
    """First header's worth of the device file; b"" if it cannot be read."""
    try:
        return read_head(device, selector, MULTISLOT_HEADER_SIZE)
    except CalibError as e:
        warn(f"header read failed ({e})")
        return b""


# --- list --------------------------------------------------------------------

def stash_list(device: FeatureDevice, selector: str = DEFAULT_FILE_SELECTOR,
               echo: Echo = print, progress: Optional[ProgressFn] = None) -> StashListing:
    """Storage figures plus slot contents, from the 4 KB header where possible."""
    info = file_info(device, selector)
    echo(f"Camera file storage ({selector}):")
    echo(f"  Total:     {info.storage_total:8d} bytes ({_mb(info.storage_total):.1f} MB)")
    echo(f"  Used:      {info.storage_used:8d} bytes ({_mb(info.storage_used):.1f} MB)")
    echo(f"  Available: {info.storage_free:8d} bytes ({_mb(info.storage_free):.1f} MB)")
    echo(f"  File size: {info.file_size:8d} bytes")

    result = StashListing(info=info)
    if info.file_size <= 0:
        echo("")
        echo("  No calibration data stored on camera.")
        return result

    echo("")
    head = _head(device, selector)
    result.kind = detect_container(head) if len(head) >= 4 else None

    if result.kind == "multislot":
        result.index = parse_index(head)
        lines = format_index(result.index)
    elif result.kind == "stash":
        echo("  (legacy single-slot format)")
        result.summary = read_stash_summary(head)
        lines = format_summary(result.summary) if result.summary else []
    else:
        # Unknown header: download everything and list it as an archive.
        data = read_file(device, selector, progress)
        result.listing = list_archive(data)
        lines = format_listing(result.listing)

    for line in lines:
        echo(line)
    return result


# --- upload ------------------------------------------------------------------

def stash_upload(
    device: FeatureDevice,
    session_path: Path,
    slot: int = 0,
    selector: str = DEFAULT_FILE_SELECTOR,
    compress: bool = True,
    level: int = DEFAULT_COMPRESSION_LEVEL,
    echo: Echo = print,
    progress: Optional[ProgressFn] = None,
) -> int:
    """Pack a session into ``slot``, keeping the other slots. Returns the file size written."""
    _check_slot(slot)
    echo(f"Packing calibration session: {session_path}")
    blob = pack_session(Path(session_path), compress=compress, level=level)
    echo(f"Archive size: {len(blob)} bytes ({_mb(len(blob)):.1f} MB)")

    existing = None
    if file_size(device, selector) > 0:
        echo("Reading existing calibration data...")
        existing = read_file(device, selector, progress)

    new_file = build(existing, slot, blob)

    echo(f"Writing to camera (slot {slot}, {_mb(len(new_file)):.1f} MB total)...")
    write_file(device, new_file, selector, progress)
    echo(f"Done. Calibration data written to {selector} slot {slot} ({len(blob)} bytes).")
    return len(new_file)


# --- download ----------------------------------------------------------------

def stash_download(
    device: FeatureDevice,
    output_dir: Path,
    slot: int = 0,
    selector: str = DEFAULT_FILE_SELECTOR,
    echo: Echo = print,
    progress: Optional[ProgressFn] = None,
) -> list[Path]:
    _check_slot(slot)
    echo("Reading calibration data from camera...")
    data = read_file(device, selector, progress)
    slot_data = extract_slot(data, slot)

    echo(f"Extracting slot {slot} to {output_dir}:")
    written = extract_to_dir(slot_data, Path(output_dir))
    for path in written:
        echo(f"  {path.name:<28}  {path.stat().st_size:10d} bytes")
    echo(f"Done. Calibration slot {slot} downloaded to {Path(output_dir) / 'calib_result'}/")
    return written


# --- delete ------------------------------------------------------------------

def stash_delete(
    device: FeatureDevice,
    slot: int,
    selector: str = DEFAULT_FILE_SELECTOR,
    echo: Echo = print,
    progress: Optional[ProgressFn] = None,
) -> DeleteOutcome:
    """Remove one slot.

    The header alone decides the common cases: an empty slot is a no-op,
    and removing the last occupied slot (or slot 0 of a legacy file)
    deletes the device file without downloading it. Otherwise the file is
    rebuilt without the slot and rewritten.
    """
    _check_slot(slot)
    if file_size(device, selector) <= 0:
        echo("No calibration data on camera - nothing to delete.")
        return DeleteOutcome.NOTHING

    need_full_read = True
    head = _head(device, selector)
    kind = detect_container(head) if len(head) >= 4 else None

    if kind == "stash":
        if slot != 0:
            raise MissingContentError("E_SLOT_EMPTY", "legacy single-slot file, only slot 0 exists")
        need_full_read = False
    elif kind == "multislot":
        try:
            index = parse_index(head)
        except MalformedDataError as e:
            warn(f"slot index unreadable ({e}); rebuilding from full file")
        else:
            if slot >= index.num_slots or not index.slots[slot].occupied:
                echo(f"Slot {slot} is already empty - nothing to delete.")
                return DeleteOutcome.NOTHING
            if not [i for i in index.occupied() if i != slot]:
                need_full_read = False

    if not need_full_read:
        echo(f"Removing {selector} from camera (last slot)...")
        delete_file(device, selector)
        echo(f"Done. Slot {slot} deleted. All calibration data removed.")
        return DeleteOutcome.FILE_REMOVED

    echo("Reading existing calibration data...")
    existing = read_file(device, selector, progress)
    new_file = build(existing, slot, None)

    if not new_file:
        echo(f"Removing {selector} from camera (no slots left)...")
        delete_file(device, selector)
        echo(f"Done. Slot {slot} deleted. All calibration data removed.")
        return DeleteOutcome.FILE_REMOVED

    echo(f"Writing updated calibration data (slot {slot} removed)...")
    write_file(device, new_file, selector, progress)
    echo(f"Done. Slot {slot} deleted.")
    return DeleteOutcome.SLOT_REMOVED


# --- purge -------------------------------------------------------------------

def stash_purge(device: FeatureDevice, selector: str = DEFAULT_FILE_SELECTOR,
                echo: Echo = print) -> bool:
    """Delete the whole device file. Returns False if there was nothing to purge."""
    size = file_size(device, selector)
    if size <= 0:
        echo("No calibration data on camera - nothing to purge.")
        return False
    echo(f"Purging {selector} ({size} bytes)...")
    delete_file(device, selector)
    echo(f"Done. All calibration data purged from {selector}.")
    return True
