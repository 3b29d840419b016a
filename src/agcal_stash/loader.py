"""Unified calibration loader: a local session directory or an on-camera slot."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from warnings import warn

from agcal_archive.codec import unpack
from agcal_archive.multislot import extract_slot
from agcal_core.errors import SlotRangeError
from agcal_core.meta import CalibMeta, load_meta
from agcal_core.protocol import CALIB_RESULT_DIR, DEFAULT_FILE_SELECTOR, MAX_SLOTS, REMAP_LEFT, REMAP_RIGHT
from agcal_core.remap import RemapTable, read_table
from agcal_device.file_access import FeatureDevice, ProgressFn, read_file


@dataclass(frozen=True)
class CalibSource:
    """Exactly one of ``local_path`` / ``slot``."""

    local_path: Optional[Path] = None
    slot: Optional[int] = None

    def __post_init__(self) -> None:
        if (self.local_path is None) == (self.slot is None):
            raise ValueError("specify exactly one of local_path or slot")
        if self.slot is not None and not 0 <= self.slot < MAX_SLOTS:
            raise SlotRangeError("E_SLOT_RANGE", f"slot {self.slot} out of range (0..{MAX_SLOTS - 1})")

    @classmethod
    def local(cls, path) -> "CalibSource":
        return cls(local_path=Path(path))

    @classmethod
    def camera(cls, slot: int) -> "CalibSource":
        return cls(slot=slot)


@dataclass
class LoadedCalibration:
    left: RemapTable
    right: RemapTable
    meta: CalibMeta = field(default_factory=CalibMeta)


def _load_local(session_path: Path) -> LoadedCalibration:
    result_dir = session_path / CALIB_RESULT_DIR
    left = read_table(result_dir / REMAP_LEFT)
    right = read_table(result_dir / REMAP_RIGHT)

    try:
        meta = load_meta(session_path)
    except OSError as e:
        warn(f"cannot read calibration metadata in {session_path}: {e}")
        meta = CalibMeta()
    return LoadedCalibration(left=left, right=right, meta=meta)


def _load_slot(device: FeatureDevice, slot: int, selector: str,
               progress: Optional[ProgressFn]) -> LoadedCalibration:
    data = read_file(device, selector, progress)
    calib = unpack(extract_slot(data, slot))
    return LoadedCalibration(left=calib.left, right=calib.right, meta=calib.meta)


def load_calibration(
    source: CalibSource,
    device: Optional[FeatureDevice] = None,
    selector: str = DEFAULT_FILE_SELECTOR,
    progress: Optional[ProgressFn] = None,
) -> LoadedCalibration:
    """Rectification tables and metadata from either source.

    Local loads require both remap files; a missing or unreadable metadata
    file only warns. Slot loads download the whole device file and fail on
    any lower-layer error.
    """
    if source.local_path is not None:
        return _load_local(Path(source.local_path))
    if device is None:
        raise ValueError("a device is required to load from a camera slot")
    return _load_slot(device, source.slot, selector, progress)
