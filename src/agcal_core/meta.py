"""Calibration metadata (calibration_meta.json) helpers.

Fields are read defensively: a missing or mistyped field yields its
default, never an error.
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from warnings import warn

from .protocol import CALIB_RESULT_DIR, META_NAME

SUMMARY_FIELDS = (
    "image_size",
    "num_pairs_used",
    "rms_stereo_px",
    "mean_epipolar_error_px",
    "baseline_cm",
    "focal_length_px",
    "disparity_range",
    "packed_at",
)


def _is_number(v: Any) -> bool:
    """JSON numbers only; Infinity/NaN and ints beyond float range count as absent."""
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return False
    try:
        return math.isfinite(v)
    except OverflowError:
        return False


def get_number(obj: Any, key: str, default: float | None = None) -> float | None:
    if isinstance(obj, dict) and _is_number(obj.get(key)):
        return obj[key]
    return default


def get_image_size(obj: Any) -> tuple[int, int] | None:
    isz = obj.get("image_size") if isinstance(obj, dict) else None
    if isinstance(isz, list) and len(isz) >= 2 and all(_is_number(v) for v in isz[:2]):
        return int(isz[0]), int(isz[1])
    return None


@dataclass
class CalibMeta:
    min_disparity: int = 0
    num_disparities: int = 0
    focal_length_px: float = 0.0
    baseline_cm: float = 0.0

    @classmethod
    def from_mapping(cls, root: Any) -> "CalibMeta":
        meta = cls()
        dr = root.get("disparity_range") if isinstance(root, dict) else None
        md = get_number(dr, "min_disparity")
        nd = get_number(dr, "num_disparities")
        if md is not None:
            meta.min_disparity = int(md)
        if nd is not None:
            meta.num_disparities = int(nd)
        meta.focal_length_px = float(get_number(root, "focal_length_px", 0.0))
        meta.baseline_cm = float(get_number(root, "baseline_cm", 0.0))
        return meta


def parse_json(data) -> dict | None:
    """Parse a JSON object from bytes; ``None`` if unparseable or not an object."""
    try:
        root = json.loads(bytes(data).decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    return root if isinstance(root, dict) else None


def utc_timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_summary(root: dict) -> dict:
    """Curated subset of metadata that goes into the fixed stash header."""
    summary: dict = {}
    for key in SUMMARY_FIELDS:
        if key not in root:
            continue
        value = root[key]
        if key in ("image_size", "disparity_range"):
            summary[key] = value
        elif key == "packed_at":
            if isinstance(value, str):
                summary[key] = value
        elif _is_number(value):
            summary[key] = value
    return summary


def format_summary(root: dict) -> list[str]:
    lines = ["", "Calibration summary:"]

    size = get_image_size(root)
    if size:
        lines.append(f"  Resolution:       {size[0]} x {size[1]}")

    np_used = get_number(root, "num_pairs_used")
    if np_used is not None:
        lines.append(f"  Pairs used:       {int(np_used)}")

    rms = get_number(root, "rms_stereo_px")
    if rms is not None:
        lines.append(f"  Stereo RMS:       {rms:.4f} px")

    epi = get_number(root, "mean_epipolar_error_px")
    if epi is not None:
        lines.append(f"  Epipolar error:   {epi:.4f} px (mean)")

    bl = get_number(root, "baseline_cm")
    if bl is not None:
        lines.append(f"  Baseline:         {bl:.2f} cm")

    fl = get_number(root, "focal_length_px")
    if fl is not None:
        lines.append(f"  Focal length:     {fl:.2f} px")

    dr = root.get("disparity_range")
    md = get_number(dr, "min_disparity")
    nd = get_number(dr, "num_disparities")
    if md is not None and nd is not None:
        md, nd = int(md), int(nd)
        lines.append(f"  Disparity range:  {md} .. {md + nd} ({nd} values)")

    pa = root.get("packed_at")
    if isinstance(pa, str) and pa:
        lines.append(f"  Packed at:        {pa}")

    return lines


def load_meta(session_path: Path) -> CalibMeta:
    """Read <session>/calib_result/calibration_meta.json.

    Raises OSError if the file cannot be read; an unparseable file yields
    default values with a warning.
    """
    path = Path(session_path) / CALIB_RESULT_DIR / META_NAME
    root = parse_json(path.read_bytes())
    if root is None:
        warn(f"Failed to parse {path}")
        return CalibMeta()
    return CalibMeta.from_mapping(root)
