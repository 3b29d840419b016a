import json
import struct
from pathlib import Path

import numpy as np
import pytest

from agcal_core.protocol import CALIB_RESULT_DIR, META_NAME, REMAP_LEFT, REMAP_RIGHT

META = {
    "image_size": [8, 6],
    "num_pairs_used": 5,
    "rms_stereo_px": 0.25,
    "mean_epipolar_error_px": 0.30,
    "baseline_cm": 4.0,
    "focal_length_px": 100.0,
    "disparity_range": {"min_disparity": 4, "num_disparities": 32},
}


def remap_bytes(width: int, height: int, offsets=None, flags: int = 0) -> bytes:
    """Standard-format RMAP bytes; identity offsets unless given."""
    if offsets is None:
        offsets = np.arange(width * height, dtype="<u4")
    body = np.asarray(offsets, dtype="<u4").reshape(-1).tobytes()
    return struct.pack("<4sIII", b"RMAP", width, height, flags) + body


def write_session(root: Path, width: int = 8, height: int = 6, meta=META,
                  left=None, right=None) -> Path:
    calib = root / CALIB_RESULT_DIR
    calib.mkdir(parents=True, exist_ok=True)
    (calib / REMAP_LEFT).write_bytes(remap_bytes(width, height, left))
    (calib / REMAP_RIGHT).write_bytes(remap_bytes(width, height, right))
    if meta is not None:
        (calib / META_NAME).write_text(json.dumps(meta), encoding="utf-8")
    return root


@pytest.fixture
def session(tmp_path):
    return write_session(tmp_path / "session")
