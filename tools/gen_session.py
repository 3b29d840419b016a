import json
import sys
from pathlib import Path

import numpy as np

from agcal_core.protocol import CALIB_RESULT_DIR, META_NAME, REMAP_LEFT, REMAP_RIGHT, REMAP_SENTINEL
from agcal_core.remap import RemapTable, write_table


def generate_session(output_dir: str, width: int = 128, height: int = 128, border: int = 0) -> Path:
    """Write a tiny but valid calibration session.

    Identity remaps (pixel i -> offset i). ``border`` pixels around the
    edge get the sentinel, as a real rectification leaves unmapped corners.
    """
    out = Path(output_dir)
    calib_dir = out / CALIB_RESULT_DIR
    calib_dir.mkdir(parents=True, exist_ok=True)

    grid = np.arange(width * height, dtype=np.uint32).reshape(height, width)
    if border:
        grid[:border, :] = REMAP_SENTINEL
        grid[-border:, :] = REMAP_SENTINEL
        grid[:, :border] = REMAP_SENTINEL
        grid[:, -border:] = REMAP_SENTINEL

    table = RemapTable(width=width, height=height, offsets=grid)
    write_table(table, calib_dir / REMAP_LEFT)
    write_table(table, calib_dir / REMAP_RIGHT)

    meta = {
        "image_size": [width, height],
        "num_pairs_used": 5,
        "rms_stereo_px": 0.25,
        "mean_epipolar_error_px": 0.30,
        "baseline_cm": 4.0,
        "focal_length_px": 100.0,
        "disparity_range": {"min_disparity": 4, "num_disparities": 32},
    }
    (calib_dir / META_NAME).write_text(json.dumps(meta, indent=2) + "\n", encoding="utf-8")

    print(f"GENERATED: {width}x{height} calibration in {out}")
    return out


if __name__ == "__main__":
    # Usage:
    #   python tools/gen_session.py OUT_DIR [--size WxH] [--border N]
    args = [a for a in sys.argv[1:] if a]

    def pop_value(arg_list: list[str], flag: str) -> tuple[str | None, list[str]]:
        """Remove ``flag VALUE`` from an argv-style list."""
        if flag not in arg_list:
            return None, arg_list
        i = arg_list.index(flag)
        if i + 1 >= len(arg_list):
            raise SystemExit(f"{flag} requires a value")
        return arg_list[i + 1], arg_list[:i] + arg_list[i + 2:]

    size, args = pop_value(args, "--size")
    border, args = pop_value(args, "--border")

    if len(args) != 1:
        raise SystemExit("usage: gen_session.py OUT_DIR [--size WxH] [--border N]")

    w, h = (int(v) for v in size.lower().split("x")) if size else (128, 128)
    generate_session(args[0], w, h, int(border) if border else 0)
