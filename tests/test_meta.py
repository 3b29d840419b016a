from datetime import datetime, timedelta, timezone

from agcal_core.meta import CalibMeta, build_summary, format_summary, load_meta, parse_json, utc_timestamp

from conftest import write_session


def test_meta_fields_are_read_defensively():
    m = CalibMeta.from_mapping({
        "focal_length_px": "875",
        "baseline_cm": 4.0677,
        "disparity_range": {"min_disparity": 2, "num_disparities": True},
    })
    assert m.focal_length_px == 0.0
    assert m.baseline_cm == 4.0677
    assert m.min_disparity == 2
    assert m.num_disparities == 0
    assert CalibMeta.from_mapping([1, 2]) == CalibMeta()


def test_summary_keeps_only_curated_fields():
    root = {
        "image_size": [1440, 1080],
        "rms_stereo_px": 0.31,
        "num_pairs_used": "many",
        "packed_at": 12,
        "camera_matrix": [[1, 0], [0, 1]],
    }
    assert build_summary(root) == {"image_size": [1440, 1080], "rms_stereo_px": 0.31}


def test_format_summary_lines():
    lines = format_summary({
        "image_size": [1440, 1080],
        "baseline_cm": 4.0677,
        "disparity_range": {"min_disparity": 0, "num_disparities": 128},
        "packed_at": "2026-01-01T00:00:00Z",
    })
    assert lines[:3] == ["", "Calibration summary:", "  Resolution:       1440 x 1080"]
    assert "  Baseline:         4.07 cm" in lines
    assert "  Disparity range:  0 .. 128 (128 values)" in lines
    assert lines[-1] == "  Packed at:        2026-01-01T00:00:00Z"


def test_parse_json_only_accepts_objects():
    assert parse_json(b'{"a": 1}') == {"a": 1}
    assert parse_json(b"[1]") is None
    assert parse_json(b"\xff") is None


def test_utc_timestamp_format():
    t = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone(timedelta(hours=2)))
    assert utc_timestamp(t) == "2026-03-04T03:06:07Z"
    assert len(utc_timestamp()) == 20


def test_load_meta_from_session(tmp_path):
    path = write_session(tmp_path / "s")
    m = load_meta(path)
    assert (m.min_disparity, m.num_disparities) == (4, 32)
    assert m.focal_length_px == 100.0


def test_non_finite_and_oversized_numbers_are_absent():
    m = CalibMeta.from_mapping({
        "focal_length_px": 10 ** 400,
        "baseline_cm": float("nan"),
        "disparity_range": {"min_disparity": float("-inf"), "num_disparities": 64},
    })
    assert m == CalibMeta(num_disparities=64)
    assert build_summary({"rms_stereo_px": float("inf"), "baseline_cm": 4.0}) == {"baseline_cm": 4.0}
