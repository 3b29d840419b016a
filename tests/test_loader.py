import numpy as np
import pytest

from agcal_archive.codec import pack_session
from agcal_archive.multislot import build
from agcal_core.errors import MissingContentError, SlotRangeError
from agcal_device.file_access import write_file
from agcal_device.sim import SimulatedCamera
from agcal_stash.loader import CalibSource, load_calibration

from conftest import write_session


def test_local_load(session):
    calib = load_calibration(CalibSource.local(session))
    assert (calib.left.width, calib.left.height) == (8, 6)
    assert np.array_equal(calib.right.offsets, np.arange(48))
    assert calib.meta.focal_length_px == pytest.approx(100.0)
    assert (calib.meta.min_disparity, calib.meta.num_disparities) == (4, 32)


def test_local_load_without_metadata_warns(tmp_path):
    path = write_session(tmp_path / "s", meta=None)
    with pytest.warns(UserWarning, match="metadata"):
        calib = load_calibration(CalibSource.local(path))
    assert calib.meta.baseline_cm == 0.0
    assert calib.left.width == 8


def test_local_load_with_unparseable_metadata_warns(session):
    (session / "calib_result" / "calibration_meta.json").write_text("{not json")
    with pytest.warns(UserWarning):
        calib = load_calibration(CalibSource.local(session))
    assert calib.meta.focal_length_px == 0.0


def test_local_load_requires_remaps(tmp_path):
    path = write_session(tmp_path / "s")
    (path / "calib_result" / "remap_right.bin").unlink()
    with pytest.raises(FileNotFoundError):
        load_calibration(CalibSource.local(path))


def test_slot_load(session, tmp_path):
    other = write_session(tmp_path / "other", width=4, height=2)
    data = build(build(None, 0, pack_session(other)), 2, pack_session(session))
    cam = SimulatedCamera(buffer_length=512)
    write_file(cam, data)

    calib = load_calibration(CalibSource.camera(2), cam)
    assert (calib.left.width, calib.left.height) == (8, 6)
    assert calib.meta.baseline_cm == pytest.approx(4.0)

    calib = load_calibration(CalibSource.camera(0), cam)
    assert (calib.left.width, calib.left.height) == (4, 2)


def test_slot_load_from_legacy_file(session):
    cam = SimulatedCamera()
    write_file(cam, pack_session(session))
    assert load_calibration(CalibSource.camera(0), cam).left.width == 8
    with pytest.raises(MissingContentError):
        load_calibration(CalibSource.camera(1), cam)


def test_slot_load_of_empty_slot_fails(session):
    cam = SimulatedCamera()
    write_file(cam, build(None, 0, pack_session(session)))
    with pytest.raises(MissingContentError):
        load_calibration(CalibSource.camera(1), cam)


def test_source_validation():
    with pytest.raises(ValueError):
        CalibSource()
    with pytest.raises(ValueError):
        CalibSource(local_path="x", slot=0)
    with pytest.raises(SlotRangeError):
        CalibSource.camera(3)
    with pytest.raises(ValueError):
        load_calibration(CalibSource.camera(0))
