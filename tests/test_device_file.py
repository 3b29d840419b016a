import pytest

from agcal_core.errors import MissingContentError, StorageFullError, TransferStallError, TransportError
from agcal_device.file_access import (
    DeviceFile,
    FileState,
    delete_file,
    file_info,
    file_size,
    read_file,
    read_head,
    write_file,
)
from agcal_device.sim import SimulatedCamera

SEL = "UserFile1"
DATA = bytes(range(256)) * 3 + bytes(232)  # 1000 bytes


class RecordingCamera(SimulatedCamera):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.register_writes = []

    def register_set(self, name, data):
        self.register_writes.append(bytes(data))
        super().register_set(name, data)


def executed(cam, operation):
    return [op for op in cam.ops if op == ("exec", "FileOperationExecute", operation)]


def test_write_then_read_round_trip_with_short_last_chunk():
    cam = SimulatedCamera(buffer_length=64)
    write_file(cam, DATA)
    assert bytes(cam.files[SEL]) == DATA
    assert read_file(cam) == DATA
    assert not cam.is_open


def test_access_length_only_set_when_it_changes():
    cam = SimulatedCamera(buffer_length=64)
    cam.files[SEL] = bytearray(DATA)
    read_file(cam)
    lengths = [v for kind, name, v in cam.ops if kind == "set" and name == "FileAccessLength"]
    assert lengths == [64, 1000 - 15 * 64]
    offsets = [v for kind, name, v in cam.ops if kind == "set" and name == "FileAccessOffset"]
    assert offsets == list(range(0, 1000, 64))


def test_register_writes_are_full_width_and_zero_padded():
    cam = RecordingCamera(buffer_length=64)
    write_file(cam, DATA)
    assert all(len(w) == 64 for w in cam.register_writes)
    assert len(cam.register_writes) == 16
    last = cam.register_writes[-1]
    assert last[:40] == DATA[960:]
    assert last[40:] == bytes(24)


def test_stale_open_session_is_recovered():
    cam = SimulatedCamera(buffer_length=64, stale_open=True)
    cam.files[SEL] = bytearray(DATA)
    assert read_file(cam) == DATA
    assert executed(cam, "Close")
    assert len(executed(cam, "Open")) == 2
    assert not cam.is_open


def test_read_stall_is_an_error_and_closes_file():
    cam = SimulatedCamera(buffer_length=64, stall_after=3)
    cam.files[SEL] = bytearray(DATA)
    with pytest.raises(TransferStallError) as exc:
        read_file(cam)
    assert exc.value.code == "E_STALL"
    assert not cam.is_open


def test_write_stall_is_fatal_and_closes_file():
    cam = SimulatedCamera(buffer_length=64, stall_after=2)
    with pytest.raises(TransferStallError):
        write_file(cam, DATA)
    assert not cam.is_open
    assert len(cam.files[SEL]) == 128


def test_write_larger_than_storage_is_rejected_before_open():
    cam = SimulatedCamera(buffer_length=64, storage_size=500)
    cam.files[SEL] = bytearray(b"old")
    with pytest.raises(StorageFullError):
        write_file(cam, DATA)
    assert not executed(cam, "Open")
    assert bytes(cam.files[SEL]) == b"old"


def test_existing_file_counts_as_available_space():
    cam = SimulatedCamera(buffer_length=64, storage_size=1500)
    cam.files[SEL] = bytearray(1000)
    payload = bytes([7]) * 1200
    write_file(cam, payload)
    assert bytes(cam.files[SEL]) == payload


def test_space_check_skipped_when_free_size_unreadable():
    cam = SimulatedCamera(buffer_length=64, report_free=False)
    write_file(cam, DATA)
    assert read_file(cam) == DATA


def test_native_delete():
    cam = SimulatedCamera()
    cam.files[SEL] = bytearray(DATA)
    delete_file(cam)
    assert SEL not in cam.files
    assert file_size(cam) == 0


def test_delete_falls_back_to_truncation():
    cam = SimulatedCamera(supports_delete=False)
    cam.files[SEL] = bytearray(DATA)
    with pytest.warns(UserWarning, match="Delete not supported"):
        delete_file(cam)
    assert file_size(cam) == 0
    assert not cam.is_open


def test_read_of_empty_file_is_missing_content():
    cam = SimulatedCamera()
    with pytest.raises(MissingContentError) as exc:
        read_file(cam)
    assert exc.value.code == "E_FILE_EMPTY"


def test_read_head_is_bounded():
    cam = SimulatedCamera(buffer_length=64)
    cam.files[SEL] = bytearray(DATA)
    assert read_head(cam, max_bytes=100) == DATA[:100]
    assert read_head(cam, max_bytes=4096) == DATA


def test_info_does_not_open_the_file():
    cam = SimulatedCamera(storage_size=10_000)
    cam.files[SEL] = bytearray(DATA)
    cam.files["UserFile2"] = bytearray(500)
    info = file_info(cam)
    assert (info.file_size, info.storage_total, info.storage_used, info.storage_free) == (1000, 10_000, 1500, 8500)
    assert not [op for op in cam.ops if op[0] == "exec"]


def test_feature_failure_becomes_transport_error():
    cam = SimulatedCamera()
    with pytest.raises(TransportError) as exc:
        read_file(cam, selector="")
    assert exc.value.code == "E_DEVICE"


def test_ensure_closed_is_idempotent():
    cam = SimulatedCamera()
    f = DeviceFile(cam)
    assert f.state is FileState.UNKNOWN
    f.ensure_closed()
    assert f.state is FileState.CLOSED
    n = len(cam.ops)
    f.ensure_closed()
    assert len(cam.ops) == n


def test_progress_reports_each_chunk():
    cam = SimulatedCamera(buffer_length=256)
    cam.files[SEL] = bytearray(DATA)
    seen = []
    read_file(cam, progress=lambda verb, done, total: seen.append((verb, done, total)))
    assert seen == [("Reading", 256, 1000), ("Reading", 512, 1000), ("Reading", 768, 1000), ("Reading", 1000, 1000)]


def test_directory_backed_storage_persists(tmp_path):
    write_file(SimulatedCamera(root=tmp_path), DATA)
    assert (tmp_path / SEL).read_bytes() == DATA
    assert read_file(SimulatedCamera(root=tmp_path)) == DATA
    delete_file(SimulatedCamera(root=tmp_path))
    assert not (tmp_path / SEL).exists()
