"""In-process stand-in for a camera's register-mapped file storage.

Implements the FeatureDevice calls used by DeviceFile against an in-memory
file table, optionally mirrored to a directory so state survives between
CLI invocations. Quirks seen on real hardware can be switched on to
exercise the recovery paths.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

from agcal_core.protocol import DEFAULT_FILE_SELECTOR, FILE_ACCESS_BUFFER

from .file_access import FeatureError

_OPERATIONS = ("Open", "Read", "Write", "Close", "Delete")
_GARBAGE = 0xEE


class SimulatedCamera:
    """Register-mapped file storage simulator.

    Quirks:
        supports_delete  False: FileOperationSelector rejects "Delete".
        stale_open       True: a session is already open on the first
                         selected file, as after an interrupted transfer.
        stall_after      Read/Write report 0 bytes once this many chunks
                         have been transferred.
        report_free      False: FileStorageFreeSize is unreadable.
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        buffer_length: int = 1024,
        storage_size: int = 16 * 1024 * 1024,
        supports_delete: bool = True,
        stale_open: bool = False,
        stall_after: Optional[int] = None,
        report_free: bool = True,
    ):
        self.root = Path(root) if root is not None else None
        self.buffer_length = buffer_length
        self.storage_size = storage_size
        self.supports_delete = supports_delete
        self.stall_after = stall_after
        self.report_free = report_free

        self.files: Dict[str, bytearray] = {}
        self.ops: List[Tuple[str, str, object]] = []

        self._selector = DEFAULT_FILE_SELECTOR
        self._open_mode = "Read"
        self._operation = "Open"
        self._offset = 0
        self._length = 0
        self._result = 0
        self._session: Optional[str] = "Read" if stale_open else None
        self._chunks = 0
        self._register = bytes([_GARBAGE]) * buffer_length

        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)
            for path in self.root.iterdir():
                if path.is_file():
                    self.files[path.name] = bytearray(path.read_bytes())

    @property
    def is_open(self) -> bool:
        return self._session is not None

    # --- persistence -----------------------------------------------------

    def _flush(self, name: str) -> None:
        if self.root is None:
            return
        path = self.root / name
        if name in self.files:
            path.write_bytes(bytes(self.files[name]))
        elif path.exists():
            path.unlink()

    def _used(self) -> int:
        return sum(len(v) for v in self.files.values())

    # --- FeatureDevice ---------------------------------------------------

    def set_string(self, name: str, value: str) -> None:
        self.ops.append(("set", name, value))
        if name == "FileSelector":
            if not value:
                raise FeatureError("empty file selector")
            self._selector = value
        elif name == "FileOpenMode":
            if value not in ("Read", "Write"):
                raise FeatureError(f"Value {value!r} not found")
            self._open_mode = value
        elif name == "FileOperationSelector":
            if value not in _OPERATIONS or (value == "Delete" and not self.supports_delete):
                raise FeatureError(f"Value {value!r} not found")
            self._operation = value
        else:
            raise FeatureError(f"feature {name} not found")

    def set_integer(self, name: str, value: int) -> None:
        self.ops.append(("set", name, value))
        if value < 0:
            raise FeatureError(f"{name} out of range: {value}")
        if name == "FileAccessOffset":
            self._offset = value
        elif name == "FileAccessLength":
            if value > self.buffer_length:
                raise FeatureError(f"FileAccessLength {value} > {self.buffer_length}")
            self._length = value
        else:
            raise FeatureError(f"feature {name} not found")

    def get_integer(self, name: str) -> int:
        self.ops.append(("get", name, None))
        if name == "FileSize":
            return len(self.files.get(self._selector, b""))
        if name == "FileStorageSize":
            return self.storage_size
        if name == "FileStorageUsedSize":
            return self._used()
        if name == "FileStorageFreeSize":
            if not self.report_free:
                raise FeatureError("FileStorageFreeSize not available")
            return self.storage_size - self._used()
        if name == "FileOperationResult":
            return self._result
        if name == "FileAccessOffset":
            return self._offset
        if name == "FileAccessLength":
            return self._length
        raise FeatureError(f"feature {name} not found")

    def execute(self, name: str) -> None:
        self.ops.append(("exec", name, self._operation))
        if name != "FileOperationExecute":
            raise FeatureError(f"command {name} not found")
        getattr(self, f"_do_{self._operation.lower()}")()

    def register_length(self, name: str) -> int:
        if name != FILE_ACCESS_BUFFER:
            raise FeatureError(f"register {name} not found")
        return self.buffer_length

    def register_get(self, name: str) -> bytes:
        if name != FILE_ACCESS_BUFFER:
            raise FeatureError(f"register {name} not found")
        return self._register

    def register_set(self, name: str, data: bytes) -> None:
        if name != FILE_ACCESS_BUFFER:
            raise FeatureError(f"register {name} not found")
        if len(data) != self.buffer_length:
            raise FeatureError(f"register write of {len(data)} bytes, width is {self.buffer_length}")
        self._register = bytes(data)

    # --- operations ------------------------------------------------------

    def _stalled(self) -> bool:
        return self.stall_after is not None and self._chunks >= self.stall_after

    def _do_open(self) -> None:
        if self._session is not None:
            raise FeatureError("file already open")
        if self._open_mode == "Write":
            self.files[self._selector] = bytearray()
        elif self._selector not in self.files:
            raise FeatureError(f"{self._selector} does not exist")
        self._session = self._open_mode
        self._chunks = 0

    def _do_close(self) -> None:
        if self._session is None:
            raise FeatureError("file not open")
        if self._session == "Write":
            self._flush(self._selector)
        self._session = None

    def _do_read(self) -> None:
        if self._session != "Read":
            raise FeatureError("file not open for reading")
        if self._stalled():
            self._result = 0
            return
        data = self.files.get(self._selector, bytearray())
        chunk = bytes(data[self._offset : self._offset + self._length])
        # Full register width; bytes past the chunk are whatever was there.
        self._register = chunk + bytes([_GARBAGE]) * (self.buffer_length - len(chunk))
        self._result = len(chunk)
        self._chunks += 1

    def _do_write(self) -> None:
        if self._session != "Write":
            raise FeatureError("file not open for writing")
        if self._stalled():
            self._result = 0
            return
        data = self.files[self._selector]
        end = self._offset + self._length
        grow = max(0, end - len(data))
        if self._used() + grow > self.storage_size:
            self._result = 0
            return
        if len(data) < self._offset:
            data.extend(bytes(self._offset - len(data)))
        data[self._offset : end] = self._register[: self._length]
        self._result = self._length
        self._chunks += 1

    def _do_delete(self) -> None:
        if self._session is not None:
            raise FeatureError("file is open")
        self.files.pop(self._selector, None)
        self._flush(self._selector)
        self._result = 0
