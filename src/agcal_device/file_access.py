"""GenICam SFNC FileAccessControl transfers.

The camera exposes persistent storage as a selectable file driven by a
handful of features plus one fixed-width register:

    FileSelector            which file (e.g. "UserFile1")
    FileOpenMode            Read | Write
    FileOperationSelector   Open | Read | Write | Close | Delete
    FileOperationExecute    run the selected operation
    FileAccessOffset/Length byte window for the next Read/Write
    FileOperationResult     bytes actually moved by the last Read/Write
    FileAccessBuffer        data register, always transferred at full width

A device session is strictly select -> open -> access* -> close, one at a
time. Callers sharing a device across threads must serialize access.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Optional, Protocol
from warnings import warn

from agcal_core.errors import (
    MissingContentError,
    StorageFullError,
    TransferStallError,
    TransportError,
)
from agcal_core.protocol import DEFAULT_FILE_SELECTOR, FILE_ACCESS_BUFFER

ProgressFn = Callable[[str, int, int], None]


class FeatureError(Exception):
    """Raised by a FeatureDevice when a feature access is rejected."""


class FeatureDevice(Protocol):
    """Boundary to the camera connection layer."""

    def set_string(self, name: str, value: str) -> None: ...

    def set_integer(self, name: str, value: int) -> None: ...

    def get_integer(self, name: str) -> int: ...

    def execute(self, name: str) -> None: ...

    def register_length(self, name: str) -> int: ...

    def register_get(self, name: str) -> bytes: ...

    def register_set(self, name: str, data: bytes) -> None: ...


class FileState(enum.Enum):
    UNKNOWN = "unknown"  # a previous session may have been left open
    CLOSED = "closed"
    OPEN_READ = "open-read"
    OPEN_WRITE = "open-write"


@dataclass(frozen=True)
class FileInfo:
    file_size: int
    storage_total: int
    storage_used: int
    storage_free: int


class DeviceFile:
    """One file on one device.

    Every transfer ends in ``ensure_closed()``, on success and on failure,
    so an aborted transfer never leaves the device stuck open for the
    next caller.
    """

    def __init__(self, device: FeatureDevice, selector: str = DEFAULT_FILE_SELECTOR,
                 progress: Optional[ProgressFn] = None):
        self.device = device
        self.selector = selector
        self.progress = progress
        self.state = FileState.UNKNOWN

    # --- feature helpers -------------------------------------------------

    def _set_str(self, name: str, value: str) -> None:
        try:
            self.device.set_string(name, value)
        except FeatureError as e:
            raise TransportError("E_DEVICE", f"failed to set {name}={value}: {e}") from e

    def _set_int(self, name: str, value: int) -> None:
        try:
            self.device.set_integer(name, value)
        except FeatureError as e:
            raise TransportError("E_DEVICE", f"failed to set {name}={value}: {e}") from e

    def _get_int(self, name: str) -> int:
        try:
            return int(self.device.get_integer(name))
        except FeatureError as e:
            raise TransportError("E_DEVICE", f"failed to read {name}: {e}") from e

    def _exec(self, name: str) -> None:
        try:
            self.device.execute(name)
        except FeatureError as e:
            raise TransportError("E_DEVICE", f"command {name} failed: {e}") from e

    def _select(self) -> None:
        self._set_str("FileSelector", self.selector)

    def _buffer_length(self) -> int:
        try:
            n = int(self.device.register_length(FILE_ACCESS_BUFFER))
        except FeatureError as e:
            raise TransportError("E_DEVICE", f"{FILE_ACCESS_BUFFER} unavailable: {e}") from e
        if n <= 0:
            raise TransportError("E_DEVICE", f"{FILE_ACCESS_BUFFER} length {n}")
        return n

    def _report(self, verb: str, done: int, total: int) -> None:
        if self.progress is not None:
            self.progress(verb, done, total)

    # --- state machine ---------------------------------------------------

    def ensure_closed(self) -> None:
        """Idempotent transition to CLOSED from any state.

        From UNKNOWN a rejected Close is expected (nothing was open). From
        an open state it is reported as a warning; the file is treated as
        closed either way.
        """
        if self.state is FileState.CLOSED:
            return
        try:
            self.device.set_string("FileOperationSelector", "Close")
            self.device.execute("FileOperationExecute")
        except FeatureError as e:
            if self.state is not FileState.UNKNOWN:
                warn(f"{self.selector}: close failed: {e}")
        self.state = FileState.CLOSED

    def _open(self, mode: str) -> None:
        self._set_str("FileOpenMode", mode)
        try:
            self.device.set_string("FileOperationSelector", "Open")
            self.device.execute("FileOperationExecute")
        except FeatureError:
            # Stale session from an interrupted transfer. Re-selecting the
            # file resets the device's state machine so Open is accepted.
            self.state = FileState.UNKNOWN
            self.ensure_closed()
            self._select()
            self._set_str("FileOpenMode", mode)
            self._set_str("FileOperationSelector", "Open")
            self._exec("FileOperationExecute")
        self.state = FileState.OPEN_READ if mode == "Read" else FileState.OPEN_WRITE

    # --- transfers -------------------------------------------------------

    def _read_loop(self, total: int, verb: Optional[str]) -> bytes:
        buf_len = self._buffer_length()
        out = bytearray(total)
        done = 0
        try:
            self._open("Read")
            self._set_str("FileOperationSelector", "Read")
            prev_chunk = -1
            while done < total:
                chunk = min(total - done, buf_len)
                self._set_int("FileAccessOffset", done)
                if chunk != prev_chunk:
                    self._set_int("FileAccessLength", chunk)
                    prev_chunk = chunk
                self._exec("FileOperationExecute")

                result = self._get_int("FileOperationResult")
                if result <= 0:
                    raise TransferStallError("E_STALL", f"read stalled at offset {done} of {total}")
                result = min(result, chunk)

                # The register always yields its full width; keep only what was read.
                try:
                    scratch = self.device.register_get(FILE_ACCESS_BUFFER)
                except FeatureError as e:
                    raise TransportError("E_DEVICE", f"register read failed: {e}") from e
                if len(scratch) < result:
                    raise TransportError("E_DEVICE", f"register returned {len(scratch)} bytes, expected {result}")

                out[done : done + result] = scratch[:result]
                done += result
                if verb:
                    self._report(verb, done, total)
        finally:
            self.ensure_closed()
        return bytes(out)

    def read(self) -> bytes:
        """Whole file contents."""
        self._select()
        size = self._get_int("FileSize")
        if size <= 0:
            raise MissingContentError("E_FILE_EMPTY", f"{self.selector} (size={size})")
        return self._read_loop(size, "Reading")

    def read_head(self, max_bytes: int) -> bytes:
        """First ``min(file_size, max_bytes)`` bytes, for header-only listing."""
        self._select()
        size = self._get_int("FileSize")
        if size <= 0:
            raise MissingContentError("E_FILE_EMPTY", f"{self.selector} (size={size})")
        return self._read_loop(min(size, max_bytes), None)

    def _try_get_int(self, name: str) -> Optional[int]:
        try:
            return int(self.device.get_integer(name))
        except FeatureError:
            return None

    def write(self, data) -> None:
        """Replace the file contents with ``data``."""
        data = memoryview(data).cast("B")
        total = len(data)
        self._select()
        buf_len = self._buffer_length()

        # Old content is reclaimed on open-for-write, so it counts as available.
        free = self._try_get_int("FileStorageFreeSize")
        if free is not None:
            used = self._try_get_int("FileSize") or 0
            available = free + used
            if total > available:
                raise StorageFullError("E_NO_SPACE", f"{total} bytes > {available} available")

        done = 0
        try:
            self._open("Write")
            self._set_str("FileOperationSelector", "Write")
            prev_chunk = -1
            while done < total:
                chunk = min(total - done, buf_len)

                # Full register width, zero padded past the chunk.
                scratch = bytearray(buf_len)
                scratch[:chunk] = data[done : done + chunk]
                try:
                    self.device.register_set(FILE_ACCESS_BUFFER, bytes(scratch))
                except FeatureError as e:
                    raise TransportError("E_DEVICE", f"register write failed: {e}") from e

                self._set_int("FileAccessOffset", done)
                if chunk != prev_chunk:
                    self._set_int("FileAccessLength", chunk)
                    prev_chunk = chunk
                self._exec("FileOperationExecute")

                result = self._get_int("FileOperationResult")
                if result <= 0:
                    raise TransferStallError("E_STALL", f"write stalled at offset {done} of {total}")
                done += min(result, chunk)
                self._report("Writing", done, total)
        finally:
            self.ensure_closed()

    def delete(self) -> None:
        """Native Delete, or truncate via open-for-write + close where unsupported."""
        self._select()
        self.ensure_closed()
        try:
            self.device.set_string("FileOperationSelector", "Delete")
            self.device.execute("FileOperationExecute")
            return
        except FeatureError:
            warn(f"Delete not supported, truncating {self.selector} instead")

        try:
            self._open("Write")
        finally:
            self.ensure_closed()

    def size(self) -> int:
        """FileSize alone, for callers that only need to know whether data exists."""
        self._select()
        return self._get_int("FileSize")

    def info(self) -> FileInfo:
        """Size and storage figures; does not open the file."""
        self._select()
        return FileInfo(
            file_size=self._get_int("FileSize"),
            storage_total=self._get_int("FileStorageSize"),
            storage_used=self._get_int("FileStorageUsedSize"),
            storage_free=self._get_int("FileStorageFreeSize"),
        )


def read_file(device: FeatureDevice, selector: str = DEFAULT_FILE_SELECTOR,
              progress: Optional[ProgressFn] = None) -> bytes:
    return DeviceFile(device, selector, progress).read()


def read_head(device: FeatureDevice, selector: str = DEFAULT_FILE_SELECTOR,
              max_bytes: int = 4096) -> bytes:
    return DeviceFile(device, selector).read_head(max_bytes)


def write_file(device: FeatureDevice, data, selector: str = DEFAULT_FILE_SELECTOR,
               progress: Optional[ProgressFn] = None) -> None:
    DeviceFile(device, selector, progress).write(data)


def delete_file(device: FeatureDevice, selector: str = DEFAULT_FILE_SELECTOR) -> None:
    DeviceFile(device, selector).delete()


def file_info(device: FeatureDevice, selector: str = DEFAULT_FILE_SELECTOR) -> FileInfo:
    return DeviceFile(device, selector).info()


def file_size(device: FeatureDevice, selector: str = DEFAULT_FILE_SELECTOR) -> int:
    return DeviceFile(device, selector).size()
