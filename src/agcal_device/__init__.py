"""AGCAL Device - chunked file transfer over register-mapped camera storage."""
from .file_access import (
    DeviceFile,
    FeatureDevice,
    FeatureError,
    FileInfo,
    FileState,
    delete_file,
    file_info,
    file_size,
    read_file,
    read_head,
    write_file,
)

__all__ = [
    "DeviceFile",
    "FeatureDevice",
    "FeatureError",
    "FileInfo",
    "FileState",
    "delete_file",
    "file_info",
    "file_size",
    "read_file",
    "read_head",
    "write_file",
]
