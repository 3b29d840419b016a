"""AGCAL Core - protocol constants, errors, remap tables and metadata."""
from .errors import (
    CalibError,
    MalformedDataError,
    MissingContentError,
    SlotRangeError,
    StorageFullError,
    TransferStallError,
    TransportError,
)
from .meta import CalibMeta
from .remap import RemapTable, compact, expand, load_table

__all__ = [
    "CalibError",
    "MalformedDataError",
    "MissingContentError",
    "SlotRangeError",
    "StorageFullError",
    "TransferStallError",
    "TransportError",
    "CalibMeta",
    "RemapTable",
    "compact",
    "expand",
    "load_table",
]
