"""AGCAL error taxonomy.

Malformed input, missing content, transport failures and storage
exhaustion are distinct types so callers can tell "not there" from
"corrupt". Filesystem problems surface as the builtin OSError family.
"""
from __future__ import annotations

from .const import ERRORS


class CalibError(Exception):
    """Base class; carries a stable error code from ``ERRORS``."""

    def __init__(self, code: str, detail: str | None = None):
        self.code = code
        self.detail = detail
        message = ERRORS.get(code, code)
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MalformedDataError(CalibError, ValueError):
    pass


class MissingContentError(CalibError, LookupError):
    pass


class SlotRangeError(CalibError, ValueError):
    pass


class TransportError(CalibError):
    pass


class TransferStallError(TransportError):
    pass


class StorageFullError(CalibError):
    pass
