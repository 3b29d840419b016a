"""AGCAL Calibration Bundle - pack, unpack, list and extract."""
from __future__ import annotations

import json
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable
from warnings import warn

from agcal_core.errors import MalformedDataError, MissingContentError
from agcal_core.meta import CalibMeta, build_summary, format_summary, parse_json, utc_timestamp
from agcal_core.protocol import (
    ARCHIVE_FILES,
    CALIB_RESULT_DIR,
    DEFAULT_COMPRESSION_LEVEL,
    META_NAME,
    REMAP_ENTRIES,
    REMAP_LEFT,
    REMAP_RIGHT,
)
from agcal_core.remap import RemapTable, compact, is_compact, load_table

from .archive import Entry, build_archive, iter_entries
from .envelope import build_stash, compress_archive, strip_layers


@dataclass
class Calibration:
    left: RemapTable
    right: RemapTable
    meta: CalibMeta = field(default_factory=CalibMeta)
    meta_json: dict | None = None


@dataclass
class ArchiveListing:
    entries: list[tuple[str, int]]
    stored_size: int
    archive_size: int
    compressed: bool
    summary: dict | None = None


def _kb(n: int) -> str:
    kb = n / 1024.0
    return f"{kb / 1024.0:8.1f} MB" if kb >= 1024.0 else f"{kb:8.1f} KB"


# --- Pack --------------------------------------------------------------------

def pack_entries(
    entries: Iterable[Entry],
    compress: bool = True,
    level: int = DEFAULT_COMPRESSION_LEVEL,
    timestamp: str | None = None,
    verbose: bool = False,
) -> bytes:
    """Pack calibration entries into an on-camera AGST blob.

    Remap entries are stored compact, the metadata entry gets a
    ``packed_at`` stamp, and a summary of it goes into the stash header.
    A compression failure falls back to the raw archive with a warning.
    """
    log = print if verbose else (lambda *_a, **_k: None)
    timestamp = timestamp or utc_timestamp()

    prepared: list[Entry] = []
    summary: dict | None = None
    for e in entries:
        data = e.data

        if e.name == META_NAME and data:
            root = parse_json(data)
            if root is None:
                warn(f"{META_NAME} is not a JSON object; stored verbatim without summary")
            else:
                root.pop("packed_at", None)
                root["packed_at"] = timestamp
                summary = build_summary(root)
                data = json.dumps(root, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

        elif e.name in REMAP_ENTRIES and not is_compact(data):
            try:
                packed = compact(data)
            except MalformedDataError as err:
                if err.code != "E_REMAP_RANGE":
                    raise
                warn(f"{e.name}: {err}; stored in standard format")
            else:
                log(f"  {e.name:<18}  {len(data) / 1024.0:7.1f} KB -> {len(packed) / 1024.0:7.1f} KB (compact 3-byte offsets)")
                data = packed

        prepared.append(Entry(e.name, data))

    raw = build_archive(prepared)
    payload = raw
    if compress:
        try:
            payload = compress_archive(raw, level)
        except zlib.error as err:
            warn(f"Compression failed ({err}); storing raw archive")
            payload = raw
        else:
            log(
                f"  zlib:  {len(raw) / 1048576.0:.1f} MB -> {len(payload) / 1048576.0:.1f} MB "
                f"({(1.0 - len(payload) / len(raw)) * 100.0:.0f}% reduction)"
            )

    blob = build_stash(summary, payload)
    log(f"  header: {len(blob) - len(payload)} bytes (metadata summary)")
    return blob


def session_entries(session_path: Path) -> list[Entry]:
    """Read calib_result/ files; remap tables are mandatory, metadata optional."""
    result_dir = Path(session_path) / CALIB_RESULT_DIR
    entries: list[Entry] = []
    for name in ARCHIVE_FILES:
        path = result_dir / name
        if name == META_NAME and not path.exists():
            continue
        entries.append(Entry(name, path.read_bytes()))
    return entries


def pack_session(session_path: Path, **kwargs) -> bytes:
    return pack_entries(session_entries(session_path), **kwargs)


# --- Unpack ------------------------------------------------------------------

def unpack(data) -> Calibration:
    """Decode a stash, envelope or raw archive into remap tables and metadata."""
    decoded = strip_layers(data)

    left = right = None
    meta = CalibMeta()
    meta_json = None
    for name, payload in iter_entries(decoded.archive):
        if name == REMAP_LEFT:
            left = load_table(payload)
        elif name == REMAP_RIGHT:
            right = load_table(payload)
        elif name == META_NAME:
            meta_json = parse_json(payload.memory())
            if meta_json is None:
                warn(f"Failed to parse {META_NAME}")
            else:
                meta = CalibMeta.from_mapping(meta_json)

    missing = [n for n, t in ((REMAP_LEFT, left), (REMAP_RIGHT, right)) if t is None]
    if missing:
        raise MissingContentError("E_MISSING_ENTRY", ", ".join(missing))

    return Calibration(left=left, right=right, meta=meta, meta_json=meta_json)


# --- List --------------------------------------------------------------------

def list_archive(data) -> ArchiveListing:
    decoded = strip_layers(data)
    entries = []
    summary = None
    for name, payload in iter_entries(decoded.archive):
        entries.append((name, len(payload)))
        if name == META_NAME:
            summary = parse_json(payload.memory())
    return ArchiveListing(
        entries=entries,
        stored_size=decoded.stored_size,
        archive_size=len(decoded.archive),
        compressed=decoded.compressed,
        summary=summary,
    )


def format_listing(listing: ArchiveListing) -> list[str]:
    n = len(listing.entries)
    if listing.compressed:
        lines = [
            f"Calibration archive: {n} file(s), {listing.stored_size} bytes on-camera "
            f"({listing.archive_size} bytes uncompressed)"
        ]
    else:
        lines = [f"Calibration archive: {n} file(s), {listing.archive_size} bytes total"]

    for i, (name, size) in enumerate(listing.entries):
        lines.append(f"  [{i}]  {name:<28}  {_kb(size)}")

    if listing.summary:
        lines.extend(format_summary(listing.summary))
    return lines


# --- Extract -----------------------------------------------------------------

def _safe_name(name: str) -> str:
    if name in ("", ".", "..") or "/" in name or "\\" in name:
        raise MalformedDataError("E_ENTRY_NAME", f"refusing to extract {name!r}")
    return name


def extract_to_dir(data, output_dir: Path) -> list[Path]:
    """Write every entry to <output_dir>/calib_result/.

    Remap tables are re-expanded to the standard format so extracted files
    match what was originally packed; other entries are written verbatim.
    """
    decoded = strip_layers(data)
    entries = list(iter_entries(decoded.archive))
    if not entries:
        raise MissingContentError("E_NO_ENTRIES")

    # Decode everything before touching the filesystem.
    outputs: list[tuple[str, bytes]] = []
    for name, payload in entries:
        name = _safe_name(name)
        if name in REMAP_ENTRIES:
            outputs.append((name, load_table(payload).to_bytes()))
        else:
            outputs.append((name, payload.tobytes()))

    result_dir = Path(output_dir) / CALIB_RESULT_DIR
    result_dir.mkdir(parents=True, exist_ok=True)

    written: list[Path] = []
    for name, blob in outputs:
        path = result_dir / name
        path.write_bytes(blob)
        written.append(path)
    return written
