"""AGCAL on-camera storage protocol constants.

Single source of truth for magic values and fixed header layouts.
Keep this file stable. Packer, reader and the multi-slot builder must
remain synchronized.
"""

# Container magics
ARCHIVE_MAGIC   = b"AGCAL\x00\x00\x01"  # Flat entry table
ENVELOPE_MAGIC  = b"AGCZ"               # zlib envelope around an archive
STASH_MAGIC     = b"AGST"               # Fixed-size summary header + payload
MULTISLOT_MAGIC = b"AGMS"               # Slot index + concatenated stashes
REMAP_MAGIC     = b"RMAP"               # Remap table

# Archive: [Magic(8) | n_entries(4)]
ARCHIVE_HEADER_FMT = "<8sI"
ARCHIVE_HEADER_LEN = 12

# Entry: [name_len incl. NUL(4) | data_len(4)] then name, data
ENTRY_HEADER_FMT = "<II"
ENTRY_HEADER_LEN = 8

# Envelope: [Magic(4) | uncompressed_size(4)] then zlib stream
ENVELOPE_HEADER_FMT = "<4sI"
ENVELOPE_HEADER_LEN = 8

# Stash: [Magic(4) | header_size(4)] then NUL-terminated JSON, zero padded
STASH_PREFIX_FMT = "<4sI"
STASH_PREFIX_LEN = 8
STASH_HEADER_SIZE = 4096

# Multi-slot: [Magic(4) | header_size(4) | num_slots(4)] then JSON index
MULTISLOT_PREFIX_FMT = "<4sII"
MULTISLOT_PREFIX_LEN = 12
MULTISLOT_HEADER_SIZE = 4096
MAX_SLOTS = 3
PACKED_AT_MAX = 31

# Remap table: [Magic(4) | width(4) | height(4) | flags(4)] then offsets
REMAP_HEADER_FMT = "<4sIII"
REMAP_HEADER_LEN = 16
REMAP_SENTINEL = 0xFFFFFFFF
REMAP_COMPACT_SENTINEL = 0x00FFFFFF
REMAP_COMPACT_FLAG = 1
REMAP_STANDARD_FLAG = 0
REMAP_MAX_DIM = 8192

# Archive entry names (pack order)
REMAP_LEFT = "remap_left.bin"
REMAP_RIGHT = "remap_right.bin"
META_NAME = "calibration_meta.json"
ARCHIVE_FILES = (REMAP_LEFT, REMAP_RIGHT, META_NAME)
REMAP_ENTRIES = frozenset({REMAP_LEFT, REMAP_RIGHT})
CALIB_RESULT_DIR = "calib_result"

# Device file access (GenICam SFNC FileAccessControl)
DEFAULT_FILE_SELECTOR = "UserFile1"
FILE_ACCESS_BUFFER = "FileAccessBuffer"

# Default safety bounds
DEFAULT_COMPRESSION_LEVEL = 9
DEFAULT_MAX_ARCHIVE_SIZE = 64 * 1024 * 1024  # 64 MiB inflate ceiling
