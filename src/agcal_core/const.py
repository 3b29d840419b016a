ERRORS = {
  "E_TRUNCATED": "Buffer too small for declared structure",
  "E_BAD_MAGIC": "Unrecognized magic bytes",
  "E_ENTRY_COUNT": "Declared entry count exceeds buffer",
  "E_ENTRY_BOUNDS": "Archive entry overruns buffer",
  "E_ENTRY_NAME": "Archive entry name invalid",
  "E_DUPLICATE_ENTRY": "Archive entry name repeated",
  "E_INFLATE": "Compressed payload failed to decompress",
  "E_SIZE_MISMATCH": "Decompressed size does not match envelope",
  "E_TOO_LARGE": "Declared size exceeds safety limit",
  "E_REMAP_DIMS": "Remap table dimensions invalid",
  "E_REMAP_FORMAT": "Remap table is not in the expected encoding",
  "E_REMAP_RANGE": "Remap offset not representable in compact encoding",
  "E_HEADER_JSON": "Header JSON invalid",
  "E_HEADER_OVERFLOW": "Header JSON does not fit the fixed header",
  "E_INDEX": "Slot index invalid",
  "E_SLOT_BOUNDS": "Slot byte range exceeds file",
  "E_SLOT_RANGE": "Slot number out of range",
  "E_MISSING_ENTRY": "Required archive entry missing",
  "E_NO_ENTRIES": "Archive contained no entries",
  "E_SLOT_EMPTY": "Requested slot is empty or not present",
  "E_FILE_EMPTY": "Device file is empty or does not exist",
  "E_DEVICE": "Device feature access failed",
  "E_STALL": "Transfer stalled",
  "E_NO_SPACE": "Payload exceeds available device storage",
}
