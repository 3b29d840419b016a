import struct
import sys
from pathlib import Path

STASH_MAGIC = b"AGST"
ENVELOPE_MAGIC = b"AGCZ"


def main():
    if len(sys.argv) != 2:
        print("Usage: corrupt_one_byte.py <blob>")
        raise SystemExit(2)

    p = Path(sys.argv[1])
    b = bytearray(p.read_bytes())

    # Skip the stash header, then the 8-byte envelope header.
    base = 0
    if b[:4] == STASH_MAGIC:
        base = struct.unpack_from("<I", b, 4)[0]
    if b[base:base + 4] != ENVELOPE_MAGIC:
        print("No compressed payload found.")
        raise SystemExit(2)

    body = base + 8
    if len(b) - body < 16:
        print("File too small to corrupt safely.")
        raise SystemExit(2)

    # Flip a byte in the middle of the deflate stream.
    idx = body + (len(b) - body) // 2
    b[idx] ^= 0x01
    p.write_bytes(bytes(b))
    print(f"Corrupted 1 byte at offset {idx} in {p}")


if __name__ == "__main__":
    main()
