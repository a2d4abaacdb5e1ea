"""I/O utilities for transparent gzip/bgzip handling.

Provides smart file opening that auto-detects gzip compression (BGZF is a
series of gzip members, so bgzipped VCFs are covered too) by checking magic
bytes, and bounded prefix reads for format sniffing.

Example:
    with smart_open(Path("sample.vcf.gz")) as f:
        for line in f:
            process(line)
"""

import gzip
import zlib
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Literal

# Gzip magic bytes (first two bytes of gzip file)
GZIP_MAGIC = b"\x1f\x8b"


def is_gzipped(filepath: Path) -> bool:
    """Detect if a file is gzip-compressed.

    Checks magic bytes first (reliable), falls back to extension if file
    is too small or unreadable.

    Example:
        >>> is_gzipped(Path("sample.vcf.gz"))
        True
    """
    try:
        with open(filepath, "rb") as f:
            magic = f.read(2)
            if len(magic) >= 2:
                return magic == GZIP_MAGIC
    except OSError:
        pass

    # Fall back to extension check
    return filepath.suffix == ".gz"


@contextmanager
def smart_open(
    filepath: Path,
    mode: Literal["r", "rt", "rb"] = "rt",
) -> Iterator[IO[str] | IO[bytes]]:
    """Open a file with automatic gzip detection.

    Text mode decodes as UTF-8 and replaces undecodable bytes, since
    consumer exports are not always clean UTF-8.

    Args:
        filepath: Path to file (may be .gz/.bgz or uncompressed)
        mode: File mode ('r' or 'rt' for text, 'rb' for binary)

    Yields:
        File handle (text or binary based on mode)
    """
    if mode == "r":
        mode = "rt"

    if is_gzipped(filepath):
        if mode == "rt":
            f = gzip.open(filepath, mode, encoding="utf-8", errors="replace")
        else:
            f = gzip.open(filepath, mode)
    else:
        if mode == "rt":
            f = open(filepath, mode, encoding="utf-8", errors="replace")
        else:
            f = open(filepath, mode)

    try:
        yield f
    finally:
        f.close()


def read_prefix(filepath: Path, size: int) -> bytes:
    """Read at most ``size`` raw bytes from the start of a file."""
    with open(filepath, "rb") as f:
        return f.read(size)


def decompress_prefix(raw: bytes, size: int) -> bytes:
    """Decompress the head of a gzip/BGZF stream from a raw byte prefix.

    Only the bytes available in ``raw`` are inflated, so a truncated prefix
    yields a truncated (but valid) decompressed head. Returns b"" when the
    prefix is not decodable.

    Args:
        raw: Raw bytes starting with the gzip magic
        size: Maximum number of decompressed bytes to return
    """
    decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
    try:
        data = decompressor.decompress(raw, size)
    except zlib.error:
        return b""
    # BGZF blocks are separate gzip members; keep inflating the next ones
    while len(data) < size and decompressor.unused_data:
        remainder = decompressor.unused_data
        decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
        try:
            data += decompressor.decompress(remainder, size - len(data))
        except zlib.error:
            break
    return data[:size]
