"""
File Reader — read-only mmap with plain-read fallback, plus block iteration.

APPROACH
────────
1. Memory-mapped I/O (ACCESS_READ) so multi-gigabyte files are paged in
   on demand and the buffer can never be written through.
2. Fallback to a single read() when mmap fails (empty files, special
   files, platforms without mmap support for the handle).
3. iter_blocks() splits a buffer into fixed-size windows with overlap,
   so a scanner can check for cancellation between windows without
   losing matches that straddle a boundary.
"""

import os
import mmap
import logging
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 4 * 1024 * 1024


def iter_blocks(
    total_size: int,
    start: int = 0,
    block_size: int = DEFAULT_BLOCK_SIZE,
    overlap: int = 0,
) -> Iterator[tuple[int, int]]:
    """
    Yield (block_start, block_end) windows covering [start, total_size).

    Consecutive windows share `overlap` bytes, so a pattern of length
    overlap + 1 that crosses a boundary lies wholly inside one window.
    """
    if block_size <= 0:
        raise ValueError("block_size must be positive")
    offset = max(0, start)
    while offset < total_size:
        end = min(total_size, offset + block_size)
        yield offset, end
        if end >= total_size:
            break
        advance = (end - offset) - overlap
        if advance <= 0:
            advance = end - offset
        offset += advance


class FileReader:
    """
    Read-only view of a file on disk.

    Usage:
        with FileReader(path) as reader:
            parsed = detect(reader.data, reader.name)
            ...

    `data` is an mmap when mapping succeeded, otherwise the file's
    bytes. Either way it supports len(), slicing and find(), which is
    all the parsers and the search engine use. Keep the reader open for
    as long as the ParsedFile built from it is in use.
    """

    def __init__(self, path: str, use_mmap: bool = True):
        self.path = path
        self.name = os.path.basename(path)
        self._fd = open(path, "rb")
        self._size = os.fstat(self._fd.fileno()).st_size
        self._mmap: Optional[mmap.mmap] = None
        self._bytes: Optional[bytes] = None

        if use_mmap and self._size > 0:
            self._try_mmap()
        if self._mmap is None:
            self._bytes = self._fd.read()
            self._size = len(self._bytes)

    def _try_mmap(self):
        try:
            self._mmap = mmap.mmap(self._fd.fileno(), 0, access=mmap.ACCESS_READ)
            logger.info(
                "mmap enabled: %s, %d bytes (%.1f MB)",
                self.name, self._size, self._size / (1024 ** 2),
            )
        except (OSError, ValueError, OverflowError) as e:
            logger.info("mmap unavailable (%s), reading %s into memory", e, self.name)
            self._mmap = None

    @property
    def is_mmap(self) -> bool:
        return self._mmap is not None

    @property
    def size(self) -> int:
        return self._size

    @property
    def data(self):
        if self._mmap is not None:
            return self._mmap
        return self._bytes if self._bytes is not None else b""

    def read_at(self, offset: int, size: int) -> bytes:
        """Read up to `size` bytes at `offset`; empty past the end."""
        if offset < 0 or offset >= self._size or size <= 0:
            return b""
        return bytes(self.data[offset:min(self._size, offset + size)])

    def close(self):
        """Release the mapping and the file handle."""
        if self._mmap is not None:
            self._mmap.close()
            self._mmap = None
        if not self._fd.closed:
            self._fd.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def load_file(path: str) -> bytes:
    """Whole-file read for callers that do not want to manage a FileReader."""
    with open(path, "rb") as f:
        return f.read()
