import io
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO

from .config import MB
from .errors import InvalidArgumentError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ByteRange:
    start: int
    size: int

    @property
    def end(self) -> int:
        return self.start + self.size


def partition_range(file_size: int, n: int) -> list[ByteRange]:
    """Split ``file_size`` bytes into ``n`` contiguous, non-overlapping ranges.

    Every range gets ``file_size // n`` bytes and the first one also absorbs the
    remainder, so ``partition_range(7, 2)`` is ``[(0, 4), (4, 3)]``. This is a plain
    split, not a balanced one: the first worker may do up to ``n - 1`` extra bytes.

    Args:
        file_size (int): Total number of bytes to cover.
        n (int): Number of ranges.

    Returns:
        list[ByteRange]: Ranges in ascending ``start`` order.

    Raises:
        InvalidArgumentError: If ``n <= 0``, ``file_size <= 0`` or ``n > file_size``.
    """
    if n <= 0 or file_size <= 0 or n > file_size:
        raise InvalidArgumentError(f"can't split size:{file_size} on {n} parts")

    base = file_size // n
    first_size = base + file_size % n

    ranges = [ByteRange(0, first_size)]
    for _ in range(1, n):
        ranges.append(ByteRange(ranges[-1].end, base))

    if sum(r.size for r in ranges) != file_size or ranges[-1].end != file_size:
        raise RuntimeError("chunk split does not cover whole file")
    return ranges


def split_file(file_path: str | os.PathLike, n: int) -> list[ByteRange]:
    """Open ``file_path`` once to check it is readable, then split its size into ``n`` ranges."""
    with open(file_path, mode="rb") as f:
        file_size = os.fstat(f.fileno()).st_size
    ranges = partition_range(file_size, n)
    logger.debug(
        "File '%s': %d chunks, first chunk %.2f MB, others %.2f MB",
        file_path, n, ranges[0].size / MB, ranges[-1].size / MB,
    )
    return ranges


class SectionReader(io.RawIOBase):
    """Read-only view over the next ``size`` bytes of an already positioned binary file.

    Reports end-of-data once ``size`` bytes were returned, even when the underlying
    file goes on. Closing the reader closes the wrapped file.
    """

    def __init__(self, raw: BinaryIO, size: int):
        super().__init__()
        self._raw = raw
        self._remaining = size
        self._consumed = 0

    @property
    def remaining(self) -> int:
        return self._remaining

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        view = memoryview(buffer).cast("B")
        if self._remaining <= 0 or len(view) == 0:
            return 0
        view = view[: min(len(view), self._remaining)]
        n = self._raw.readinto(view)
        if n is None:
            return None
        self._remaining -= n
        self._consumed += n
        return n

    def tell(self) -> int:
        return self._consumed

    def close(self) -> None:
        if not self.closed:
            try:
                self._raw.close()
            finally:
                super().close()


@contextmanager
def open_section(file_path: str | os.PathLike, byte_range: ByteRange) -> Iterator[SectionReader]:
    """Open a private handle on ``file_path`` limited to ``byte_range``.

    Each call opens its own file object, so sections never share a read cursor.
    The handle is closed when the block exits, whichever way it exits.
    """
    f = open(file_path, mode="rb", buffering=0)
    try:
        f.seek(byte_range.start)
        section = SectionReader(f, byte_range.size)
    except BaseException:
        f.close()
        raise
    with section:
        yield section


@dataclass(frozen=True)
class ReadStats:
    bytes_read: int
    seconds: float

    @property
    def mb_per_sec(self) -> float:
        if self.seconds <= 0:
            return 0.0
        return self.bytes_read / MB / self.seconds


def measure_read_throughput(file_path: str | os.PathLike, block_mb: int = 100) -> ReadStats:
    """Read ``file_path`` front to back in ``block_mb`` blocks and time only the reads.

    Gives an upper bound for what the vocabulary workers can hope to reach on the
    same disk.
    """
    if block_mb <= 0:
        raise InvalidArgumentError(f"block size must be positive, got {block_mb}")

    block = bytearray(block_mb * MB)
    total_bytes = 0
    total_seconds = 0.0
    with open(file_path, mode="rb", buffering=0) as f:
        while True:
            start = time.perf_counter()
            n = f.readinto(block)
            total_seconds += time.perf_counter() - start
            if not n:
                break
            total_bytes += n
    return ReadStats(bytes_read=total_bytes, seconds=total_seconds)
