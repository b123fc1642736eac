from __future__ import annotations

import os
import threading
from collections.abc import Iterable, Mapping
from typing import IO, Any


def run_partition(file_size: int, n: int) -> list[tuple[int, int]]:
    """Given a file size and a number of parts, return the (start, size) of each part.

    Args:
        file_size (int): Total number of bytes to split.
        n (int): Number of parts.

    Returns:
        list[tuple[int, int]]: (start, size) of every part, in file order.
    """
    from swivel_prep.utils import partition_range

    return [(r.start, r.size) for r in partition_range(file_size, n)]


def run_read_section(file_path: str | os.PathLike, start: int, size: int, read_size: int = -1) -> bytes:
    """Read everything a bounded section of `file_path` yields.

    Args:
        file_path (str | os.PathLike): File to read from.
        start (int): Offset of the section.
        size (int): Length of the section.
        read_size (int): Bytes to ask for per read; -1 reads the section in one call.

    Returns:
        bytes: The bytes returned before the section reported end-of-data.
    """
    from swivel_prep.utils import ByteRange, open_section

    out = bytearray()
    with open_section(file_path, ByteRange(start, size)) as section:
        while True:
            data = section.read(read_size)
            if not data:
                break
            out += data
    return bytes(out)


def run_scan_words(
    stream: IO[bytes], buffer_size: int, max_token_length: int = 10 * 1024
) -> tuple[list[bytes], int]:
    """Tokenize a binary stream on ASCII whitespace.

    Returns:
        tuple[list[bytes], int]: The tokens, and how many oversized tokens were skipped.
    """
    from swivel_prep.scanner import WordScanner

    scanner = WordScanner(buffer_size=buffer_size, max_token_length=max_token_length)
    tokens = list(scanner.scan(stream))
    return tokens, scanner.skipped_tokens


def run_merge_word_counts(*word_counts: Mapping[bytes, int]) -> dict[bytes, int]:
    from swivel_prep.pre_tokenization import merge_word_counts

    return dict(merge_word_counts(*word_counts))


def run_rank_vocabulary(vocab: Mapping[bytes, int]) -> list[tuple[bytes, int]]:
    from swivel_prep.vocabulary import rank_vocabulary

    return [(entry.word, entry.count) for entry in rank_vocabulary(vocab)]


def run_build_vocabulary(
    input_path: str | os.PathLike,
    num_workers: int,
    parallel: bool = True,
    cancel_event: threading.Event | None = None,
    **kwargs: Any,
) -> Any:
    """Given the path to a corpus, build its ranked vocabulary.

    Args:
        input_path (str | os.PathLike): Path to the corpus.
        num_workers (int): Number of byte ranges to split the corpus into.
        parallel (bool): Count the ranges in a process pool rather than in this process.
        cancel_event (threading.Event | None): Event that stops the run when set.
        **kwargs: Extra PrepConfig fields.

    Returns:
        VocabularyReport: The ranked vocabulary with per-chunk statistics.
    """
    from swivel_prep.config import PrepConfig
    from swivel_prep.pre_tokenization import build_vocabulary

    kwargs.setdefault("progress", False)
    config = PrepConfig(num_workers=num_workers, **kwargs)
    return build_vocabulary(input_path, config, parallel=parallel, cancel_event=cancel_event)


def as_counts(ranked: Iterable[Any]) -> dict[bytes, int]:
    return {entry.word: entry.count for entry in ranked}
