import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from multiprocessing import Pool
from multiprocessing import TimeoutError as PoolTimeoutError
from types import MappingProxyType
from typing import BinaryIO

import tqdm

from ._types import Word, WordCount
from .config import MB, PrepConfig
from .errors import InvalidArgumentError, PipelineCancelledError, PipelineTimeoutError
from .scanner import WordScanner
from .utils import ByteRange, open_section, split_file
from .vocabulary import RankedVocabulary, rank_vocabulary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkStats:
    index: int
    byte_range: ByteRange
    bytes_read: int = 0
    tokens: int = 0
    skipped_tokens: int = 0
    error: str | None = None
    elapsed: float = 0.0

    @property
    def complete(self) -> bool:
        """True when the whole range was read without an I/O error."""
        return self.error is None and self.bytes_read == self.byte_range.size


@dataclass
class PartialVocabulary:
    stats: ChunkStats
    counts: WordCount


def merge_word_counts(*word_counts: Mapping[Word, int]) -> WordCount:
    """Merge multiple WordCount mappings into a new one.

    Returns:
        WordCount: Sum of the counts, word by word.
    """
    merged: WordCount = defaultdict(int)
    for word_count in word_counts:
        _fold(merged, word_count)
    return merged


def _fold(dst: WordCount, src: Mapping[Word, int]) -> None:
    for word, count in src.items():
        dst[word] += count


def count_stream(stream: BinaryIO, scanner: WordScanner) -> tuple[WordCount, int, OSError | None]:
    """
    Count the tokens of ``stream``.

    A read error ends the scan early; the counts gathered up to that point are kept.

    Returns:
        tuple[WordCount, int, OSError | None]: The counts, the number of tokens counted
            and the read error, if any.
    """
    counts: WordCount = defaultdict(int)
    tokens = 0
    try:
        for word in scanner.scan(stream):
            counts[word] += 1
            tokens += 1
    except OSError as e:
        return counts, tokens, e
    return counts, tokens, None


def count_chunk(file_path: str | os.PathLike, index: int, byte_range: ByteRange, config: PrepConfig) -> PartialVocabulary:
    logger.debug("%d - reading size:%.2f MB at offset %d", index, byte_range.size / MB, byte_range.start)
    start_time = time.perf_counter()

    scanner = WordScanner(
        buffer_size=config.buffer_size_for(byte_range.size),
        max_token_length=config.max_token_length,
    )
    counts: WordCount = defaultdict(int)
    tokens = 0
    bytes_read = 0
    error: OSError | None = None
    try:
        with open_section(file_path, byte_range) as section:
            counts, tokens, error = count_stream(section, scanner)
            bytes_read = section.tell()
    except OSError as e:
        error = e

    elapsed = time.perf_counter() - start_time
    if error is not None:
        logger.warning(
            "%d - stopped after %d of %d bytes, counts for this chunk are partial: %s",
            index, bytes_read, byte_range.size, error,
        )
    logger.debug("%d - read time:%.1f sec, words:%d, uniq:%d", index, elapsed, tokens, len(counts))

    stats = ChunkStats(
        index=index,
        byte_range=byte_range,
        bytes_read=bytes_read,
        tokens=tokens,
        skipped_tokens=scanner.skipped_tokens,
        error=None if error is None else f"{type(error).__name__}: {error}",
        elapsed=elapsed,
    )
    return PartialVocabulary(stats=stats, counts=counts)


class CompletionBarrier:
    """Counts hand-offs of partial vocabularies until ``expected`` of them arrived."""

    def __init__(self, expected: int):
        if expected <= 0:
            raise InvalidArgumentError(f"expected must be positive, got {expected}")
        self.expected = expected
        self._arrived = 0
        self._condition = threading.Condition()

    @property
    def arrived(self) -> int:
        with self._condition:
            return self._arrived

    @property
    def is_complete(self) -> bool:
        with self._condition:
            return self._arrived >= self.expected

    def arrive(self) -> None:
        with self._condition:
            if self._arrived >= self.expected:
                raise RuntimeError(f"barrier already received all {self.expected} arrivals")
            self._arrived += 1
            if self._arrived == self.expected:
                self._condition.notify_all()

    def wait(self, timeout: float | None = None) -> bool:
        with self._condition:
            return self._condition.wait_for(lambda: self._arrived >= self.expected, timeout)


class VocabAggregator:
    """Single owner of the global vocabulary.

    Partial vocabularies are folded in one at a time by whoever consumes the worker
    results; workers never see the global mapping. It becomes readable once the
    barrier has seen every chunk, and can no longer be merged into after that.
    """

    def __init__(self, barrier: CompletionBarrier):
        self.barrier = barrier
        self.chunks: list[ChunkStats] = []
        self._vocab: WordCount = defaultdict(int)

    def merge(self, partial: PartialVocabulary) -> None:
        if self.barrier.is_complete:
            raise RuntimeError("global vocabulary is final, no more partial vocabularies are accepted")
        _fold(self._vocab, partial.counts)
        self.chunks.append(partial.stats)
        self.barrier.arrive()

    @property
    def vocabulary(self) -> Mapping[Word, int]:
        if not self.barrier.is_complete:
            raise RuntimeError(
                f"global vocabulary is incomplete: {self.barrier.arrived} of {self.barrier.expected} chunks merged"
            )
        return MappingProxyType(self._vocab)

    def wait(self, timeout: float | None = None) -> Mapping[Word, int]:
        """Block until every chunk was merged, then return the global vocabulary."""
        if not self.barrier.wait(timeout):
            raise PipelineTimeoutError(
                f"timed out waiting for the global vocabulary: "
                f"{self.barrier.arrived} of {self.barrier.expected} chunks merged"
            )
        return self.vocabulary


@dataclass
class RunContext:
    """State of one vocabulary run, passed explicitly to the builder."""

    config: PrepConfig
    barrier: CompletionBarrier
    cancel_event: threading.Event | None = None
    deadline: float | None = None

    def check(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelledError(
                f"vocabulary run cancelled after {self.barrier.arrived} of {self.barrier.expected} chunks"
            )
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise PipelineTimeoutError(
                f"timed out after {self.config.timeout}s with "
                f"{self.barrier.arrived} of {self.barrier.expected} chunks merged"
            )

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait_budget(self) -> float:
        if self.deadline is None:
            return self.config.poll_interval
        return max(0.0, min(self.config.poll_interval, self.deadline - time.monotonic()))


@dataclass
class VocabularyReport:
    ranked: RankedVocabulary
    chunks: list[ChunkStats]
    file_size: int
    elapsed: float

    @property
    def distinct_words(self) -> int:
        return len(self.ranked)

    @property
    def total_tokens(self) -> int:
        return sum(chunk.tokens for chunk in self.chunks)

    @property
    def skipped_tokens(self) -> int:
        return sum(chunk.skipped_tokens for chunk in self.chunks)

    @property
    def bytes_read(self) -> int:
        return sum(chunk.bytes_read for chunk in self.chunks)

    @property
    def failed_chunks(self) -> list[ChunkStats]:
        return [chunk for chunk in self.chunks if not chunk.complete]

    @property
    def complete(self) -> bool:
        return not self.failed_chunks and self.bytes_read == self.file_size

    def summary(self) -> str:
        return (
            f"{self.bytes_read} of {self.file_size} bytes scanned in {len(self.chunks)} chunks "
            f"({len(self.failed_chunks)} incomplete), {self.total_tokens} words, "
            f"{self.distinct_words} uniq, {self.skipped_tokens} skipped, {self.elapsed:.1f}s"
        )


class VocabBuilder(ABC):
    def __init__(self, config: PrepConfig | None = None):
        self.config = config or PrepConfig()

    def __call__(self, corpus_path: str | os.PathLike, cancel_event: threading.Event | None = None) -> VocabularyReport:
        """
        Build the ranked vocabulary of the given corpus.

        Args:
            corpus_path (str | os.PathLike): Path to the corpus file.
            cancel_event (threading.Event | None): Set it to stop the run early.

        Returns:
            VocabularyReport: The ranked vocabulary and per-chunk statistics.

        Raises:
            InvalidArgumentError: If the file can't be split into ``num_workers`` chunks.
            OSError: If the file can't be inspected or opened.
            PipelineTimeoutError: If ``config.timeout`` elapsed before every chunk was merged.
            PipelineCancelledError: If ``cancel_event`` was set before every chunk was merged.
        """
        start_time = time.perf_counter()
        ranges = split_file(corpus_path, self.config.num_workers)

        context = RunContext(
            config=self.config,
            barrier=CompletionBarrier(len(ranges)),
            cancel_event=cancel_event,
            deadline=None if self.config.timeout is None else time.monotonic() + self.config.timeout,
        )
        aggregator = VocabAggregator(context.barrier)

        partials = self._count_chunks(corpus_path, ranges, context)
        try:
            for partial in tqdm.tqdm(
                partials, total=len(ranges), desc="Building vocabulary", disable=not self.config.progress
            ):
                aggregator.merge(partial)
        finally:
            partials.close()

        report = VocabularyReport(
            ranked=rank_vocabulary(aggregator.wait(timeout=context.remaining())),
            chunks=sorted(aggregator.chunks, key=lambda chunk: chunk.index),
            file_size=ranges[-1].end,
            elapsed=time.perf_counter() - start_time,
        )
        logger.info(report.summary())
        if not report.complete:
            logger.warning("Vocabulary is incomplete: %d chunk(s) stopped early", len(report.failed_chunks))
        return report

    @abstractmethod
    def _count_chunks(
        self, corpus_path: str | os.PathLike, ranges: list[ByteRange], context: RunContext
    ) -> Iterator[PartialVocabulary]:
        """
        Produce one PartialVocabulary per range, in any order.

        Args:
            corpus_path (str | os.PathLike): Path to the corpus file.
            ranges (list[ByteRange]): Disjoint ranges covering the file.
            context (RunContext): Configuration, cancellation and deadline of this run.
        """


class SequentialVocabBuilder(VocabBuilder):
    def _count_chunks(
        self, corpus_path: str | os.PathLike, ranges: list[ByteRange], context: RunContext
    ) -> Iterator[PartialVocabulary]:
        for index, byte_range in enumerate(ranges):
            context.check()
            yield count_chunk(corpus_path, index, byte_range, context.config)


class ParallelVocabBuilder(VocabBuilder):
    def _count_chunks(
        self, corpus_path: str | os.PathLike, ranges: list[ByteRange], context: RunContext
    ) -> Iterator[PartialVocabulary]:
        chunks_args = []
        for index, byte_range in enumerate(ranges):
            chunks_args.append((os.fspath(corpus_path), index, byte_range, context.config))
        processes = min(context.config.pool_size, len(chunks_args))

        # Leaving the block terminates the pool, which also stops in-flight workers on timeout or cancel.
        with Pool(processes=processes) as pool:
            chunk_iter = pool.imap_unordered(self._worker_wrapper, chunks_args)
            for _ in range(len(chunks_args)):
                yield self._next_partial(chunk_iter, context)

    @staticmethod
    def _next_partial(chunk_iter, context: RunContext) -> PartialVocabulary:
        while True:
            context.check()
            try:
                return chunk_iter.next(timeout=context.wait_budget())
            except PoolTimeoutError:
                continue

    @staticmethod
    def _worker_wrapper(args) -> PartialVocabulary:
        return count_chunk(*args)


def build_vocabulary(
    corpus_path: str | os.PathLike,
    config: PrepConfig | None = None,
    *,
    parallel: bool = True,
    cancel_event: threading.Event | None = None,
) -> VocabularyReport:
    builder_cls = ParallelVocabBuilder if parallel else SequentialVocabBuilder
    return builder_cls(config)(corpus_path, cancel_event=cancel_event)
