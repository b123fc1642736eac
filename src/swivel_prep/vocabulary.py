import sys
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TextIO

import numpy as np
import tqdm

from ._types import Word


@dataclass(frozen=True, slots=True)
class RankedEntry:
    word: Word
    count: int

    @property
    def text(self) -> str:
        return self.word.decode("utf-8", errors="replace")


class RankedVocabulary(Sequence[RankedEntry]):
    """Words ordered by descending count; position in the sequence is the word id."""

    def __init__(self, entries: Iterable[RankedEntry]):
        self._entries = tuple(entries)
        self._counts = np.fromiter((entry.count for entry in self._entries), dtype=np.int64, count=len(self._entries))
        self._counts.setflags(write=False)
        if np.any(np.diff(self._counts) > 0):
            raise ValueError("entries must be sorted by descending count")
        self._ids: dict[Word, int] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index):
        if isinstance(index, slice):
            # only step-1 slices stay sorted by count
            if index.step not in (None, 1):
                return self._entries[index]
            return RankedVocabulary(self._entries[index])
        return self._entries[index]

    def __iter__(self) -> Iterator[RankedEntry]:
        return iter(self._entries)

    def __contains__(self, word: object) -> bool:
        return word in self._word_ids()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RankedVocabulary):
            return NotImplemented
        return self._entries == other._entries

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"RankedVocabulary(size={len(self)}, total_count={self.total_count})"

    def _word_ids(self) -> dict[Word, int]:
        if self._ids is None:
            self._ids = {entry.word: idx for idx, entry in enumerate(self._entries)}
        return self._ids

    @property
    def total_count(self) -> int:
        return int(self._counts.sum())

    def counts_array(self) -> np.ndarray:
        """Read-only int64 vector of counts, indexed by word id."""
        return self._counts

    def word_to_id(self) -> dict[Word, int]:
        return dict(self._word_ids())

    def id_of(self, word: Word) -> int:
        return self._word_ids()[word]

    def as_dict(self) -> dict[Word, int]:
        return {entry.word: entry.count for entry in self._entries}

    def top(self, k: int) -> list[RankedEntry]:
        return list(self._entries[:k])

    def truncate(self, max_size: int | None = None, min_count: int = 1) -> "RankedVocabulary":
        """
        Keep the most frequent words.

        Args:
            max_size (int | None): Keep at most this many words.
            min_count (int): Drop words seen fewer than this many times.

        Returns:
            RankedVocabulary: The kept prefix; ids of kept words are unchanged.
        """
        keep = int(np.count_nonzero(self._counts >= min_count))
        if max_size is not None:
            keep = min(keep, max(0, max_size))
        return RankedVocabulary(self._entries[:keep])

    def coverage(self, k: int) -> float:
        """Fraction of all token occurrences accounted for by the ``k`` most frequent words."""
        total = self.total_count
        if total == 0:
            return 0.0
        return float(self._counts[: max(0, k)].sum()) / total


def rank_vocabulary(vocab: Mapping[Word, int]) -> RankedVocabulary:
    """Order ``vocab`` by descending count.

    Words with equal counts are ordered by their bytes, ascending, so the ranking of a
    given vocabulary is always the same no matter how it was merged.
    """
    entries = sorted(vocab.items(), key=lambda item: (-item[1], item[0]))
    return RankedVocabulary(RankedEntry(word, count) for word, count in entries)


class VocabularyConsumer(ABC):
    """A stage that runs once the vocabulary is final, e.g. a co-occurrence shard builder."""

    @abstractmethod
    def consume(self, ranked: RankedVocabulary) -> None:
        """
        Take the finished vocabulary.

        Args:
            ranked (RankedVocabulary): Words ordered by descending count; a word's position is its id.
        """


class TopWordsPrinter(VocabularyConsumer):
    def __init__(self, top: int = 10, file: TextIO | None = None):
        self.top = top
        self.file = file

    def consume(self, ranked: RankedVocabulary) -> None:
        out = self.file or sys.stdout
        tqdm.tqdm.write("\n\tVocabulary:", file=out)
        for entry in ranked.top(self.top):
            tqdm.tqdm.write(f"\t {entry.text} - {entry.count}", file=out)
        tqdm.tqdm.write(f"Vocab size: {len(ranked)}", file=out)
