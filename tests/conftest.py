import random
from collections import Counter

import pytest

WORDS = [b"the", b"of", b"and", b"swivel", b"matrix", b"co-occurrence", "naïve".encode(), b"x", b"shard"]
SEPARATORS = [b" ", b"  ", b"\n", b"\t", b"\r\n", b"\x0b", b"\x0c", b" \n "]


def make_corpus(num_words: int, seed: int = 0) -> tuple[bytes, Counter]:
    rng = random.Random(seed)
    words = [rng.choice(WORDS) for _ in range(num_words)]
    parts = []
    for word in words:
        parts.append(word)
        parts.append(rng.choice(SEPARATORS))
    return b"".join(parts), Counter(words)


@pytest.fixture
def small_corpus(tmp_path):
    """A corpus whose exact word counts are known."""
    data, counts = make_corpus(2_000)
    path = tmp_path / "corpus.txt"
    path.write_bytes(data)
    return path, counts


@pytest.fixture
def text_file(tmp_path):
    def _write(data: bytes, name: str = "input.txt"):
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write
