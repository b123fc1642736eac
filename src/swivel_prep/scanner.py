import io
import logging
from collections.abc import Iterator
from typing import BinaryIO

import regex as re

from ._types import Word
from .config import KB, MB
from .errors import TokenTooLongError

logger = logging.getLogger(__name__)

# ASCII whitespace only, independent of locale: space, \t, \n, \v, \f, \r.
WHITESPACE = b" \t\n\r\x0b\x0c"

_TOKEN_PATTERN = re.compile(rb"[^ \t\n\r\x0b\x0c]+")
_SPACE_PATTERN = re.compile(rb"[ \t\n\r\x0b\x0c]")


class WordScanner:
    """Incremental whitespace tokenizer over a binary stream.

    The stream is read ``buffer_size`` bytes at a time. A token cut by a read boundary
    is carried over to the next read, but never beyond ``max_token_length`` bytes: a
    longer run is dropped up to the next whitespace and counted in ``skipped_tokens``.
    """

    def __init__(self, buffer_size: int = 100 * MB, max_token_length: int = 10 * KB, strict: bool = False):
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        if max_token_length <= 0:
            raise ValueError(f"max_token_length must be positive, got {max_token_length}")
        self.buffer_size = buffer_size
        self.max_token_length = max_token_length
        self.strict = strict
        self.skipped_tokens = 0

    def _too_long(self, length: int) -> None:
        error = TokenTooLongError(length, self.max_token_length)
        if self.strict:
            raise error
        self.skipped_tokens += 1
        logger.warning("Skipping token: %s", error)

    def scan(self, stream: BinaryIO) -> Iterator[Word]:
        """
        Yield the whitespace-delimited tokens of ``stream``.

        Args:
            stream (BinaryIO): Binary stream, read until it returns no more bytes.

        Yields:
            Word: The next token, as raw bytes.

        Raises:
            TokenTooLongError: Only when ``strict`` is set.
            OSError: Whatever the stream raises while reading.
        """
        pending = b""
        skipping = False

        while True:
            block = stream.read(self.buffer_size)
            if not block:
                break

            pos = 0
            if pending or skipping:
                space = _SPACE_PATTERN.search(block)
                head_end = space.start() if space else len(block)
                if skipping:
                    if space is None:
                        continue
                    skipping = False
                else:
                    pending += block[:head_end]
                    if len(pending) > self.max_token_length:
                        self._too_long(len(pending))
                        pending = b""
                        skipping = space is None
                        if skipping:
                            continue
                    elif space is None:
                        continue
                    else:
                        yield pending
                        pending = b""
                pos = head_end

            for match in _TOKEN_PATTERN.finditer(block, pos):
                token = match.group()
                if len(token) > self.max_token_length:
                    self._too_long(len(token))
                    if match.end() == len(block):
                        skipping = True
                    continue
                if match.end() == len(block):
                    pending = token
                else:
                    yield token

        if pending:
            yield pending


def scan_words(data: bytes, max_token_length: int = 10 * KB) -> list[Word]:
    scanner = WordScanner(buffer_size=max(1, len(data)), max_token_length=max_token_length)
    return list(scanner.scan(io.BytesIO(data)))
