from dataclasses import dataclass

from .errors import InvalidArgumentError

KB = 1 << 10
MB = 1 << 20


@dataclass(frozen=True)
class PrepConfig:
    """Settings for one vocabulary run.

    Attributes:
        num_workers (int): Number of byte ranges the input file is split into.
        processes (int | None): Size of the worker pool. Defaults to ``num_workers``;
            the two are independent so a file can be cut finer than the pool is wide.
        max_buffer_mb (int): Upper bound on a single read, in MB. The effective buffer
            of a worker is ``min(range size, max_buffer_mb)``.
        max_token_length (int): Longest token, in bytes, that is counted. Longer runs of
            non-whitespace are skipped.
        timeout (float | None): Seconds to wait for every chunk to be merged.
        progress (bool): Show a tqdm progress bar while chunks complete.
        poll_interval (float): How often the aggregator checks for cancellation while
            waiting on workers, in seconds.
    """

    num_workers: int = 1
    processes: int | None = None
    max_buffer_mb: int = 100
    max_token_length: int = 10 * KB
    timeout: float | None = None
    progress: bool = True
    poll_interval: float = 0.1

    def __post_init__(self) -> None:
        if self.num_workers <= 0:
            raise InvalidArgumentError(f"num_workers must be positive, got {self.num_workers}")
        if self.processes is not None and self.processes <= 0:
            raise InvalidArgumentError(f"processes must be positive, got {self.processes}")
        if self.max_buffer_mb <= 0:
            raise InvalidArgumentError(f"max_buffer_mb must be positive, got {self.max_buffer_mb}")
        if self.max_token_length <= 0:
            raise InvalidArgumentError(f"max_token_length must be positive, got {self.max_token_length}")
        if self.timeout is not None and self.timeout <= 0:
            raise InvalidArgumentError(f"timeout must be positive, got {self.timeout}")
        if self.poll_interval <= 0:
            raise InvalidArgumentError(f"poll_interval must be positive, got {self.poll_interval}")

    @property
    def max_buffer_bytes(self) -> int:
        return self.max_buffer_mb * MB

    @property
    def pool_size(self) -> int:
        return self.processes if self.processes is not None else self.num_workers

    def buffer_size_for(self, range_size: int) -> int:
        return max(1, min(range_size, self.max_buffer_bytes))
