class InvalidArgumentError(ValueError):
    """A run was requested with arguments it can never satisfy."""


class TokenTooLongError(ValueError):
    """A run of non-whitespace bytes exceeded the maximum token length."""

    def __init__(self, length: int, limit: int):
        super().__init__(f"token of at least {length} bytes exceeds the limit of {limit} bytes")
        self.length = length
        self.limit = limit

    def __reduce__(self):
        return (type(self), (self.length, self.limit))


class PipelineTimeoutError(TimeoutError):
    pass


class PipelineCancelledError(RuntimeError):
    pass
