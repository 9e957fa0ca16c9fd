"""Exception types raised by the optimization layer.

Services only ever catch ``StorageError``: caching and telemetry fail open.
``ProviderError`` is raised by the provider clients and always reaches the
caller unchanged.
"""


class OptimizerError(Exception):
    """Base class for request-optimizer errors."""


class StorageError(OptimizerError):
    """A read or write against the persistent store failed."""


class ProviderError(OptimizerError):
    """An external provider call failed or returned an unusable payload.

    Attributes:
        code: Provider or HTTP error code, when known
        rate_limited: Whether the provider rejected the call for rate limiting
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        rate_limited: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.rate_limited = rate_limited
