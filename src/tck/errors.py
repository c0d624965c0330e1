"""Error taxonomy shared by the RPC client, the observation sources and the harness.

Two families:

- ``HarnessError`` subclasses describe problems talking to the system under test.
  They are never retried by the harness.
- ``AssertionError`` subclasses describe expectations that did not hold. pytest reports
  them as ordinary assertion failures.
"""

from typing import Any


class HarnessError(Exception):
    """Base for non-assertion failures."""


class ConfigError(HarnessError):
    pass


class TransportError(HarnessError):
    """The system under test (or one of its companion services) could not be reached."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class OperationError(HarnessError):
    """The system under test answered with a JSON-RPC error object.

    code:
        JSON-RPC error code, the coarse classification (internal vs. application).
    status:
        Domain status string from ``error.data.status`` (e.g. ``INVALID_ACCOUNT_ID``), if any.
    """

    def __init__(
        self,
        code: int,
        message: str = "",
        *,
        status: str | None = None,
        data: Any = None,
        method: str | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status = status
        self.data = data
        self.method = method
        super().__init__(str(self))

    def __str__(self) -> str:
        s = f"{self.method or 'rpc'} failed: code={self.code}"
        if self.status:
            s += f" status={self.status}"
        if self.message:
            s += f" message={self.message!r}"
        return s

    @classmethod
    def from_error_object(cls, error: dict, method: str | None = None) -> "OperationError":
        data = error.get("data")
        status = data.get("status") if isinstance(data, dict) else None
        return cls(
            int(error.get("code", 0)),
            str(error.get("message", "")),
            status=status,
            data=data,
            method=method,
        )


class MethodNotImplemented(OperationError):
    """The service does not implement the requested method."""


class RetryableAssertionFailure(AssertionError):
    """An expectation is not met yet; re-reading later may succeed."""


class SourceLagging(RetryableAssertionFailure):
    """An observation source answered, but is not ready to serve the lookup."""


class FatalAssertionFailure(AssertionError):
    """An expectation can never be met by waiting longer."""


class ConvergenceTimeout(AssertionError):
    def __init__(
        self,
        description: str,
        *,
        attempts: int,
        elapsed: float,
        last_failure: AssertionError | None,
    ) -> None:
        self.description = description
        self.attempts = attempts
        self.elapsed = elapsed
        self.last_failure = last_failure
        detail = f": {last_failure}" if last_failure is not None and str(last_failure) else ""
        super().__init__(
            f"{description} did not converge within budget "
            f"({attempts} attempts, {elapsed:.2f}s){detail}"
        )
