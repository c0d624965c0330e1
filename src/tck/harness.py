"""Wait for the observable effects of an operation to become visible.

A mutating RPC call has already returned by the time the harness runs. What is left is
eventual consistency: the mirror node may not have indexed the change yet. The harness
re-evaluates a side-effect free predicate until it holds, a non-retryable error shows
up, or the deadline passes.

Classification of what a predicate raises:

- ``FatalAssertionFailure``: propagated immediately, no further attempts.
- any other ``AssertionError`` (``RetryableAssertionFailure``, a bare ``assert``):
  "not visible yet", retried.
- anything else (``TransportError``, ``OperationError``, ``KeyError``...): propagated
  immediately. Waiting does not fix a programming error or an unreachable service.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import tck.constants as C
from tck.errors import ConvergenceTimeout, FatalAssertionFailure, RetryableAssertionFailure

log = logging.getLogger("tck.harness")

Predicate = Callable[[], Awaitable[Any] | Any]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    timeout: float = C.CONVERGENCE_TIMEOUT
    interval: float = C.RETRY_INTERVAL

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")


DEFAULT_POLICY = RetryPolicy()


@dataclass(frozen=True, slots=True)
class Convergence:
    attempts: int
    elapsed: float

    @property
    def retries(self) -> int:
        return self.attempts - 1


def describe(predicate: Predicate) -> str:
    return (
        getattr(predicate, "description", None)
        or getattr(predicate, "__qualname__", None)
        or repr(predicate)
    )


async def _evaluate(predicate: Predicate) -> None:
    outcome = predicate()
    if inspect.isawaitable(outcome):
        outcome = await outcome
    if outcome is False:
        raise RetryableAssertionFailure("predicate returned False")


async def await_convergence(
    predicate: Predicate,
    policy: RetryPolicy | None = None,
    *,
    timeout: float | None = None,
    interval: float | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Convergence:
    """Evaluate ``predicate`` until it holds.

    Returns as soon as an evaluation succeeds, without sleeping. Raises
    ConvergenceTimeout carrying the last retryable failure once ``timeout`` seconds
    (measured on ``clock``) have passed. The last attempt is made at the deadline, so
    the timeout never fires early and never later than one interval past the budget.
    """
    policy = policy or DEFAULT_POLICY
    timeout = policy.timeout if timeout is None else timeout
    interval = policy.interval if interval is None else interval
    if timeout <= 0 or interval <= 0:
        raise ValueError("timeout and interval must be positive")

    name = describe(predicate)
    start = clock()
    deadline = start + timeout
    attempts = 0
    last: AssertionError | None = None

    while True:
        attempts += 1
        try:
            await _evaluate(predicate)
        except FatalAssertionFailure:
            log.warning("%s failed fatally after %d attempt(s)", name, attempts)
            raise
        except AssertionError as e:
            last = e
        else:
            elapsed = clock() - start
            if attempts > 1:
                log.debug("%s converged after %d attempts (%.2fs)", name, attempts, elapsed)
            return Convergence(attempts=attempts, elapsed=elapsed)

        now = clock()
        if now >= deadline:
            elapsed = now - start
            log.warning("%s did not converge after %d attempts (%.2fs): %s", name, attempts, elapsed, last)
            raise ConvergenceTimeout(name, attempts=attempts, elapsed=elapsed, last_failure=last) from last

        log.debug("%s not converged yet (attempt %d): %s", name, attempts, last)
        await sleep(min(interval, deadline - now))
