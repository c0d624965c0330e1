from tck.errors import (
    ConvergenceTimeout,
    FatalAssertionFailure,
    MethodNotImplemented,
    OperationError,
    RetryableAssertionFailure,
    TransportError,
)
from tck.harness import Convergence, RetryPolicy, await_convergence
from tck.rpc import JsonRpcClient, expect_failure, rpc_call
from tck.session import Session
from tck.sources import EntityRef, Observers, Snapshot

__all__ = [
    "Convergence",
    "ConvergenceTimeout",
    "EntityRef",
    "FatalAssertionFailure",
    "JsonRpcClient",
    "MethodNotImplemented",
    "Observers",
    "OperationError",
    "RetryPolicy",
    "RetryableAssertionFailure",
    "Session",
    "Snapshot",
    "TransportError",
    "await_convergence",
    "expect_failure",
    "rpc_call",
]
