"""JSON-RPC 2.0 client for the SDK-backed service under test.

One call is one HTTP POST. There are no retries here: operations are expected to succeed
or fail deterministically on the first attempt; only their *observable effects* are
eventually consistent, and waiting for those is the harness's job.
"""

import itertools
import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx

import tck.constants as C
from tck.errors import MethodNotImplemented, OperationError, TransportError
from tck.payload import Params, drop_unset, validate_params

if TYPE_CHECKING:
    from tck.config import NetworkConfig

log = logging.getLogger("tck.rpc")


class JsonRpcClient:
    def __init__(self, url: str, *, http: httpx.AsyncClient | None = None, timeout: float = C.RPC_TIMEOUT) -> None:
        self.url = url
        self.timeout = timeout
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count()

    @classmethod
    def from_config(cls, config: "NetworkConfig", *, http: httpx.AsyncClient | None = None) -> "JsonRpcClient":
        return cls(config.json_rpc_server_url, http=http, timeout=config.rpc_timeout)

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "JsonRpcClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    def build_request(self, method: str, params: Any = None) -> dict:
        if not isinstance(method, str) or not method:
            raise ValueError("operation name must be a non-empty string")
        return {
            "jsonrpc": C.JSONRPC_VERSION,
            "id": next(self._ids),
            "method": method,
            "params": validate_params(drop_unset(params)),
        }

    async def call(self, method: str, params: Params | None = None) -> dict:
        """Send one operation and return its ``result``.

        Raises OperationError when the service answers with an error object and
        TransportError when no well-formed answer arrives at all.
        """
        request = self.build_request(method, params)
        log.debug("-> %s id=%s %s", method, request["id"], request["params"])
        try:
            r = await self.http.post(self.url, json=request, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise TransportError(f"{method}: timed out after {self.timeout}s", url=self.url) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method}: {e.__class__.__name__}: {e}", url=self.url) from e

        if r.status_code != httpx.codes.OK:
            raise TransportError(f"{method}: HTTP {r.status_code} {r.reason_phrase}", url=self.url)
        try:
            response = r.json()
        except ValueError as e:
            raise TransportError(f"{method}: response is not JSON", url=self.url) from e
        if not isinstance(response, dict) or response.get("id") != request["id"]:
            raise TransportError(f"{method}: malformed JSON-RPC response {response!r}", url=self.url)

        if (error := response.get("error")) is not None:
            if not isinstance(error, dict):
                raise TransportError(f"{method}: malformed error object {error!r}", url=self.url)
            err_cls = MethodNotImplemented if error.get("code") == C.ErrorCode.METHOD_NOT_FOUND else OperationError
            err = err_cls.from_error_object(error, method)
            log.debug("<- %s id=%s %s", method, request["id"], err)
            raise err

        result = response.get("result")
        if isinstance(result, dict) and result.get("error") == C.NOT_IMPLEMENTED:
            raise MethodNotImplemented(C.ErrorCode.METHOD_NOT_FOUND, C.NOT_IMPLEMENTED, method=method)
        log.debug("<- %s id=%s ok", method, request["id"])
        return result if result is not None else {}


class HasRpcClient(Protocol):
    rpc: JsonRpcClient


def _client(context: "JsonRpcClient | HasRpcClient") -> JsonRpcClient:
    return context if isinstance(context, JsonRpcClient) else context.rpc


async def rpc_call(context: "JsonRpcClient | HasRpcClient", method: str, params: Params | None = None) -> dict:
    """Invoke ``method`` on the system under test within ``context``."""
    return await _client(context).call(method, params)


async def expect_failure(
    context: "JsonRpcClient | HasRpcClient", method: str, params: Params | None = None
) -> OperationError:
    """Invoke ``method`` expecting a rejection and return it for inspection.

    MethodNotImplemented is re-raised so it is never mistaken for the expected rejection.
    """
    try:
        result = await _client(context).call(method, params)
    except MethodNotImplemented:
        raise
    except OperationError as e:
        return e
    raise AssertionError(f"{method} should have failed, got {result!r}")
