import json
from collections import defaultdict
from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio

from tck.consensus import ConsensusInfoClient
from tck.mirror import MirrorNodeClient
from tck.rpc import JsonRpcClient
from tck.sources import Observers

RPC_URL = "http://sdk-server:8544"
MIRROR_URL = "http://mirror:5551"


class FakeClock:
    """Monotonic clock whose time only moves when the harness sleeps."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RpcServer:
    """Scripted JSON-RPC endpoint, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.handlers: dict[str, Callable[[dict], dict]] = {}
        self.requests: list[dict] = []

    def on(self, method: str, result: Any = None, *, error: dict | None = None) -> None:
        if error is not None:
            self.handlers[method] = lambda params: {"error": error}
        else:
            self.handlers[method] = lambda params: {"result": result}

    def on_call(self, method: str, fn: Callable[[dict], dict]) -> None:
        self.handlers[method] = fn

    def calls(self, method: str) -> list[dict]:
        return [r["params"] for r in self.requests if r["method"] == method]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        handler = self.handlers.get(body["method"])
        if handler is None:
            outcome = {"error": {"code": -32601, "message": "Method not found"}}
        else:
            outcome = handler(body["params"])
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **outcome})


class MirrorServer:
    """Scripted mirror node REST API.

    Each route serves its responses in order; the last one repeats, which models an
    indexer that eventually catches up and then stays put.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list[tuple[int, Any]]] = {}
        self.hits: dict[str, int] = defaultdict(int)
        self.requests: list[httpx.Request] = []

    def route(self, path: str, *responses: tuple[int, Any] | dict) -> None:
        self.routes[path] = [r if isinstance(r, tuple) else (200, r) for r in responses]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        responses = self.routes.get(path)
        if not responses:
            return httpx.Response(404, json={"_status": {"messages": [{"message": "Not found"}]}})
        n = self.hits[path]
        self.hits[path] += 1
        status, body = responses[min(n, len(responses) - 1)]
        return httpx.Response(status, json=body)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rpc_server() -> RpcServer:
    return RpcServer()


@pytest.fixture
def mirror_server() -> MirrorServer:
    return MirrorServer()


@pytest_asyncio.fixture
async def rpc(rpc_server):
    async with httpx.AsyncClient(transport=httpx.MockTransport(rpc_server)) as http:
        yield JsonRpcClient(RPC_URL, http=http)


@pytest_asyncio.fixture
async def mirror(mirror_server):
    async with httpx.AsyncClient(transport=httpx.MockTransport(mirror_server)) as http:
        yield MirrorNodeClient(MIRROR_URL, http=http)


@pytest.fixture
def observers(rpc, mirror) -> Observers:
    return Observers(consensus=ConsensusInfoClient(rpc), mirror=mirror)
