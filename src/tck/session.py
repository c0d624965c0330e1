"""Execution context for one test: configuration, RPC client and observation sources."""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from tck.config import NetworkConfig
from tck.consensus import ConsensusInfoClient
from tck.harness import Convergence, Predicate, await_convergence
from tck.mirror import MirrorNodeClient
from tck.rpc import JsonRpcClient
from tck.sources import Observers

log = logging.getLogger("tck.session")


@dataclass
class Session:
    config: NetworkConfig
    rpc: JsonRpcClient
    observers: Observers

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        config: NetworkConfig,
        *,
        rpc_http: httpx.AsyncClient | None = None,
        mirror_http: httpx.AsyncClient | None = None,
    ) -> AsyncIterator["Session"]:
        async with AsyncExitStack() as stack:
            rpc = JsonRpcClient.from_config(config, http=rpc_http)
            stack.push_async_callback(rpc.aclose)
            mirror = MirrorNodeClient.from_config(config, http=mirror_http)
            stack.push_async_callback(mirror.aclose)
            yield cls(config, rpc, Observers(consensus=ConsensusInfoClient(rpc), mirror=mirror))

    async def set_operator(self, account_id: str | None = None, private_key: str | None = None) -> dict:
        """Register the fee-paying operator (and, on local networks, the node endpoints)."""
        params = self.config.setup_params()
        if account_id is not None:
            params["operatorAccountId"] = account_id
        if private_key is not None:
            params["operatorPrivateKey"] = private_key
        log.debug("setup operator=%s network=%s", params["operatorAccountId"], self.config.network)
        return await self.rpc.call("setup", params)

    async def reset(self) -> dict:
        return await self.rpc.call("reset")

    async def await_convergence(self, predicate: Predicate, **kwargs) -> Convergence:
        """``tck.harness.await_convergence`` with this session's retry policy."""
        return await await_convergence(predicate, self.config.retry_policy(), **kwargs)
