"""Strongly consistent observation source.

Lookups are answered by the SDK-backed service's query methods, which the service
executes directly against consensus nodes. Results reflect finalized state as soon
as the mutating transaction has reached consensus.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from tck.constants import EntityKind, Status
from tck.errors import OperationError
from tck.payload import Params
from tck.rpc import JsonRpcClient
from tck.sources import EntityRef, Snapshot

log = logging.getLogger("tck.consensus")


@dataclass(frozen=True)
class _Query:
    method: str
    params: Callable[[EntityRef], Params]
    not_found: frozenset[str]


QUERIES: dict[EntityKind, _Query] = {
    EntityKind.ACCOUNT: _Query(
        "getAccountInfo",
        lambda ref: {"accountId": ref.id},
        frozenset({Status.INVALID_ACCOUNT_ID, Status.ACCOUNT_DELETED}),
    ),
    EntityKind.ACCOUNT_BALANCE: _Query(
        "getAccountBalance",
        lambda ref: {"accountId": ref.id},
        frozenset({Status.INVALID_ACCOUNT_ID, Status.ACCOUNT_DELETED}),
    ),
    EntityKind.TOKEN: _Query(
        "getTokenInfo",
        lambda ref: {"tokenId": ref.id},
        frozenset({Status.INVALID_TOKEN_ID}),
    ),
    EntityKind.NFT: _Query(
        "getTokenNftInfo",
        lambda ref: {"nftId": f"{ref.id}/{ref.qualifier}"},
        frozenset({Status.INVALID_NFT_ID, Status.INVALID_TOKEN_ID}),
    ),
    EntityKind.SCHEDULE: _Query(
        "getScheduleInfo",
        lambda ref: {"scheduleId": ref.id},
        frozenset({Status.INVALID_SCHEDULE_ID}),
    ),
    EntityKind.TOPIC: _Query(
        "getTopicInfo",
        lambda ref: {"topicId": ref.id},
        frozenset({Status.INVALID_TOPIC_ID}),
    ),
    EntityKind.FILE: _Query(
        "getFileInfo",
        lambda ref: {"fileId": ref.id},
        frozenset({Status.INVALID_FILE_ID}),
    ),
    EntityKind.CONTRACT: _Query(
        "contractInfoQuery",
        lambda ref: {"contractId": ref.id},
        frozenset({Status.INVALID_CONTRACT_ID}),
    ),
    EntityKind.FILE_CONTENTS: _Query(
        "getFileContents",
        lambda ref: {"fileId": ref.id},
        frozenset({Status.INVALID_FILE_ID}),
    ),
    EntityKind.TRANSACTION_RECEIPT: _Query(
        "getTransactionReceipt",
        lambda ref: {"transactionId": ref.id},
        frozenset({Status.INVALID_TRANSACTION_ID, Status.RECEIPT_NOT_FOUND}),
    ),
}


class ConsensusInfoClient:
    name = "consensus"

    def __init__(self, rpc: JsonRpcClient) -> None:
        self.rpc = rpc

    async def lookup(self, ref: EntityRef) -> Snapshot:
        query = QUERIES.get(ref.kind)
        if query is None:
            raise ValueError(f"consensus source cannot look up {ref.kind}")
        if ref.kind is EntityKind.NFT and not ref.qualifier:
            raise ValueError(f"NFT lookup needs a serial number: {ref}")
        try:
            result = await self.rpc.call(query.method, query.params(ref))
        except OperationError as e:
            if e.status in query.not_found:
                log.debug("%s not found on consensus (%s)", ref, e.status)
                return Snapshot.missing(ref, self.name)
            raise
        return Snapshot(ref, result, self.name)

    async def get_account_info(self, account_id: str) -> Snapshot:
        return await self.lookup(EntityRef.account(account_id))

    async def get_balance(self, account_id: str) -> Snapshot:
        return await self.lookup(EntityRef.account_balance(account_id))

    async def get_token_info(self, token_id: str) -> Snapshot:
        return await self.lookup(EntityRef.token(token_id))

    async def get_token_nft_info(self, token_id: str, serial: int | str) -> Snapshot:
        return await self.lookup(EntityRef.nft(token_id, serial))

    async def get_file_contents(self, file_id: str) -> Snapshot:
        return await self.lookup(EntityRef.file_contents(file_id))

    async def get_transaction_receipt(self, transaction_id: str) -> Snapshot:
        """Receipt of ``transaction_id``; its ``status`` is reported as data, not raised."""
        return await self.lookup(EntityRef.transaction_receipt(transaction_id))
