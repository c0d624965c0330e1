"""Read-only views of ledger state.

Two canonical sources exist: the consensus view (``tck.consensus``), which reflects
finalized state as soon as a transaction reaches consensus, and the mirror view
(``tck.mirror``), fed by an indexer that lags by a variable, usually short, interval.
Neither is authoritative over the other.
"""

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from tck.constants import EntityKind


@dataclass(frozen=True, slots=True)
class EntityRef:
    kind: EntityKind
    id: str
    qualifier: str | None = None

    def __str__(self) -> str:
        s = f"{self.kind}:{self.id}"
        return f"{s}/{self.qualifier}" if self.qualifier else s

    @classmethod
    def account(cls, account_id: str) -> "EntityRef":
        return cls(EntityKind.ACCOUNT, account_id)

    @classmethod
    def account_balance(cls, account_id: str) -> "EntityRef":
        return cls(EntityKind.ACCOUNT_BALANCE, account_id)

    @classmethod
    def token(cls, token_id: str) -> "EntityRef":
        return cls(EntityKind.TOKEN, token_id)

    @classmethod
    def nft(cls, token_id: str, serial: int | str) -> "EntityRef":
        return cls(EntityKind.NFT, token_id, str(serial))

    @classmethod
    def schedule(cls, schedule_id: str) -> "EntityRef":
        return cls(EntityKind.SCHEDULE, schedule_id)

    @classmethod
    def topic(cls, topic_id: str) -> "EntityRef":
        return cls(EntityKind.TOPIC, topic_id)

    @classmethod
    def file(cls, file_id: str) -> "EntityRef":
        return cls(EntityKind.FILE, file_id)

    @classmethod
    def contract(cls, contract_id: str) -> "EntityRef":
        return cls(EntityKind.CONTRACT, contract_id)

    @classmethod
    def account_nfts(cls, account_id: str, token_id: str | None = None) -> "EntityRef":
        return cls(EntityKind.ACCOUNT_NFTS, account_id, token_id)

    @classmethod
    def account_tokens(cls, account_id: str, token_id: str | None = None) -> "EntityRef":
        return cls(EntityKind.ACCOUNT_TOKENS, account_id, token_id)

    @classmethod
    def allowances(cls, kind: EntityKind, owner_id: str) -> "EntityRef":
        if kind not in (EntityKind.CRYPTO_ALLOWANCES, EntityKind.TOKEN_ALLOWANCES, EntityKind.NFT_ALLOWANCES):
            raise ValueError(f"{kind} is not an allowance listing")
        return cls(kind, owner_id)

    @classmethod
    def outgoing_airdrops(cls, sender_id: str) -> "EntityRef":
        return cls(EntityKind.OUTGOING_AIRDROPS, sender_id)

    @classmethod
    def pending_airdrops(cls, receiver_id: str) -> "EntityRef":
        return cls(EntityKind.PENDING_AIRDROPS, receiver_id)

    @classmethod
    def node(cls, node_id: int | str) -> "EntityRef":
        return cls(EntityKind.NODE, str(node_id))

    @classmethod
    def topic_messages(cls, topic_id: str) -> "EntityRef":
        return cls(EntityKind.TOPIC_MESSAGES, topic_id)

    @classmethod
    def file_contents(cls, file_id: str) -> "EntityRef":
        return cls(EntityKind.FILE_CONTENTS, file_id)

    @classmethod
    def transaction_receipt(cls, transaction_id: str) -> "EntityRef":
        return cls(EntityKind.TRANSACTION_RECEIPT, transaction_id)


_MISSING = object()


@dataclass(frozen=True, slots=True)
class Snapshot:
    """What one source reported for one entity at one point in time.

    ``data is None`` means the source does not know the entity. That is a valid state,
    distinct from an entity that exists with an empty or zero value.
    """

    ref: EntityRef
    data: dict | None
    source: str

    @classmethod
    def missing(cls, ref: EntityRef, source: str) -> "Snapshot":
        return cls(ref, None, source)

    @property
    def found(self) -> bool:
        return self.data is not None

    def get(self, *path: str | int, default: Any = None) -> Any:
        """Walk nested mappings/lists; ``default`` if any step is absent."""
        node: Any = self.data
        for step in path:
            if isinstance(node, dict):
                node = node.get(step, _MISSING)
            elif isinstance(node, list) and isinstance(step, int) and -len(node) <= step < len(node):
                node = node[step]
            else:
                node = _MISSING
            if node is _MISSING:
                return default
        return default if node is None else node

    def items(self, key: str) -> list[dict]:
        """Entries of a listing such as ``allowances`` or ``nfts``; empty if not found."""
        entries = self.get(key, default=[])
        return entries if isinstance(entries, list) else []

    def __str__(self) -> str:
        return f"{self.source}[{self.ref}]={'<not found>' if self.data is None else self.data}"


@runtime_checkable
class ObservationSource(Protocol):
    name: str

    async def lookup(self, ref: EntityRef) -> Snapshot: ...


@dataclass(frozen=True, slots=True)
class Observers:
    consensus: ObservationSource
    mirror: ObservationSource

    def __iter__(self):
        return iter((self.consensus, self.mirror))
