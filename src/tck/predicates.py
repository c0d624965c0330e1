"""Convergence predicates over the consensus and mirror views.

Each builder captures the expected values and returns an ``Expectation``: an async,
side-effect free callable that performs fresh lookups on every evaluation and raises
``RetryableAssertionFailure`` while the views do not match yet.

The mirror node omits zero-amount allowances and token relationships instead of
listing them with a zero value. Predicates expecting zero therefore treat a missing
entry as the terminal state, never as "not indexed yet"; otherwise the harness would
spin until its deadline on a condition that can never change.
"""

import asyncio
import base64
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tck.constants import EntityKind
from tck.errors import FatalAssertionFailure, RetryableAssertionFailure
from tck.sources import EntityRef, ObservationSource, Observers, Snapshot


@dataclass(frozen=True)
class Expectation:
    description: str
    check: Callable[[], Awaitable[None]]

    async def __call__(self) -> None:
        await self.check()

    def __str__(self) -> str:
        return self.description


def expect(condition: bool, message: str) -> None:
    if not condition:
        raise RetryableAssertionFailure(message)


def _int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def _both(observers: Observers, consensus_ref: EntityRef, mirror_ref: EntityRef | None = None) -> tuple[Snapshot, Snapshot]:
    return await asyncio.gather(
        observers.consensus.lookup(consensus_ref),
        observers.mirror.lookup(mirror_ref or consensus_ref),
    )


def _find(entries: list[dict], **match: Any) -> dict | None:
    for entry in entries:
        if all(str(entry.get(k)) == str(v) for k, v in match.items()):
            return entry
    return None


def hbar_balance(observers: Observers, account_id: str, tinybars: int) -> Expectation:
    ref = EntityRef.account(account_id)

    async def check() -> None:
        consensus, mirror = await _both(observers, ref)
        expect(consensus.found, f"account {account_id} not found on consensus")
        expect(mirror.found, f"account {account_id} not indexed by mirror yet")
        c = _int(consensus.get("balance"))
        m = _int(mirror.get("balance", "balance"))
        expect(c == tinybars, f"consensus balance of {account_id} is {c}, expected {tinybars}")
        expect(m == tinybars, f"mirror balance of {account_id} is {m}, expected {tinybars}")

    return Expectation(f"hbar balance of {account_id} == {tinybars}", check)


def token_balance(observers: Observers, account_id: str, token_id: str, amount: int) -> Expectation:
    """Absence of the token relationship on either view implies a zero balance."""
    ref = EntityRef.account(account_id)

    async def check() -> None:
        consensus, mirror = await _both(observers, ref)
        expect(consensus.found, f"account {account_id} not found on consensus")
        expect(mirror.found, f"account {account_id} not indexed by mirror yet")

        c = _int(consensus.get("tokenRelationships", token_id, "balance", default=0))
        entry = _find(mirror.get("balance", "tokens", default=[]), token_id=token_id)
        m = _int(entry.get("balance")) if entry else 0
        expect(c == amount, f"consensus balance of {token_id} for {account_id} is {c}, expected {amount}")
        expect(m == amount, f"mirror balance of {token_id} for {account_id} is {m}, expected {amount}")

    return Expectation(f"token {token_id} balance of {account_id} == {amount}", check)


def nft_ownership(observers: Observers, account_id: str, token_id: str, serial: int | str, possess: bool = True) -> Expectation:
    async def check() -> None:
        consensus, mirror = await _both(
            observers, EntityRef.nft(token_id, serial), EntityRef.account_nfts(account_id, token_id)
        )
        on_consensus = consensus.found and consensus.get("accountId") == account_id
        on_mirror = _find(mirror.items("nfts"), account_id=account_id, token_id=token_id, serial_number=serial) is not None
        expect(on_consensus == possess, f"consensus: {account_id} owns {token_id}/{serial} is {on_consensus}, expected {possess}")
        expect(on_mirror == possess, f"mirror: {account_id} owns {token_id}/{serial} is {on_mirror}, expected {possess}")

    verb = "owns" if possess else "does not own"
    return Expectation(f"{account_id} {verb} {token_id}/{serial}", check)


def _allowance(observers: Observers, kind: EntityKind, owner: str, amount: int, description: str, **match: Any) -> Expectation:
    ref = EntityRef.allowances(kind, owner)

    async def check() -> None:
        listing = await observers.mirror.lookup(ref)
        expect(listing.found, f"allowances of {owner} not indexed by mirror yet")
        entry = _find(listing.items("allowances"), owner=owner, **match)
        if entry is None:
            expect(amount == 0, f"no allowance from {owner} matching {match} on mirror")
            return
        found = _int(entry.get("amount"))
        expect(found == amount, f"mirror allowance from {owner} matching {match} is {found}, expected {amount}")

    return Expectation(description, check)


def hbar_allowance(observers: Observers, owner: str, spender: str, amount: int) -> Expectation:
    return _allowance(
        observers,
        EntityKind.CRYPTO_ALLOWANCES,
        owner,
        amount,
        f"hbar allowance {owner} -> {spender} == {amount}",
        spender=spender,
    )


def token_allowance(observers: Observers, owner: str, spender: str, token_id: str, amount: int) -> Expectation:
    return _allowance(
        observers,
        EntityKind.TOKEN_ALLOWANCES,
        owner,
        amount,
        f"token {token_id} allowance {owner} -> {spender} == {amount}",
        spender=spender,
        token_id=token_id,
    )


def nft_allowance(
    observers: Observers,
    owner: str,
    spender: str,
    token_id: str,
    serial: int | str,
    exists: bool = True,
    delegating_spender: str | None = None,
) -> Expectation:
    ref = EntityRef.account_nfts(owner, token_id)

    async def check() -> None:
        nfts = await observers.mirror.lookup(ref)
        match = dict(account_id=owner, spender=spender, token_id=token_id, serial_number=serial)
        if delegating_spender:
            match["delegating_spender"] = delegating_spender
        found = _find(nfts.items("nfts"), **match) is not None
        expect(found == exists, f"mirror: allowance on {token_id}/{serial} {owner} -> {spender} present is {found}, expected {exists}")

    return Expectation(f"nft allowance {owner} -> {spender} on {token_id}/{serial} exists={exists}", check)


def approved_for_all(observers: Observers, owner: str, spender: str, token_id: str, exists: bool = True) -> Expectation:
    ref = EntityRef.allowances(EntityKind.NFT_ALLOWANCES, owner)

    async def check() -> None:
        listing = await observers.mirror.lookup(ref)
        entry = _find(listing.items("allowances"), owner=owner, spender=spender, token_id=token_id)
        found = entry is not None and entry.get("approved_for_all", True) is not False
        expect(found == exists, f"mirror: {owner} approved all of {token_id} for {spender} is {found}, expected {exists}")

    return Expectation(f"{owner} approved all of {token_id} for {spender} exists={exists}", check)


def allowance_listing_length(observers: Observers, kind: EntityKind, account_id: str, length: int) -> Expectation:
    """The mirror allowance listing of ``account_id`` has exactly ``length`` entries."""
    ref = EntityRef.allowances(kind, account_id)

    async def check() -> None:
        listing = await observers.mirror.lookup(ref)
        expect(listing.found, f"{kind} of {account_id} not indexed by mirror yet")
        n = len(listing.items("allowances"))
        expect(n == length, f"mirror lists {n} {kind} for {account_id}, expected {length}")

    return Expectation(f"{kind} of {account_id} has {length} entries", check)


def entity_exists(
    observers: Observers,
    ref: EntityRef,
    exists: bool = True,
    *,
    sources: Iterable[ObservationSource] | None = None,
) -> Expectation:
    sources = tuple(sources) if sources is not None else tuple(observers)

    async def check() -> None:
        snapshots = await asyncio.gather(*(s.lookup(ref) for s in sources))
        for snap in snapshots:
            expect(snap.found == exists, f"{snap.source}: {ref} found is {snap.found}, expected {exists}")

    return Expectation(f"{ref} exists={exists}", check)


def field_agrees(
    observers: Observers,
    ref: EntityRef,
    consensus_path: tuple[str, ...],
    mirror_path: tuple[str, ...],
    expected: Any,
    transform: Callable[[Any], Any] = str,
) -> Expectation:
    """Both views report ``expected`` for one field, compared after ``transform``."""
    want = transform(expected)

    async def check() -> None:
        consensus, mirror = await _both(observers, ref)
        for snap, path in ((consensus, consensus_path), (mirror, mirror_path)):
            expect(snap.found, f"{snap.source}: {ref} not found")
            got = snap.get(*path)
            expect(
                got is not None and transform(got) == want,
                f"{snap.source}: {ref} {'.'.join(map(str, path))} is {got!r}, expected {expected!r}",
            )

    return Expectation(f"{ref} {'.'.join(map(str, consensus_path))} == {expected!r} on both views", check)


def pending_airdrop(observers: Observers, sender: str, receiver: str, token_id: str, amount: int) -> Expectation:
    async def check() -> None:
        outgoing, pending = await asyncio.gather(
            observers.mirror.lookup(EntityRef.outgoing_airdrops(sender)),
            observers.mirror.lookup(EntityRef.pending_airdrops(receiver)),
        )
        match = dict(sender_id=sender, receiver_id=receiver, token_id=token_id, amount=amount)
        expect(_find(outgoing.items("airdrops"), **match) is not None, f"no outgoing airdrop {match} for {sender}")
        expect(_find(pending.items("airdrops"), **match) is not None, f"no pending airdrop {match} for {receiver}")

    return Expectation(f"airdrop of {amount} {token_id} {sender} -> {receiver} pending", check)


def topic_messages(observers: Observers, topic_id: str, message: str) -> Expectation:
    """The mirror holds messages for ``topic_id`` whose decoded chunks join to ``message``."""
    ref = EntityRef.topic_messages(topic_id)

    async def check() -> None:
        listing = await observers.mirror.lookup(ref)
        chunks = [base64.b64decode(m.get("message") or "") for m in listing.items("messages")]
        expect(bool(chunks), f"no messages for topic {topic_id} on mirror yet")
        got = b"".join(chunks).decode("utf-8", errors="replace")
        expect(got == message, f"mirror messages of {topic_id} read {got!r}, expected {message!r}")

    return Expectation(f"topic {topic_id} messages == {message!r}", check)


def account_deleted(observers: Observers, account_id: str) -> Expectation:
    ref = EntityRef.account(account_id)

    async def check() -> None:
        consensus, mirror = await _both(observers, ref)
        expect(
            not consensus.found or consensus.get("isDeleted") is True,
            f"consensus still reports {account_id} as live",
        )
        expect(mirror.found, f"account {account_id} not indexed by mirror yet")
        expect(mirror.get("deleted") is True, f"mirror still reports {account_id} as live")

    return Expectation(f"account {account_id} deleted", check)


def immutable_field(source: ObservationSource, ref: EntityRef, path: tuple[str, ...], expected: Any) -> Expectation:
    """A field that can never change once the entity exists.

    Absence is retried; a present but different value is a FatalAssertionFailure.
    """

    async def check() -> None:
        snap = await source.lookup(ref)
        expect(snap.found, f"{source.name}: {ref} not found")
        got = snap.get(*path)
        if str(got) != str(expected):
            raise FatalAssertionFailure(
                f"{source.name}: {ref} {'.'.join(map(str, path))} is {got!r}, expected {expected!r}"
            )

    return Expectation(f"{ref} {'.'.join(map(str, path))} == {expected!r} on {source.name}", check)
