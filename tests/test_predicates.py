import pytest

from tck import predicates as P
from tck.constants import EntityKind
from tck.errors import ConvergenceTimeout, FatalAssertionFailure, RetryableAssertionFailure
from tck.harness import RetryPolicy, await_convergence
from tck.rpc import expect_failure
from tck.sources import EntityRef

pytestmark = pytest.mark.asyncio

POLICY = RetryPolicy(timeout=5.0, interval=0.5)

SENDER = "0.0.1001"
RECEIVER = "0.0.1002"
TOKEN = "0.0.5005"


def mirror_account(account_id: str, tinybars: int, tokens: list | None = None, deleted: bool = False) -> dict:
    return {"account": account_id, "balance": {"balance": tinybars, "tokens": tokens or []}, "deleted": deleted}


def consensus_accounts(rpc_server, balances: dict[str, dict]) -> None:
    def account_info(params):
        info = balances.get(params["accountId"])
        if info is None:
            return {"error": {"code": -32001, "message": "Hedera error", "data": {"status": "INVALID_ACCOUNT_ID"}}}
        return {"result": {"accountId": params["accountId"], **info}}

    rpc_server.on_call("getAccountInfo", account_info)


async def converge(predicate, clock):
    return await await_convergence(predicate, POLICY, clock=clock, sleep=clock.sleep)


# Scenario A
async def test_transfer_visible_on_first_read_returns_immediately(rpc, rpc_server, mirror_server, observers, clock):
    rpc_server.on("transferCrypto", {"status": "SUCCESS"})
    consensus_accounts(rpc_server, {SENDER: {"balance": "90"}, RECEIVER: {"balance": "10"}})
    mirror_server.route(f"/api/v1/accounts/{SENDER}", mirror_account(SENDER, 90))
    mirror_server.route(f"/api/v1/accounts/{RECEIVER}", mirror_account(RECEIVER, 10))

    await rpc.call("transferCrypto", {"transfers": [
        {"hbar": {"accountId": SENDER, "amount": "-10"}},
        {"hbar": {"accountId": RECEIVER, "amount": "10"}},
    ]})
    sent = await converge(P.hbar_balance(observers, SENDER, 90), clock)
    received = await converge(P.hbar_balance(observers, RECEIVER, 10), clock)

    assert sent.retries == received.retries == 0
    assert clock.sleeps == []
    assert len(rpc_server.calls("getAccountInfo")) == 2
    assert mirror_server.hits[f"/api/v1/accounts/{RECEIVER}"] == 1


# Scenario B
async def test_zero_allowance_absence_is_terminal(rpc, rpc_server, mirror_server, observers, clock):
    rpc_server.on("approveAllowance", {"status": "SUCCESS"})
    mirror_server.route(f"/api/v1/accounts/{SENDER}/allowances/crypto", {"allowances": [], "links": {"next": None}})

    await rpc.call("approveAllowance", {"allowances": [
        {"ownerAccountId": SENDER, "spenderAccountId": RECEIVER, "hbar": {"amount": "0"}},
    ]})
    listing = await converge(P.allowance_listing_length(observers, EntityKind.CRYPTO_ALLOWANCES, SENDER, 0), clock)
    amount = await converge(P.hbar_allowance(observers, SENDER, RECEIVER, 0), clock)

    assert listing.attempts == amount.attempts == 1
    assert clock.sleeps == []


# Scenario C
async def test_lagging_mirror_converges_after_two_retries(rpc, rpc_server, mirror_server, observers, clock):
    rpc_server.on("transferCrypto", {"status": "SUCCESS"})
    consensus_accounts(rpc_server, {RECEIVER: {"balance": "10"}})
    mirror_server.route(
        f"/api/v1/accounts/{RECEIVER}",
        mirror_account(RECEIVER, 0),
        mirror_account(RECEIVER, 0),
        mirror_account(RECEIVER, 10),
    )

    await rpc.call("transferCrypto", {"transfers": []})
    result = await converge(P.hbar_balance(observers, RECEIVER, 10), clock)

    assert result.attempts == 3
    assert result.retries == 2
    assert result.elapsed < POLICY.timeout
    assert clock.sleeps == [0.5, 0.5]


# Scenario D
async def test_rejected_operation_is_inspected_directly(rpc, rpc_server, mirror_server):
    rpc_server.on(
        "transferCrypto",
        error={"code": -32001, "message": "Hedera error", "data": {"status": "INVALID_ACCOUNT_ID"}},
    )
    err = await expect_failure(rpc, "transferCrypto", {"transfers": [{"hbar": {"accountId": "123.456.789", "amount": "-10"}}]})

    assert err.status == "INVALID_ACCOUNT_ID"
    assert rpc_server.calls("getAccountInfo") == []
    assert mirror_server.requests == []


async def test_hbar_balance_mismatch_times_out_with_detail(rpc_server, mirror_server, observers, clock):
    consensus_accounts(rpc_server, {RECEIVER: {"balance": "10"}})
    mirror_server.route(f"/api/v1/accounts/{RECEIVER}", mirror_account(RECEIVER, 0))

    with pytest.raises(ConvergenceTimeout) as info:
        await converge(P.hbar_balance(observers, RECEIVER, 10), clock)

    assert info.value.description == f"hbar balance of {RECEIVER} == 10"
    assert "mirror balance of 0.0.1002 is 0, expected 10" in str(info.value)


async def test_unindexed_account_is_retried(rpc_server, mirror_server, observers, clock):
    consensus_accounts(rpc_server, {RECEIVER: {"balance": "10"}})
    mirror_server.route(
        f"/api/v1/accounts/{RECEIVER}",
        (404, {}),
        mirror_account(RECEIVER, 10),
    )
    result = await converge(P.hbar_balance(observers, RECEIVER, 10), clock)
    assert result.attempts == 2


async def test_token_balance_absent_relationship_means_zero(rpc_server, mirror_server, observers, clock):
    consensus_accounts(rpc_server, {RECEIVER: {"balance": "10", "tokenRelationships": {}}})
    mirror_server.route(f"/api/v1/accounts/{RECEIVER}", mirror_account(RECEIVER, 10))

    result = await converge(P.token_balance(observers, RECEIVER, TOKEN, 0), clock)
    assert result.attempts == 1


async def test_token_balance_on_both_views(rpc_server, mirror_server, observers, clock):
    consensus_accounts(rpc_server, {RECEIVER: {"balance": "10", "tokenRelationships": {TOKEN: {"balance": "1000"}}}})
    mirror_server.route(
        f"/api/v1/accounts/{RECEIVER}",
        mirror_account(RECEIVER, 10),
        mirror_account(RECEIVER, 10, tokens=[{"token_id": TOKEN, "balance": 1000}]),
    )
    result = await converge(P.token_balance(observers, RECEIVER, TOKEN, 1000), clock)
    assert result.attempts == 2


async def test_nonzero_token_balance_never_satisfied_by_absence(rpc_server, mirror_server, observers):
    consensus_accounts(rpc_server, {RECEIVER: {"balance": "10", "tokenRelationships": {TOKEN: {"balance": "5"}}}})
    mirror_server.route(f"/api/v1/accounts/{RECEIVER}", mirror_account(RECEIVER, 10))

    with pytest.raises(RetryableAssertionFailure, match="mirror balance"):
        await P.token_balance(observers, RECEIVER, TOKEN, 5)()


async def test_nft_ownership(rpc_server, mirror_server, observers, clock):
    rpc_server.on("getTokenNftInfo", {"nftId": f"{TOKEN}/1", "accountId": RECEIVER})
    mirror_server.route(
        f"/api/v1/accounts/{RECEIVER}/nfts",
        {"nfts": [{"account_id": RECEIVER, "token_id": TOKEN, "serial_number": 1}], "links": {"next": None}},
    )
    await converge(P.nft_ownership(observers, RECEIVER, TOKEN, 1), clock)

    with pytest.raises(RetryableAssertionFailure):
        await P.nft_ownership(observers, RECEIVER, TOKEN, 1, possess=False)()


async def test_token_allowance_matches_owner_spender_and_token(mirror_server, observers, clock):
    mirror_server.route(
        f"/api/v1/accounts/{SENDER}/allowances/tokens",
        {"allowances": [
            {"owner": SENDER, "spender": RECEIVER, "token_id": "0.0.7777", "amount": 3},
            {"owner": SENDER, "spender": RECEIVER, "token_id": TOKEN, "amount": 10},
        ], "links": {"next": None}},
    )
    await converge(P.token_allowance(observers, SENDER, RECEIVER, TOKEN, 10), clock)

    with pytest.raises(RetryableAssertionFailure, match="is 10, expected 11"):
        await P.token_allowance(observers, SENDER, RECEIVER, TOKEN, 11)()


async def test_nonzero_allowance_missing_is_retryable(mirror_server, observers):
    mirror_server.route(f"/api/v1/accounts/{SENDER}/allowances/crypto", {"allowances": [], "links": {"next": None}})
    with pytest.raises(RetryableAssertionFailure, match="no allowance"):
        await P.hbar_allowance(observers, SENDER, RECEIVER, 10)()


async def test_nft_allowance_with_delegating_spender(mirror_server, observers, clock):
    mirror_server.route(
        f"/api/v1/accounts/{SENDER}/nfts",
        {"nfts": [{
            "account_id": SENDER, "spender": RECEIVER, "token_id": TOKEN, "serial_number": 2,
            "delegating_spender": "0.0.1003",
        }], "links": {"next": None}},
    )
    await converge(P.nft_allowance(observers, SENDER, RECEIVER, TOKEN, 2, delegating_spender="0.0.1003"), clock)
    await converge(P.nft_allowance(observers, SENDER, RECEIVER, TOKEN, 3, exists=False), clock)


async def test_approved_for_all(mirror_server, observers, clock):
    mirror_server.route(
        f"/api/v1/accounts/{SENDER}/allowances/nfts",
        {"allowances": [{"owner": SENDER, "spender": RECEIVER, "token_id": TOKEN, "approved_for_all": True}], "links": {"next": None}},
    )
    await converge(P.approved_for_all(observers, SENDER, RECEIVER, TOKEN), clock)
    await converge(P.approved_for_all(observers, SENDER, "0.0.1003", TOKEN, exists=False), clock)


async def test_entity_exists_on_selected_sources(rpc_server, observers, clock):
    rpc_server.on("getFileInfo", {"fileId": "0.0.150", "size": 3})
    ref = EntityRef.file("0.0.150")
    await converge(P.entity_exists(observers, ref, sources=[observers.consensus]), clock)


async def test_field_agrees_across_views(rpc_server, mirror_server, observers, clock):
    rpc_server.on("getTokenInfo", {"tokenId": TOKEN, "symbol": "TCK", "decimals": 2})
    mirror_server.route(f"/api/v1/tokens/{TOKEN}", {"token_id": TOKEN, "symbol": "OLD"}, {"token_id": TOKEN, "symbol": "TCK"})

    ref = EntityRef.token(TOKEN)
    result = await converge(P.field_agrees(observers, ref, ("symbol",), ("symbol",), "TCK"), clock)
    assert result.attempts == 2


async def test_pending_airdrop(mirror_server, observers, clock):
    airdrop = {"sender_id": SENDER, "receiver_id": RECEIVER, "token_id": TOKEN, "amount": 5}
    mirror_server.route(f"/api/v1/accounts/{SENDER}/airdrops/outstanding", {"airdrops": [airdrop], "links": {"next": None}})
    mirror_server.route(
        f"/api/v1/accounts/{RECEIVER}/airdrops/pending",
        {"airdrops": [], "links": {"next": None}},
        {"airdrops": [airdrop], "links": {"next": None}},
    )
    result = await converge(P.pending_airdrop(observers, SENDER, RECEIVER, TOKEN, 5), clock)
    assert result.attempts == 2


async def test_account_deleted(rpc_server, mirror_server, observers, clock):
    rpc_server.on(
        "getAccountInfo",
        error={"code": -32001, "message": "Hedera error", "data": {"status": "ACCOUNT_DELETED"}},
    )
    mirror_server.route(
        f"/api/v1/accounts/{SENDER}",
        mirror_account(SENDER, 0, deleted=False),
        mirror_account(SENDER, 0, deleted=True),
    )
    result = await converge(P.account_deleted(observers, SENDER), clock)
    assert result.attempts == 2


async def test_immutable_field_mismatch_is_fatal(rpc_server, observers, clock):
    rpc_server.on("getTokenInfo", {"tokenId": TOKEN, "decimals": 2})

    with pytest.raises(FatalAssertionFailure, match="decimals is 2"):
        await converge(P.immutable_field(observers.consensus, EntityRef.token(TOKEN), ("decimals",), 3), clock)
    assert clock.sleeps == []


async def test_expectation_is_side_effect_free(rpc_server, mirror_server, observers):
    consensus_accounts(rpc_server, {RECEIVER: {"balance": "10"}})
    mirror_server.route(f"/api/v1/accounts/{RECEIVER}", mirror_account(RECEIVER, 10))
    check = P.hbar_balance(observers, RECEIVER, 10)

    await check()
    await check()
    assert str(check) == f"hbar balance of {RECEIVER} == 10"
    assert {r["method"] for r in rpc_server.requests} == {"getAccountInfo"}
    assert all(r.method == "GET" for r in mirror_server.requests)


async def test_topic_messages_join_decoded_chunks(mirror_server, observers, clock):
    mirror_server.route(
        "/api/v1/topics/0.0.7007/messages",
        {"messages": [], "links": {"next": None}},
        {"messages": [{"message": "aGVsbG8="}, {"message": "IHdvcmxk"}], "links": {"next": None}},
    )
    result = await converge(P.topic_messages(observers, "0.0.7007", "hello world"), clock)
    assert result.attempts == 2
