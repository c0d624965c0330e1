"""Asynchronously indexed observation source: the mirror node REST API.

The mirror node is fed by an importer that trails consensus. A record that is absent
here may simply not be indexed yet; deciding whether absence is terminal is left to
the predicates, never to this client.
"""

import logging
from typing import TYPE_CHECKING

import httpx

import tck.constants as C
from tck.constants import EntityKind
from tck.errors import SourceLagging, TransportError
from tck.sources import EntityRef, Snapshot

if TYPE_CHECKING:
    from tck.config import NetworkConfig

log = logging.getLogger("tck.mirror")

API = "/api/v1"
MAX_PAGES = 20

# kind -> (path template, key holding the list for paginated listings)
ENDPOINTS: dict[EntityKind, tuple[str, str | None]] = {
    EntityKind.ACCOUNT:           ("/accounts/{id}", None),
    EntityKind.ACCOUNT_BALANCE:   ("/balances", "balances"),
    EntityKind.TOKEN:             ("/tokens/{id}", None),
    EntityKind.NFT:               ("/tokens/{id}/nfts/{qualifier}", None),
    EntityKind.SCHEDULE:          ("/schedules/{id}", None),
    EntityKind.TOPIC:             ("/topics/{id}", None),
    EntityKind.CONTRACT:          ("/contracts/{id}", None),
    EntityKind.ACCOUNT_NFTS:      ("/accounts/{id}/nfts", "nfts"),
    EntityKind.ACCOUNT_TOKENS:    ("/accounts/{id}/tokens", "tokens"),
    EntityKind.CRYPTO_ALLOWANCES: ("/accounts/{id}/allowances/crypto", "allowances"),
    EntityKind.TOKEN_ALLOWANCES:  ("/accounts/{id}/allowances/tokens", "allowances"),
    EntityKind.NFT_ALLOWANCES:    ("/accounts/{id}/allowances/nfts", "allowances"),
    EntityKind.OUTGOING_AIRDROPS: ("/accounts/{id}/airdrops/outstanding", "airdrops"),
    EntityKind.PENDING_AIRDROPS:  ("/accounts/{id}/airdrops/pending", "airdrops"),
    EntityKind.NODE:              ("/network/nodes", "nodes"),
    EntityKind.TOPIC_MESSAGES:    ("/topics/{id}/messages", "messages"),
}

# Served by the REST Java service when one is configured
JAVA_KINDS = frozenset({EntityKind.OUTGOING_AIRDROPS, EntityKind.PENDING_AIRDROPS})

# Listings filtered to one entity by a query parameter; the snapshot is that entry
SINGLE_ENTRY = {
    EntityKind.ACCOUNT_BALANCE: "account.id",
    EntityKind.NODE: "node.id",
}

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class MirrorNodeClient:
    name = "mirror"

    def __init__(
        self,
        base_url: str,
        *,
        java_url: str | None = None,
        http: httpx.AsyncClient | None = None,
        timeout: float = C.MIRROR_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.java_url = java_url.rstrip("/") if java_url else None
        self.timeout = timeout
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_config(cls, config: "NetworkConfig", *, http: httpx.AsyncClient | None = None) -> "MirrorNodeClient":
        return cls(
            config.mirror_node_rest_url,
            java_url=config.mirror_node_rest_java_url,
            http=http,
            timeout=config.mirror_timeout,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    def url_for(self, ref: EntityRef) -> tuple[str, dict]:
        try:
            template, _ = ENDPOINTS[ref.kind]
        except KeyError:
            raise ValueError(f"mirror source cannot look up {ref.kind}") from None
        if ref.kind is EntityKind.NFT and not ref.qualifier:
            raise ValueError(f"NFT lookup needs a serial number: {ref}")

        base = self.java_url if ref.kind in JAVA_KINDS and self.java_url else self.base_url
        params: dict = {}
        if ref.kind in SINGLE_ENTRY:
            params[SINGLE_ENTRY[ref.kind]] = ref.id
        elif ref.kind in (EntityKind.ACCOUNT_NFTS, EntityKind.ACCOUNT_TOKENS) and ref.qualifier:
            params["token.id"] = ref.qualifier
        return base + API + template.format(id=ref.id, qualifier=ref.qualifier), params

    async def _get(self, url: str, params: dict | None = None) -> dict | None:
        try:
            r = await self.http.get(url, params=params, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise TransportError(f"mirror GET {url}: {e.__class__.__name__}: {e}", url=url) from e

        if r.status_code == httpx.codes.NOT_FOUND:
            return None
        if r.status_code in RETRYABLE_STATUS:
            raise SourceLagging(f"mirror GET {url}: HTTP {r.status_code}")
        if r.status_code != httpx.codes.OK:
            raise TransportError(f"mirror GET {url}: HTTP {r.status_code} {r.text[:200]}", url=url)
        try:
            data = r.json()
        except ValueError as e:
            raise TransportError(f"mirror GET {url}: response is not JSON", url=url) from e
        if not isinstance(data, dict):
            raise TransportError(f"mirror GET {url}: expected an object, got {type(data).__name__}", url=url)
        return data

    async def lookup(self, ref: EntityRef) -> Snapshot:
        url, params = self.url_for(ref)
        _, list_key = ENDPOINTS[ref.kind]
        data = await self._get(url, params)
        if data is None:
            log.debug("%s not found on mirror", ref)
            return Snapshot.missing(ref, self.name)

        if list_key is not None:
            data = await self._collect_pages(url, data, list_key)
            if ref.kind in SINGLE_ENTRY:
                entries = data.get(list_key) or []
                if not entries:
                    return Snapshot.missing(ref, self.name)
                data = entries[0]
        return Snapshot(ref, data, self.name)

    async def _collect_pages(self, url: str, first: dict, list_key: str) -> dict:
        """Follow ``links.next`` and return the first page with every page's entries."""
        entries = list(first.get(list_key) or [])
        page = first
        for _ in range(MAX_PAGES - 1):
            nxt = (page.get("links") or {}).get("next")
            if not nxt:
                break
            page = await self._get(str(httpx.URL(url).join(nxt)))
            if page is None:
                break
            entries.extend(page.get(list_key) or [])
        else:
            log.warning("mirror listing %s truncated after %d pages", url, MAX_PAGES)
        return {**first, list_key: entries, "links": {"next": None}}

    async def get_account_data(self, account_id: str) -> Snapshot:
        return await self.lookup(EntityRef.account(account_id))

    async def get_token_data(self, token_id: str) -> Snapshot:
        return await self.lookup(EntityRef.token(token_id))

    async def get_account_nfts(self, account_id: str, token_id: str | None = None) -> Snapshot:
        return await self.lookup(EntityRef.account_nfts(account_id, token_id))

    async def get_token_relationships(self, account_id: str, token_id: str | None = None) -> Snapshot:
        return await self.lookup(EntityRef.account_tokens(account_id, token_id))

    async def get_hbar_allowances(self, owner_id: str) -> Snapshot:
        return await self.lookup(EntityRef.allowances(EntityKind.CRYPTO_ALLOWANCES, owner_id))

    async def get_token_allowances(self, owner_id: str) -> Snapshot:
        return await self.lookup(EntityRef.allowances(EntityKind.TOKEN_ALLOWANCES, owner_id))

    async def get_nft_allowances(self, owner_id: str) -> Snapshot:
        return await self.lookup(EntityRef.allowances(EntityKind.NFT_ALLOWANCES, owner_id))

    async def get_node_data(self, node_id: int | str) -> Snapshot:
        return await self.lookup(EntityRef.node(node_id))

    async def get_topic_messages(self, topic_id: str) -> Snapshot:
        return await self.lookup(EntityRef.topic_messages(topic_id))
