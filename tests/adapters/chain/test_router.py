from __future__ import annotations

import asyncio
from collections import Counter

import httpx
import pytest

from satregistry.adapters.chain import BlockstreamAuth, ProviderRouter, ProviderStatus, RequestKind
from satregistry.config.http_resilience import ResilienceConfig
from satregistry.config.providers import (
    BlockstreamAuthConfig,
    ProviderApi,
    ProviderConfig,
    ProviderSettings,
)
from satregistry.domain.errors import ProvidersExhaustedError
from satregistry.domain.types import LedgerPosition, TxStatus
from tests.helpers.http import make_client_factory, no_sleep

TXID = "a" * 64
BLOCK_HASH = "0" * 64

CONFIRMED_TX = {
    "txid": TXID,
    "status": {"confirmed": True, "block_height": 800000, "block_hash": BLOCK_HASH},
}


def _settings(name: str, api: ProviderApi, **kwargs: object) -> ProviderSettings:
    return ProviderSettings(
        name=name,
        api=api,
        resilience=ResilienceConfig(name=name, base_url=f"https://{name}.test/api"),
        **kwargs,  # type: ignore[arg-type]
    )


def _esplora_chain(**blockstream: object) -> ProviderConfig:
    return ProviderConfig(
        providers=(
            _settings("mempool", ProviderApi.ESPLORA),
            _settings("blockstream", ProviderApi.ESPLORA, **blockstream),
        ),
        request_delay=0.0,
    )


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_rate_limited_provider_is_not_retried_within_run() -> None:
    calls: Counter[str] = Counter()

    def handler(request: httpx.Request) -> httpx.Response:
        calls[request.url.host] += 1
        if request.url.host == "mempool.test":
            return httpx.Response(429)
        return httpx.Response(200, json=CONFIRMED_TX)

    async def run() -> tuple[TxStatus, TxStatus, int]:
        router = ProviderRouter(
            _esplora_chain(), client_factory=make_client_factory(handler), sleep=no_sleep
        )
        async with router:
            first = await router.tx_status(TXID)
            second = await router.tx_status(TXID)
            return first, second, router.cursor

    first, second, cursor = asyncio.run(run())

    assert first == TxStatus(confirmed=True, block_height=800000, block_hash=BLOCK_HASH)
    assert second == first
    assert cursor == 1
    assert calls == Counter({"mempool.test": 1, "blockstream.test": 2})


def test_transient_failure_falls_through_without_moving_cursor() -> None:
    calls: Counter[str] = Counter()

    def handler(request: httpx.Request) -> httpx.Response:
        calls[request.url.host] += 1
        if request.url.host == "mempool.test" and calls["mempool.test"] == 1:
            return httpx.Response(500)
        return httpx.Response(200, json=CONFIRMED_TX)

    async def run() -> int:
        router = ProviderRouter(
            _esplora_chain(), client_factory=make_client_factory(handler), sleep=no_sleep
        )
        async with router:
            await router.tx_status(TXID)
            await router.tx_status(TXID)
            return router.cursor

    assert asyncio.run(run()) == 0
    assert calls == Counter({"mempool.test": 2, "blockstream.test": 1})


def test_malformed_payload_moves_to_next_provider() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "mempool.test":
            return httpx.Response(200, json={"unexpected": True})
        return httpx.Response(200, json=CONFIRMED_TX)

    async def run() -> TxStatus:
        router = ProviderRouter(
            _esplora_chain(), client_factory=make_client_factory(handler), sleep=no_sleep
        )
        async with router:
            return await router.tx_status(TXID)

    assert asyncio.run(run()).confirmed


def test_exhausting_every_provider_raises() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(429)

    async def run() -> None:
        router = ProviderRouter(
            _esplora_chain(), client_factory=make_client_factory(handler), sleep=no_sleep
        )
        async with router:
            await router.tx_status(TXID)

    with pytest.raises(ProvidersExhaustedError):
        asyncio.run(run())


def test_unsupported_kind_is_skipped_without_moving_cursor() -> None:
    config = ProviderConfig(
        providers=(
            _settings("blockchair", ProviderApi.BLOCKCHAIR),
            _settings("mempool", ProviderApi.ESPLORA),
        ),
        request_delay=0.0,
    )
    hosts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        if request.url.host == "blockchair.test":
            return httpx.Response(
                200, json={"data": {BLOCK_HASH: {"transactions": ["t0", TXID]}}}
            )
        return httpx.Response(200, json=CONFIRMED_TX)

    async def run() -> tuple[TxStatus, object, int]:
        router = ProviderRouter(config, client_factory=make_client_factory(handler), sleep=no_sleep)
        async with router:
            status = await router.tx_status(TXID)
            txids = await router.request(RequestKind.BLOCK_TXIDS, BLOCK_HASH)
            return status, txids, router.cursor

    status, txids, cursor = asyncio.run(run())

    assert status.block_height == 800000
    assert txids == ["t0", TXID]
    assert cursor == 0
    assert hosts == ["mempool.test", "blockchair.test"]


def test_quota_exhaustion_resets_on_new_run_after_window() -> None:
    clock = FakeClock()
    config = ProviderConfig(
        providers=(
            _settings("mempool", ProviderApi.ESPLORA, quota=1, window_seconds=60.0),
            _settings("blockstream", ProviderApi.ESPLORA),
        ),
        request_delay=0.0,
    )
    hosts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        return httpx.Response(200, json=CONFIRMED_TX)

    async def run() -> list[int]:
        router = ProviderRouter(
            config, client_factory=make_client_factory(handler), clock=clock, sleep=no_sleep
        )
        cursors: list[int] = []
        async with router:
            await router.tx_status(TXID)
            cursors.append(router.cursor)
            await router.tx_status(TXID)
            router.begin_run()
            cursors.append(router.cursor)
            await router.tx_status(TXID)
            clock.now += 61.0
            router.begin_run()
            await router.tx_status(TXID)
            cursors.append(router.cursor)
        return cursors

    cursors = asyncio.run(run())

    assert cursors == [1, 0, 1]
    assert hosts == ["mempool.test", "blockstream.test", "blockstream.test", "mempool.test"]


def test_ledger_position_caches_block_order() -> None:
    other = "b" * 64
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path.endswith("/txids"):
            return httpx.Response(200, json=["c" * 64, TXID, other])
        txid = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={**CONFIRMED_TX, "txid": txid})

    async def run() -> tuple[LedgerPosition, LedgerPosition, int]:
        router = ProviderRouter(
            _esplora_chain(), client_factory=make_client_factory(handler), sleep=no_sleep
        )
        async with router:
            first = await router.ledger_position(TXID)
            second = await router.ledger_position(other)
            return first, second, len(router.tx_order)

    first, second, cached = asyncio.run(run())

    assert first == LedgerPosition(block_height=800000, block_position=1)
    assert second == LedgerPosition(block_height=800000, block_position=2)
    assert cached == 1
    assert paths.count(f"/api/block/{BLOCK_HASH}/txids") == 1


def test_ledger_position_of_unconfirmed_transaction_is_empty() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"txid": TXID, "status": {"confirmed": False}})

    async def run() -> LedgerPosition:
        router = ProviderRouter(
            _esplora_chain(), client_factory=make_client_factory(handler), sleep=no_sleep
        )
        async with router:
            return await router.ledger_position(TXID)

    position = asyncio.run(run())

    assert position == LedgerPosition()
    assert not position.confirmed


def test_rejected_credentials_are_dropped_and_request_retried() -> None:
    seen_auth: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "login.test":
            return httpx.Response(200, json={"access_token": "secret", "expires_in": 300})
        if request.url.host == "mempool.test":
            return httpx.Response(429)
        authorization = request.headers.get("Authorization")
        seen_auth.append(authorization)
        if authorization:
            return httpx.Response(401)
        return httpx.Response(200, json=CONFIRMED_TX)

    factory = make_client_factory(handler)
    auth = BlockstreamAuth(
        BlockstreamAuthConfig("id", "secret", token_url="https://login.test/token"),
        client_factory=factory,
    )

    async def run() -> TxStatus:
        router = ProviderRouter(
            _esplora_chain(authenticated=True),
            client_factory=factory,
            auth=auth,
            sleep=no_sleep,
        )
        async with router:
            status = await router.tx_status(TXID)
            await router.tx_status(TXID)
            return status

    status = asyncio.run(run())

    assert status.confirmed
    assert seen_auth == ["Bearer secret", None, None]
    assert not auth.active


@pytest.mark.parametrize("status_code", [401, 403])
def test_unauthenticated_rejection_counts_as_rate_limit(status_code: int) -> None:
    calls: Counter[str] = Counter()

    def handler(request: httpx.Request) -> httpx.Response:
        calls[request.url.host] += 1
        if request.url.host == "mempool.test":
            return httpx.Response(status_code)
        return httpx.Response(200, json=CONFIRMED_TX)

    async def run() -> tuple[TxStatus, ProviderRouter]:
        router = ProviderRouter(
            _esplora_chain(), client_factory=make_client_factory(handler), sleep=no_sleep
        )
        async with router:
            status = await router.tx_status(TXID)
            await router.tx_status(TXID)
            return status, router

    status, router = asyncio.run(run())

    assert status.confirmed
    assert router.cursor == 1
    assert router.states["mempool"].status is ProviderStatus.EXHAUSTED
    assert router.states["blockstream"].status is ProviderStatus.ACTIVE
    assert calls == Counter({"mempool.test": 1, "blockstream.test": 2})


def test_failed_unauthenticated_retry_exhausts_provider() -> None:
    config = ProviderConfig(
        providers=(
            _settings("blockstream", ProviderApi.ESPLORA, authenticated=True),
            _settings("mempool", ProviderApi.ESPLORA),
        ),
        request_delay=0.0,
    )
    seen_auth: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "login.test":
            return httpx.Response(200, json={"access_token": "secret", "expires_in": 300})
        if request.url.host == "mempool.test":
            return httpx.Response(200, json=CONFIRMED_TX)
        authorization = request.headers.get("Authorization")
        seen_auth.append(authorization)
        return httpx.Response(401 if authorization else 503)

    factory = make_client_factory(handler)
    auth = BlockstreamAuth(
        BlockstreamAuthConfig("id", "secret", token_url="https://login.test/token"),
        client_factory=factory,
    )

    async def run() -> tuple[TxStatus, ProviderRouter]:
        router = ProviderRouter(config, client_factory=factory, auth=auth, sleep=no_sleep)
        async with router:
            status = await router.tx_status(TXID)
            await router.tx_status(TXID)
            return status, router

    status, router = asyncio.run(run())

    assert status.confirmed
    assert seen_auth == ["Bearer secret", None]
    assert router.states["blockstream"].status is ProviderStatus.EXHAUSTED
    assert router.cursor == 1
