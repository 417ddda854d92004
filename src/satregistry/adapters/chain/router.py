"""Failover routing across chain data providers."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, cast

import httpx
from pydantic import ValidationError

from satregistry.adapters.http_resilience import ResilientClient
from satregistry.domain.errors import (
    NetworkError,
    ProvidersExhaustedError,
    RateLimitError,
    UnconfirmedError,
)
from satregistry.domain.types import LedgerPosition, TxStatus

from .auth import BlockstreamAuth
from .providers import RequestKind, build_provider

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from types import TracebackType

    from satregistry.config.http_resilience import ResilienceConfig
    from satregistry.config.providers import ProviderConfig

    from .providers import ChainProvider, ProviderPayload

log = getLogger(__name__)

AUTH_REJECTED = frozenset({401, 403})


class ProviderStatus(StrEnum):
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


@dataclass(slots=True)
class ProviderState:
    """Quota bookkeeping for one provider."""

    name: str
    quota: int | None = None
    window_seconds: float = 3600.0
    status: ProviderStatus = ProviderStatus.ACTIVE
    request_count: int = 0
    window_started: float = 0.0
    exhausted_until: float | None = None

    def refresh(self, now: float) -> None:
        if now - self.window_started >= self.window_seconds:
            self.window_started = now
            self.request_count = 0
        if (
            self.status is ProviderStatus.EXHAUSTED
            and self.exhausted_until is not None
            and now >= self.exhausted_until
        ):
            log.info("%s quota window elapsed; provider active again", self.name)
            self.status = ProviderStatus.ACTIVE
            self.exhausted_until = None

    def record_request(self, now: float) -> None:
        self.request_count += 1
        if self.quota is not None and self.request_count >= self.quota:
            log.warning("%s reached its quota of %d requests", self.name, self.quota)
            self.mark_exhausted(now)

    def mark_exhausted(self, now: float) -> None:
        self.status = ProviderStatus.EXHAUSTED
        self.exhausted_until = now + self.window_seconds

    @property
    def active(self) -> bool:
        return self.status is ProviderStatus.ACTIVE


@dataclass(slots=True)
class TxOrderCache:
    """Block height -> ordered txids; confirmed blocks never change."""

    _blocks: dict[int, list[str]] = field(default_factory=dict)

    def get(self, height: int) -> list[str] | None:
        return self._blocks.get(height)

    def put(self, height: int, txids: Sequence[str]) -> list[str]:
        stored = list(txids)
        self._blocks[height] = stored
        return stored

    def __contains__(self, height: object) -> bool:
        return height in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)


class ProviderRouter:
    """Routes requests to the first usable provider, moving forward on failure.

    The cursor only ever advances within a run: once a provider has been
    abandoned for a rate-limit signal it is skipped until ``begin_run``.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
        auth: BlockstreamAuth | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.providers: tuple[ChainProvider, ...] = tuple(
            build_provider(settings) for settings in config.providers
        )
        self.states = {
            provider.name: ProviderState(
                name=provider.name,
                quota=provider.settings.quota,
                window_seconds=provider.settings.window_seconds,
                window_started=clock(),
            )
            for provider in self.providers
        }
        self.tx_order = TxOrderCache()
        self._client_factory = client_factory or ResilientClient
        if auth is None and config.blockstream_auth is not None:
            auth = BlockstreamAuth(config.blockstream_auth, client_factory=client_factory)
        self._auth = auth
        self._clock = clock
        self._sleep = sleep
        self._clients: dict[str, ResilientClient] = {}
        self._cursor = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    async def __aenter__(self) -> ProviderRouter:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()

    def begin_run(self) -> None:
        """Start a new run: rewind the cursor and reactivate providers whose window elapsed."""

        now = self._clock()
        for state in self.states.values():
            state.refresh(now)
        self._cursor = 0

    async def request(self, kind: RequestKind, identifier: str) -> ProviderPayload:
        last_error: NetworkError | None = None
        for index in range(self._cursor, len(self.providers)):
            provider = self.providers[index]
            if not provider.supports(kind):
                continue
            state = self.states[provider.name]
            state.refresh(self._clock())
            if not state.active:
                log.info("%s exhausted, moving to next provider", provider.name)
                self._advance_past(index)
                continue
            try:
                payload = await self._attempt(provider, state, kind, identifier)
            except RateLimitError as exc:
                log.warning(
                    "%s rate limited on %s %s; marking exhausted", provider.name, kind, identifier
                )
                state.mark_exhausted(self._clock())
                self._advance_past(index)
                last_error = exc
                continue
            except NetworkError as exc:
                log.warning("%s failed on %s %s: %s", provider.name, kind, identifier, exc)
                last_error = exc
                continue
            if not state.active:
                self._advance_past(index)
            return payload

        detail = f": {last_error}" if last_error is not None else ""
        raise ProvidersExhaustedError(f"No provider could serve {kind} {identifier}{detail}")

    async def tx_status(self, txid: str) -> TxStatus:
        return cast(TxStatus, await self.request(RequestKind.TX, txid))

    async def block_txids(self, height: int, block_hash: str) -> list[str]:
        cached = self.tx_order.get(height)
        if cached is not None:
            return cached
        txids = cast(list[str], await self.request(RequestKind.BLOCK_TXIDS, block_hash))
        log.debug("Cached %d transactions for block %d", len(txids), height)
        return self.tx_order.put(height, txids)

    async def confirmed_block(self, txid: str) -> tuple[int, str]:
        """Height and hash of the block containing ``txid``."""

        status = await self.tx_status(txid)
        if not status.confirmed or status.block_height is None or status.block_hash is None:
            raise UnconfirmedError(txid)
        return status.block_height, status.block_hash

    async def ledger_position(self, txid: str) -> LedgerPosition:
        """Block height and in-block index of ``txid``; both ``None`` when unconfirmed."""

        try:
            height, block_hash = await self.confirmed_block(txid)
        except UnconfirmedError as exc:
            log.warning("%s", exc)
            return LedgerPosition()

        txids = await self.block_txids(height, block_hash)
        try:
            position = txids.index(txid)
        except ValueError:
            log.warning("txid %s not found in block %d", txid, height)
            return LedgerPosition(block_height=height)
        return LedgerPosition(block_height=height, block_position=position)

    def _advance_past(self, index: int) -> None:
        self._cursor = max(self._cursor, index + 1)

    async def _attempt(
        self,
        provider: ChainProvider,
        state: ProviderState,
        kind: RequestKind,
        identifier: str,
    ) -> ProviderPayload:
        path = provider.path(kind, identifier)
        headers = await self._auth_headers(provider)
        response = await self._get(provider, state, path, headers)

        if response.status_code in AUTH_REJECTED:
            if not headers:
                raise RateLimitError(
                    f"{provider.name} rejected {path} with HTTP {response.status_code}",
                    provider=provider.name,
                )
            log.warning(
                "%s rejected credentials (HTTP %d); retrying unauthenticated",
                provider.name,
                response.status_code,
            )
            if self._auth is not None:
                self._auth.clear()
            response = await self._get(provider, state, path, {})
            if response.status_code != httpx.codes.OK:
                raise RateLimitError(
                    f"{provider.name} unauthenticated retry failed"
                    f" with HTTP {response.status_code}",
                    provider=provider.name,
                )

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise RateLimitError(f"{provider.name} returned HTTP 429", provider=provider.name)
        if response.status_code != httpx.codes.OK:
            raise NetworkError(
                f"HTTP {response.status_code} for {path}", provider=provider.name
            )

        try:
            return provider.parse(kind, identifier, response.json())
        except (ValidationError, ValueError) as exc:
            raise NetworkError(
                f"Malformed {kind} payload for {identifier}: {exc}", provider=provider.name
            ) from exc

    async def _auth_headers(self, provider: ChainProvider) -> dict[str, str]:
        if not provider.authenticated or self._auth is None or not self._auth.active:
            return {}
        return await self._auth.headers()

    async def _get(
        self,
        provider: ChainProvider,
        state: ProviderState,
        path: str,
        headers: dict[str, str],
    ) -> httpx.Response:
        await self._sleep(self.config.request_delay)
        state.record_request(self._clock())
        client = self._client_for(provider)
        try:
            return await client.get(path, headers=headers or None)
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"{provider.name} transport error: {exc}", provider=provider.name
            ) from exc

    def _client_for(self, provider: ChainProvider) -> ResilientClient:
        client = self._clients.get(provider.name)
        if client is None:
            client = self._client_factory(provider.settings.resilience)
            self._clients[provider.name] = client
        return client
