"""Client for an ord server (ordinals.com by default)."""

from __future__ import annotations

import asyncio
import re
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
from pydantic import ValidationError

from satregistry.adapters.http_resilience import ResilientClient
from satregistry.domain.errors import NetworkError

from .schema import InscriptionInfo, SatInscriptionsPage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    from satregistry.config.http_resilience import ResilienceConfig
    from satregistry.config.providers import OrdinalsConfig

log = getLogger(__name__)

SAT_ROW_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"<dt>sat</dt>\s*<dd>(?:<a[^>]*>)?(\d+)(?:</a>)?</dd>", re.IGNORECASE
)
MAX_SAT_PAGES: Final[int] = 100
JSON_HEADERS: Final[dict[str, str]] = {"Accept": "application/json"}


def parse_sat_from_html(html: str) -> int | None:
    match = SAT_ROW_PATTERN.search(html)
    return int(match.group(1)) if match else None


class OrdinalsClient:
    """Inscription metadata lookups: backing sat, inscriptions on a sat, content."""

    def __init__(
        self,
        config: OrdinalsConfig,
        *,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._client_factory = client_factory or ResilientClient
        self._sleep = sleep
        self._client: ResilientClient | None = None

    async def __aenter__(self) -> OrdinalsClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_sat_for_inscription(self, inscription_id: str) -> int | None:
        response = await self._get(f"inscription/{inscription_id}", headers=JSON_HEADERS)
        if response is None:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                info = InscriptionInfo.model_validate(response.json())
            except (ValidationError, ValueError) as exc:
                raise NetworkError(
                    f"Malformed inscription payload for {inscription_id}", provider="ordinals"
                ) from exc
            sat = info.sat
        else:
            sat = parse_sat_from_html(response.text)
        if sat is None:
            log.warning("No sat found for inscription %s", inscription_id)
        return sat

    async def get_inscriptions_for_sat(self, sat: int) -> list[str]:
        ids: list[str] = []
        for page in range(MAX_SAT_PAGES):
            response = await self._get(f"r/sat/{sat}/{page}")
            if response is None:
                break
            try:
                listing = SatInscriptionsPage.model_validate(response.json())
            except (ValidationError, ValueError) as exc:
                raise NetworkError(
                    f"Malformed inscription listing for sat {sat}", provider="ordinals"
                ) from exc
            ids.extend(listing.ids)
            if not listing.more:
                break
        else:
            log.warning("Stopped listing sat %d after %d pages", sat, MAX_SAT_PAGES)
        return ids

    async def get_content(self, inscription_id: str) -> str | None:
        response = await self._get(f"content/{inscription_id}")
        if response is None:
            return None
        return response.text

    async def _get(
        self, path: str, *, headers: dict[str, str] | None = None
    ) -> httpx.Response | None:
        """GET ``path``; ``None`` on 404, ``NetworkError`` on any other failure."""

        await self._sleep(self._config.request_delay)
        if self._client is None:
            self._client = self._client_factory(self._config.resilience)
        try:
            response = await self._client.get(path, headers=headers)
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"ordinals request {path} failed: {exc}", provider="ordinals"
            ) from exc
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.status_code != httpx.codes.OK:
            raise NetworkError(
                f"ordinals returned HTTP {response.status_code} for {path}", provider="ordinals"
            )
        return response
