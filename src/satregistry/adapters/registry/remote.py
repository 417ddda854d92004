"""Registry published in a GitHub repository."""

from __future__ import annotations

from fnmatch import fnmatch
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from satregistry.adapters.http_resilience import ResilientClient
from satregistry.config.http_resilience import ResilienceConfig, RetryPolicy
from satregistry.domain.errors import RegistryReadError

from .schema import ContentListing

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

log = getLogger(__name__)

USER_AGENT = "satregistry-registry-reader/1.0"


def default_resilience(label: str) -> ResilienceConfig:
    return ResilienceConfig(
        name=f"registry:{label}",
        retry=RetryPolicy(total=3),
        default_headers={"User-Agent": USER_AGENT},
    )


class RemoteRegistrySource:
    """Reads partition files from ``raw_base_url`` and lists them via ``list_url``.

    ``list_url`` is a GitHub contents API endpoint; only ``type == "file"``
    items are considered.
    """

    def __init__(
        self,
        raw_base_url: str,
        list_url: str,
        *,
        label: str = "remote",
        resilience: ResilienceConfig | None = None,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self.raw_base_url = raw_base_url if raw_base_url.endswith("/") else f"{raw_base_url}/"
        self.list_url = list_url
        self.label = label
        self._resilience = resilience or default_resilience(label)
        self._client_factory = client_factory or ResilientClient
        self._client: ResilientClient | None = None

    async def __aenter__(self) -> RemoteRegistrySource:
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

    async def list_files(self, pattern: str) -> list[str]:
        payload = await self._get_json(self.list_url)
        try:
            items = ContentListing.validate_python(payload)
        except ValidationError as exc:
            raise RegistryReadError(
                f"Unexpected listing payload from {self.list_url}", location=self.list_url
            ) from exc
        names = sorted(
            item.name for item in items if item.type == "file" and fnmatch(item.name, pattern)
        )
        log.info("Found %d %s files in %s", len(names), pattern, self.label)
        return names

    async def read_records(self, filename: str) -> object:
        return await self._get_json(f"{self.raw_base_url}{filename}")

    async def _get_json(self, url: str) -> object:
        if self._client is None:
            self._client = self._client_factory(self._resilience)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            raise RegistryReadError(f"Failed to fetch {url}: {exc}", location=url) from exc
        except ValueError as exc:
            raise RegistryReadError(
                f"Failed to parse JSON from {url}: {exc}", location=url
            ) from exc
