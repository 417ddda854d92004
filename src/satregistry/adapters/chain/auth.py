"""OAuth2 client-credentials tokens for the authenticated Blockstream API."""

from __future__ import annotations

import time
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
from pydantic import ValidationError

from satregistry.adapters.http_resilience import ResilientClient
from satregistry.config.http_resilience import ResilienceConfig, RetryPolicy

from .schema import TokenResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from satregistry.config.providers import BlockstreamAuthConfig

log = getLogger(__name__)

EXPIRY_MARGIN_SECONDS: Final[float] = 30.0


class BlockstreamAuth:
    """Caches a bearer token until shortly before it expires.

    ``clear()`` drops the credential for the rest of the run; later calls to
    ``headers()`` return no authorization at all.
    """

    def __init__(
        self,
        config: BlockstreamAuthConfig,
        *,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._client_factory = client_factory or ResilientClient
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._cleared = False

    @property
    def active(self) -> bool:
        return not self._cleared

    def clear(self) -> None:
        if not self._cleared:
            log.warning("Clearing Blockstream credentials for the rest of the run")
        self._cleared = True
        self._token = None

    async def headers(self) -> dict[str, str]:
        token = await self.token()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def token(self) -> str | None:
        if self._cleared:
            return None
        if self._token is not None and self._clock() < self._expires_at:
            return self._token
        try:
            response = await self._request_token()
        except (httpx.HTTPError, ValidationError, ValueError) as exc:
            log.warning("Blockstream token request failed: %s", exc)
            self.clear()
            return None
        self._token = response.access_token
        self._expires_at = self._clock() + max(response.expires_in - EXPIRY_MARGIN_SECONDS, 0.0)
        log.debug("Obtained Blockstream token valid for %.0fs", response.expires_in)
        return self._token

    async def _request_token(self) -> TokenResponse:
        resilience = ResilienceConfig(
            name="blockstream-auth",
            retry=RetryPolicy(total=2, allowed_methods=frozenset({"POST"})),
        )
        async with self._client_factory(resilience) as client:
            response = await client.post(
                self._config.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                    "scope": "openid",
                },
            )
            response.raise_for_status()
            return TokenResponse.model_validate(response.json())
