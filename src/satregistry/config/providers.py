"""Blockchain data provider configuration values."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from .env import optional_env_var
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_MEMPOOL_BASE_URL: Final[str] = "https://mempool.space/api"
DEFAULT_BLOCKSTREAM_BASE_URL: Final[str] = "https://blockstream.info/api"
DEFAULT_BLOCKCHAIR_BASE_URL: Final[str] = "https://api.blockchair.com/bitcoin"
DEFAULT_BLOCKCHAIN_INFO_BASE_URL: Final[str] = "https://blockchain.info"
DEFAULT_ORDINALS_BASE_URL: Final[str] = "https://ordinals.com"
DEFAULT_BLOCKSTREAM_TOKEN_URL: Final[str] = (
    "https://login.blockstream.com/realms/blockstream-public/protocol/openid-connect/token"
)
DEFAULT_QUOTA_WINDOW_SECONDS: Final[float] = 3600.0
DEFAULT_REQUEST_DELAY_SECONDS: Final[float] = 0.01
USER_AGENT: Final[str] = "satregistry-resolver/1.0"


class ProviderApi(StrEnum):
    """Wire flavour spoken by a provider."""

    ESPLORA = "esplora"
    BLOCKCHAIR = "blockchair"
    BLOCKCHAIN_INFO = "blockchain_info"


@dataclass(frozen=True, slots=True)
class BlockstreamAuthConfig:
    client_id: str
    client_secret: str
    token_url: str = DEFAULT_BLOCKSTREAM_TOKEN_URL


@dataclass(frozen=True, slots=True)
class ProviderSettings:
    name: str
    api: ProviderApi
    resilience: ResilienceConfig
    quota: int | None = None
    window_seconds: float = DEFAULT_QUOTA_WINDOW_SECONDS
    authenticated: bool = False


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    providers: tuple[ProviderSettings, ...]
    request_delay: float = DEFAULT_REQUEST_DELAY_SECONDS
    blockstream_auth: BlockstreamAuthConfig | None = None


@dataclass(frozen=True, slots=True)
class OrdinalsConfig:
    resilience: ResilienceConfig
    request_delay: float = DEFAULT_REQUEST_DELAY_SECONDS


def cache_confirmed_only(payload: object) -> bool:
    """Refuse to cache Esplora transaction payloads that are not confirmed yet."""

    if not isinstance(payload, dict):
        return True
    status = payload.get("status")
    if not isinstance(status, dict):
        return True
    return bool(status.get("confirmed", True))


def _resilience(name: str, base_url: str, *, cache: CacheConfig | None = None) -> ResilienceConfig:
    return ResilienceConfig(
        name=name,
        base_url=base_url,
        timeout_seconds=30.0,
        retry=RetryPolicy(total=3),
        cache=cache,
        default_headers={"User-Agent": USER_AGENT},
    )


def get_blockstream_auth_config() -> BlockstreamAuthConfig | None:
    client_id = optional_env_var("BLOCKSTREAM_CLIENT_ID")
    client_secret = optional_env_var("BLOCKSTREAM_CLIENT_SECRET")
    if client_id is None or client_secret is None:
        return None
    token_url = optional_env_var("BLOCKSTREAM_TOKEN_URL", DEFAULT_BLOCKSTREAM_TOKEN_URL)
    return BlockstreamAuthConfig(
        client_id=client_id,
        client_secret=client_secret,
        token_url=token_url or DEFAULT_BLOCKSTREAM_TOKEN_URL,
    )


def get_provider_config() -> ProviderConfig:
    """Default provider chain: mempool, Blockstream, Blockchair, blockchain.info."""

    esplora_cache = CacheConfig(enabled=True, backend="memory", should_cache=cache_confirmed_only)
    auth = get_blockstream_auth_config()
    mempool_url = optional_env_var("MEMPOOL_API_URL", DEFAULT_MEMPOOL_BASE_URL)
    blockstream_url = optional_env_var("BLOCKSTREAM_API_URL", DEFAULT_BLOCKSTREAM_BASE_URL)

    providers = (
        ProviderSettings(
            name="mempool",
            api=ProviderApi.ESPLORA,
            resilience=_resilience(
                "mempool", mempool_url or DEFAULT_MEMPOOL_BASE_URL, cache=esplora_cache
            ),
        ),
        ProviderSettings(
            name="blockstream",
            api=ProviderApi.ESPLORA,
            resilience=_resilience(
                "blockstream",
                blockstream_url or DEFAULT_BLOCKSTREAM_BASE_URL,
                cache=esplora_cache,
            ),
            authenticated=auth is not None,
        ),
        ProviderSettings(
            name="blockchair",
            api=ProviderApi.BLOCKCHAIR,
            resilience=_resilience("blockchair", DEFAULT_BLOCKCHAIR_BASE_URL),
        ),
        ProviderSettings(
            name="blockchaininfo",
            api=ProviderApi.BLOCKCHAIN_INFO,
            resilience=_resilience("blockchaininfo", DEFAULT_BLOCKCHAIN_INFO_BASE_URL),
        ),
    )
    return ProviderConfig(providers=providers, blockstream_auth=auth)


def get_ordinals_config() -> OrdinalsConfig:
    base_url = optional_env_var("ORDINALS_BASE_URL", DEFAULT_ORDINALS_BASE_URL)
    resilience = ResilienceConfig(
        name="ordinals",
        base_url=base_url or DEFAULT_ORDINALS_BASE_URL,
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
        retry=RetryPolicy(total=3),
        cache=CacheConfig(enabled=True, backend="memory"),
        default_headers={"User-Agent": USER_AGENT},
    )
    return OrdinalsConfig(resilience=resilience)
