"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .providers import (
    BlockstreamAuthConfig,
    OrdinalsConfig,
    ProviderApi,
    ProviderConfig,
    ProviderSettings,
    get_ordinals_config,
    get_provider_config,
)
from .registry import (
    DuplicateConfig,
    ReconcileConfig,
    RegistryLocation,
    get_duplicate_config,
    get_reconcile_config,
)
from .storage import StorageConfig, get_storage_config

__all__ = [
    "BlockstreamAuthConfig",
    "CacheConfig",
    "ConfigurationError",
    "DuplicateConfig",
    "MissingConfigurationError",
    "OrdinalsConfig",
    "ProviderApi",
    "ProviderConfig",
    "ProviderSettings",
    "RateLimit",
    "ReconcileConfig",
    "RegistryLocation",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "get_duplicate_config",
    "get_ordinals_config",
    "get_provider_config",
    "get_reconcile_config",
    "get_storage_config",
    "optional_env_var",
    "require_env_vars",
]
