"""Public interface for the chain provider access layer."""

from __future__ import annotations

from .auth import BlockstreamAuth
from .providers import (
    BlockchainInfoProvider,
    BlockchairProvider,
    ChainProvider,
    EsploraProvider,
    RequestKind,
    build_provider,
)
from .router import ProviderRouter, ProviderState, ProviderStatus, TxOrderCache

__all__ = [
    "BlockchainInfoProvider",
    "BlockchairProvider",
    "BlockstreamAuth",
    "ChainProvider",
    "EsploraProvider",
    "ProviderRouter",
    "ProviderState",
    "ProviderStatus",
    "RequestKind",
    "TxOrderCache",
    "build_provider",
]
