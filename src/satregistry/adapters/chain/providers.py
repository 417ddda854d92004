"""Chain data provider definitions.

A provider knows its endpoint paths and how to normalise its payloads; the
router owns HTTP, quotas and failover.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar, TypeAlias

from satregistry.config.providers import ProviderApi
from satregistry.domain.types import TxStatus

from .schema import BlockchainInfoBlock, BlockchairBlockResponse, EsploraTransaction, EsploraTxids

if TYPE_CHECKING:
    from satregistry.config.providers import ProviderSettings


class RequestKind(StrEnum):
    TX = "tx"
    BLOCK_TXIDS = "block_txids"


ProviderPayload: TypeAlias = TxStatus | list[str]


def _require_txids(txids: list[str], block_hash: str) -> list[str]:
    if not txids:
        raise ValueError(f"empty txid list for block {block_hash}")
    return txids


@dataclass(slots=True, frozen=True)
class ChainProvider(ABC):
    settings: ProviderSettings
    kinds: ClassVar[frozenset[RequestKind]] = frozenset()

    @property
    def name(self) -> str:
        return self.settings.name

    @property
    def authenticated(self) -> bool:
        return self.settings.authenticated

    def supports(self, kind: RequestKind) -> bool:
        return kind in self.kinds

    @abstractmethod
    def path(self, kind: RequestKind, identifier: str) -> str:
        """Endpoint path for ``identifier``, relative to the provider base URL."""
        ...

    @abstractmethod
    def parse(self, kind: RequestKind, identifier: str, payload: object) -> ProviderPayload:
        """Normalise ``payload``; raises ``ValueError`` (incl. pydantic errors) when malformed."""
        ...


@dataclass(slots=True, frozen=True)
class EsploraProvider(ChainProvider):
    """mempool.space and Blockstream speak the same Esplora API."""

    kinds: ClassVar[frozenset[RequestKind]] = frozenset({RequestKind.TX, RequestKind.BLOCK_TXIDS})

    def path(self, kind: RequestKind, identifier: str) -> str:
        if kind is RequestKind.TX:
            return f"tx/{identifier}"
        return f"block/{identifier}/txids"

    def parse(self, kind: RequestKind, identifier: str, payload: object) -> ProviderPayload:
        if kind is RequestKind.TX:
            status = EsploraTransaction.model_validate(payload).status
            if not status.confirmed or status.block_height is None or status.block_hash is None:
                return TxStatus(confirmed=False)
            return TxStatus(
                confirmed=True, block_height=status.block_height, block_hash=status.block_hash
            )
        return _require_txids(EsploraTxids.validate_python(payload), identifier)


@dataclass(slots=True, frozen=True)
class BlockchairProvider(ChainProvider):
    kinds: ClassVar[frozenset[RequestKind]] = frozenset({RequestKind.BLOCK_TXIDS})

    def path(self, kind: RequestKind, identifier: str) -> str:  # noqa: ARG002
        return f"dashboards/block/{identifier}"

    def parse(
        self, kind: RequestKind, identifier: str, payload: object  # noqa: ARG002
    ) -> ProviderPayload:
        response = BlockchairBlockResponse.model_validate(payload)
        block = response.data.get(identifier)
        if block is None and response.data:
            block = next(iter(response.data.values()))
        if block is None:
            raise ValueError(f"Blockchair returned no data for block {identifier}")
        return _require_txids(block.transactions, identifier)


@dataclass(slots=True, frozen=True)
class BlockchainInfoProvider(ChainProvider):
    kinds: ClassVar[frozenset[RequestKind]] = frozenset({RequestKind.BLOCK_TXIDS})

    def path(self, kind: RequestKind, identifier: str) -> str:  # noqa: ARG002
        return f"rawblock/{identifier}"

    def parse(
        self, kind: RequestKind, identifier: str, payload: object  # noqa: ARG002
    ) -> ProviderPayload:
        block = BlockchainInfoBlock.model_validate(payload)
        return _require_txids([tx.hash for tx in block.tx], identifier)


_PROVIDER_TYPES: dict[ProviderApi, type[ChainProvider]] = {
    ProviderApi.ESPLORA: EsploraProvider,
    ProviderApi.BLOCKCHAIR: BlockchairProvider,
    ProviderApi.BLOCKCHAIN_INFO: BlockchainInfoProvider,
}


def build_provider(settings: ProviderSettings) -> ChainProvider:
    return _PROVIDER_TYPES[settings.api](settings)
