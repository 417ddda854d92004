"""Ports the reconciliation core depends on."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .types import InscriptionId, LedgerPosition, SatNumber


@runtime_checkable
class LedgerPort(Protocol):
    """Locates a transaction in chain order."""

    async def ledger_position(self, txid: str) -> LedgerPosition: ...


@runtime_checkable
class InscriptionMetadataPort(Protocol):
    """Inscription metadata service (sat backing, sat listings, content)."""

    async def get_sat_for_inscription(self, inscription_id: InscriptionId) -> SatNumber | None: ...

    async def get_inscriptions_for_sat(self, sat: SatNumber) -> list[InscriptionId]: ...

    async def get_content(self, inscription_id: InscriptionId) -> str | None: ...


@runtime_checkable
class RegistrySource(Protocol):
    """Read access to one registry, local or remote."""

    @property
    def label(self) -> str: ...

    async def list_files(self, pattern: str) -> list[str]: ...

    async def read_records(self, filename: str) -> object: ...


__all__ = ["InscriptionMetadataPort", "LedgerPort", "RegistrySource"]
