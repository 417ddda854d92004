"""Error taxonomy for reconciliation runs."""

from __future__ import annotations


class ReconciliationError(RuntimeError):
    """Base class for errors raised while reconciling registries."""


class ShapeError(ReconciliationError):
    """Input is not a JSON array of records; aborts the current file only."""


class FieldError(ReconciliationError):
    """A record lacks an accepted key or value field; the record is skipped."""

    def __init__(self, message: str, *, index: int, record: object) -> None:
        super().__init__(message)
        self.index = index
        self.record = record


class NetworkError(ReconciliationError):
    """A provider request failed."""

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class RateLimitError(NetworkError):
    """A provider signalled quota exhaustion (HTTP 429 or auth rejection)."""


class ProvidersExhaustedError(NetworkError):
    """Every provider able to serve a request has failed."""


class UnconfirmedError(ReconciliationError):
    """Transaction has not been mined yet."""

    def __init__(self, txid: str) -> None:
        super().__init__(f"Transaction {txid} is not confirmed")
        self.txid = txid


class LookupNotFoundError(ReconciliationError):
    """A registry partition has no entry for the requested block."""

    def __init__(self, block: int, filename: str) -> None:
        super().__init__(f"Block {block} not found in {filename}")
        self.block = block
        self.filename = filename


class MalformedReportError(ReconciliationError):
    """A pipeline report is missing or does not have the expected structure."""


class RegistryReadError(ReconciliationError):
    """A registry file or listing could not be read or decoded."""

    def __init__(self, message: str, *, location: str) -> None:
        super().__init__(message)
        self.location = location
