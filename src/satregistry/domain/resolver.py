"""First-is-First arbitration of block conflicts against chain order.

The earliest confirmed claim to a bitmap slot is canonical: lower block height
wins, then lower position inside the block. Wall-clock timestamps are never
consulted.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Final

from .errors import NetworkError, ReconciliationError
from .types import Verdict, Winner

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from .ports import InscriptionMetadataPort, LedgerPort
    from .types import Conflict, InscriptionId, LedgerPosition, SatNumber

log = getLogger(__name__)

INSCRIPTION_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^([a-f0-9]{64})i\d+$")
DEFAULT_RESOLVE_DELAY: Final[float] = 0.1
PROGRESS_EVERY: Final[int] = 10


def extract_txid(inscription_id: InscriptionId | None) -> str | None:
    """``<txid>i<index>`` -> ``txid``; ``None`` for anything else."""

    if not inscription_id:
        return None
    match = INSCRIPTION_ID_PATTERN.match(inscription_id)
    return match.group(1) if match else None


@dataclass(slots=True, frozen=True)
class Ordering:
    """Which of two ledger positions came first, and why."""

    first_wins: bool
    reason: str


def order_positions(first: LedgerPosition, second: LedgerPosition) -> Ordering | None:
    """Apply chain order to two positions; ``None`` when it cannot decide."""

    if first.block_height is not None and second.block_height is not None:
        if first.block_height != second.block_height:
            first_wins = first.block_height < second.block_height
            early, late = (first, second) if first_wins else (second, first)
            return Ordering(
                first_wins,
                f"Inscribed in block {early.block_height} (before block {late.block_height})",
            )
        if (
            first.block_position is not None
            and second.block_position is not None
            and first.block_position != second.block_position
        ):
            first_wins = first.block_position < second.block_position
            early, late = (first, second) if first_wins else (second, first)
            return Ordering(
                first_wins,
                f"Same block {early.block_height}, "
                f"tx position {early.block_position} before {late.block_position}",
            )
        return None
    if first.block_height is not None:
        return Ordering(True, f"Confirmed in block {first.block_height}; other tx not confirmed")
    if second.block_height is not None:
        return Ordering(False, f"Confirmed in block {second.block_height}; other tx not confirmed")
    return None


def _side_verdict(
    conflict: Conflict,
    winner: Winner,
    reason: str,
    *,
    identity: InscriptionId | None = None,
) -> Verdict:
    if winner is Winner.A:
        identity = identity or conflict.claimant_a
        winning_sat, losing_sat = conflict.sat_a, conflict.sat_b
    else:
        identity = identity or conflict.claimant_b
        winning_sat, losing_sat = conflict.sat_b, conflict.sat_a
    return Verdict(
        block=conflict.block,
        winner=winner,
        reason=reason,
        winning_identity=identity,
        winning_sat=winning_sat,
        losing_sat=losing_sat,
    )


def _unknown(conflict: Conflict, reason: str) -> Verdict:
    return Verdict(block=conflict.block, winner=Winner.UNKNOWN, reason=reason)


class FiFResolver:
    """Resolve block conflicts into verdicts, one conflict at a time."""

    def __init__(
        self,
        ledger: LedgerPort,
        inscriptions: InscriptionMetadataPort,
        *,
        delay: float = DEFAULT_RESOLVE_DELAY,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._ledger = ledger
        self._inscriptions = inscriptions
        self._delay = delay
        self._sleep = sleep

    async def resolve_all(self, conflicts: Iterable[Conflict]) -> list[Verdict]:
        pending = list(conflicts)
        verdicts: list[Verdict] = []
        for position, conflict in enumerate(pending, start=1):
            if position > 1 and self._delay > 0:
                await self._sleep(self._delay)
            verdict = await self.resolve(conflict)
            verdicts.append(verdict)
            log.debug("Block %d -> %s (%s)", conflict.block, verdict.winner, verdict.reason)
            if position % PROGRESS_EVERY == 0:
                log.info("[%d/%d] resolved block %d", position, len(pending), conflict.block)
        return verdicts

    async def resolve(self, conflict: Conflict) -> Verdict:
        try:
            return await self._resolve(conflict)
        except ReconciliationError as exc:
            log.error("Block %d could not be resolved: %s", conflict.block, exc)
            return _unknown(conflict, f"Resolution failed: {exc}")

    async def _resolve(self, conflict: Conflict) -> Verdict:
        identity_a, identity_b = conflict.claimant_a, conflict.claimant_b
        if identity_a is None and identity_b is None:
            return Verdict(block=conflict.block, winner=Winner.NEITHER, reason="Both IDs not found")
        if identity_a is None:
            return _side_verdict(conflict, Winner.B, "Missing identity: side A ID not found")
        if identity_b is None:
            return _side_verdict(conflict, Winner.A, "Missing identity: side B ID not found")
        if identity_a == identity_b:
            return await self._resolve_identical(conflict, identity_a)

        txid_a, txid_b = extract_txid(identity_a), extract_txid(identity_b)
        if txid_a is None or txid_b is None:
            return _unknown(conflict, "Invalid inscription format")

        log.info("Resolving bitmap %d.bitmap competition", conflict.block)
        ordering = order_positions(
            await self._ledger.ledger_position(txid_a),
            await self._ledger.ledger_position(txid_b),
        )
        if ordering is None:
            return _unknown(conflict, "Could not determine winner")
        winner = Winner.A if ordering.first_wins else Winner.B
        return _side_verdict(conflict, winner, ordering.reason)

    async def _resolve_identical(self, conflict: Conflict, identity: InscriptionId) -> Verdict:
        """Both sides name ``identity`` but back it with different sats."""

        log.info("Same inscription for bitmap %d, checking its actual sat", conflict.block)
        actual = await self._inscriptions.get_sat_for_inscription(identity)
        if actual is None:
            return _unknown(conflict, "Could not determine actual satoshi")

        matches_a, matches_b = actual == conflict.sat_a, actual == conflict.sat_b
        if matches_a and matches_b:
            return Verdict(
                block=conflict.block,
                winner=Winner.BOTH,
                reason=f"Both agree: inscription on sat {actual}",
                winning_identity=identity,
                winning_sat=actual,
            )
        if not matches_a and not matches_b:
            return _unknown(
                conflict,
                f"Inscription on sat {actual} "
                f"(neither side correct: {conflict.sat_a}/{conflict.sat_b})",
            )

        correct = Winner.A if matches_a else Winner.B
        remaining_sat = conflict.sat_b if correct is Winner.A else conflict.sat_a
        remaining = await self.find_bitmap_inscription(
            remaining_sat, conflict.block, exclude=identity
        )
        if remaining is None:
            return _side_verdict(
                conflict,
                correct,
                f"Correct sat {actual}, remaining sat {remaining_sat} "
                "has no valid bitmap inscription",
                identity=identity,
            )

        txid_correct, txid_remaining = extract_txid(identity), extract_txid(remaining)
        if txid_correct is None or txid_remaining is None:
            return _unknown(conflict, f"Correct sat {actual}, invalid inscription format")

        ordering = order_positions(
            await self._ledger.ledger_position(txid_correct),
            await self._ledger.ledger_position(txid_remaining),
        )
        if ordering is None:
            return _unknown(
                conflict, f"Correct sat {actual}, could not order {remaining} against {identity}"
            )
        if ordering.first_wins:
            return _side_verdict(
                conflict, correct, f"Correct sat {actual}, {ordering.reason}", identity=identity
            )
        return _side_verdict(
            conflict,
            correct.other,
            f"Wrong sat claim, but inscribed earlier: {ordering.reason}",
            identity=remaining,
        )

    async def find_bitmap_inscription(
        self,
        sat: SatNumber,
        block: int,
        *,
        exclude: InscriptionId | None = None,
    ) -> InscriptionId | None:
        """First inscription on ``sat`` whose content is exactly ``{block}.bitmap``."""

        expected = f"{block}.bitmap"
        for inscription_id in await self._inscriptions.get_inscriptions_for_sat(sat):
            if inscription_id == exclude:
                continue
            try:
                content = await self._inscriptions.get_content(inscription_id)
            except NetworkError as exc:
                log.warning("Could not fetch content for %s: %s", inscription_id, exc)
                continue
            if content is not None and content.strip() == expected:
                log.info("Found %s on sat %d", expected, sat)
                return inscription_id
        log.info("No %s inscription found on sat %d", expected, sat)
        return None
