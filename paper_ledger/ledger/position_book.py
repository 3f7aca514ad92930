"""Position lifecycle tracking — open, accumulate, reduce, close.

Keeps one weighted-average position per token and an immutable audit trail
of every change.  A position that is closed and later re-opened starts a
fresh cost basis.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone

from uuid_extensions import uuid7

from paper_ledger.core.constants import DEFAULT_DUST_THRESHOLD
from paper_ledger.core.logging import get_logger
from paper_ledger.core.types import Position
from paper_ledger.ledger.pnl_calculator import PnLCalculator

log = get_logger(__name__)


# ── Position Change Record ──────────────────────────────────────


@dataclass(frozen=True)
class PositionChangeRecord:
    """Immutable record of a single position change event."""

    record_id: str
    timestamp: datetime
    token: str
    action: str  # "OPEN" | "ADD" | "REDUCE" | "CLOSE"
    amount_delta: float
    price: float
    average_cost_before: float
    average_cost_after: float
    remaining_amount: float
    realized_pnl: float

    def __post_init__(self) -> None:
        if self.action not in {"OPEN", "ADD", "REDUCE", "CLOSE"}:
            msg = f"Invalid position change action: {self.action}"
            raise ValueError(msg)


@dataclass(frozen=True)
class ReduceResult:
    """Outcome of selling out of a position."""

    amount_sold: float
    realized_pnl: float
    realized_pnl_percent: float
    remaining: Position | None  # None when the position was closed


# ── Position Book ───────────────────────────────────────────────


class PositionBook:
    """Open positions keyed by token, with dust-threshold closing.

    The book is purely in-memory and not thread-safe on its own; the owning
    ledger serializes access.  Accessors hand out copies so callers cannot
    alter cost bases behind the book's back.
    """

    def __init__(self, dust_threshold: float = DEFAULT_DUST_THRESHOLD) -> None:
        self._dust = dust_threshold
        self._positions: dict[str, Position] = {}
        self._history: list[PositionChangeRecord] = []

    # ── Accessors ───────────────────────────────────────────────

    @property
    def dust_threshold(self) -> float:
        return self._dust

    def get(self, token: str) -> Position | None:
        position = self._positions.get(token)
        return replace(position) if position is not None else None

    def held_amount(self, token: str) -> float:
        position = self._positions.get(token)
        return position.amount if position is not None else 0.0

    def positions(self) -> list[Position]:
        """Return copies of all open positions in opening order."""
        return [replace(p) for p in self._positions.values()]

    def __contains__(self, token: object) -> bool:
        return token in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def get_history(self) -> list[PositionChangeRecord]:
        """Return the full audit trail of position changes (copy)."""
        return list(self._history)

    # ── Mutations ───────────────────────────────────────────────

    def buy(self, token: str, amount: float, price: float) -> Position | None:
        """Open or add to the position in *token* and mark it to *price*.

        A fill that would open a position at or below the dust threshold
        opens nothing and returns ``None``.
        """
        existing = self._positions.get(token)
        if existing is None:
            if amount <= self._dust:
                log.debug("dust_buy_ignored", token=token, amount=amount, price=price)
                return None
            position = Position(token=token, amount=amount, average_cost=price, mark_price=price)
            self._positions[token] = position
            self._record(
                token=token,
                action="OPEN",
                amount_delta=amount,
                price=price,
                average_cost_before=0.0,
                average_cost_after=price,
                remaining_amount=amount,
                realized_pnl=0.0,
            )
            log.info("position_opened", token=token, amount=amount, price=price)
            return replace(position)

        old_cost = existing.average_cost
        new_cost = PnLCalculator.weighted_average_cost(
            existing.amount, existing.average_cost, amount, price,
        )
        existing.amount += amount
        existing.average_cost = new_cost
        existing.mark_price = price

        self._record(
            token=token,
            action="ADD",
            amount_delta=amount,
            price=price,
            average_cost_before=old_cost,
            average_cost_after=new_cost,
            remaining_amount=existing.amount,
            realized_pnl=0.0,
        )
        log.info(
            "position_added",
            token=token,
            added_amount=amount,
            price=price,
            new_average_cost=round(new_cost, 8),
            total_amount=existing.amount,
        )
        return replace(existing)

    def sell(self, token: str, amount: float, price: float) -> ReduceResult | None:
        """Reduce or close the position in *token*.

        The sold amount is capped at what is held.  Returns ``None`` when
        no position exists for *token*.
        """
        position = self._positions.get(token)
        if position is None:
            return None

        amount_sold = min(amount, position.amount)
        if amount_sold < amount:
            log.debug(
                "sell_capped_to_holding",
                token=token,
                requested=amount,
                held=position.amount,
            )
        realized, percent = PnLCalculator.calculate_realized_pnl(
            price, position.average_cost, amount_sold,
        )
        remaining_amount = position.amount - amount_sold

        if remaining_amount <= self._dust:
            del self._positions[token]
            action = "CLOSE"
            remaining = None
        else:
            position.amount = remaining_amount
            position.mark_price = price
            action = "REDUCE"
            remaining = replace(position)

        self._record(
            token=token,
            action=action,
            amount_delta=-amount_sold,
            price=price,
            average_cost_before=position.average_cost,
            average_cost_after=position.average_cost,
            remaining_amount=remaining_amount if remaining is not None else 0.0,
            realized_pnl=realized,
        )
        log.info(
            "position_reduced",
            token=token,
            amount_sold=amount_sold,
            price=price,
            realized_pnl=round(realized, 6),
            remaining_amount=remaining_amount,
            action=action,
        )
        return ReduceResult(
            amount_sold=amount_sold,
            realized_pnl=realized,
            realized_pnl_percent=percent,
            remaining=remaining,
        )

    def mark(self, token: str, price: float) -> Position | None:
        """Set the mark price of *token*; no-op returning None if not held."""
        position = self._positions.get(token)
        if position is None:
            return None
        position.mark_price = price
        return replace(position)

    def clear(self) -> None:
        self._positions.clear()
        self._history.clear()

    def load(self, positions: list[Position]) -> None:
        """Replace the book's contents with *positions* (used on restore)."""
        self._positions = {p.token: replace(p) for p in positions}
        self._history.clear()

    # ── Internal ────────────────────────────────────────────────

    def _record(
        self,
        *,
        token: str,
        action: str,
        amount_delta: float,
        price: float,
        average_cost_before: float,
        average_cost_after: float,
        remaining_amount: float,
        realized_pnl: float,
    ) -> None:
        """Append an immutable change record to the history."""
        self._history.append(
            PositionChangeRecord(
                record_id=str(uuid7()),
                timestamp=datetime.now(timezone.utc),
                token=token,
                action=action,
                amount_delta=amount_delta,
                price=price,
                average_cost_before=average_cost_before,
                average_cost_after=average_cost_after,
                remaining_amount=remaining_amount,
                realized_pnl=realized_pnl,
            )
        )
