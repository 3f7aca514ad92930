"""Profit-and-loss math for paper positions and trades.

All monetary values are in the account's cash-equivalent token (USD).
"""

from __future__ import annotations

from collections.abc import Iterable

from paper_ledger.core.constants import PERCENT
from paper_ledger.core.logging import get_logger
from paper_ledger.core.types import Position

log = get_logger(__name__)


class PnLCalculator:
    """Stateless calculator for realized / unrealized P&L."""

    # ── Cost Basis ──────────────────────────────────────────────

    @staticmethod
    def weighted_average_cost(
        held_amount: float,
        held_average_cost: float,
        added_amount: float,
        added_price: float,
    ) -> float:
        """Blend an acquisition into an existing cost basis.

        Returns ``added_price`` when the combined amount is zero so a
        zero-quantity fill cannot produce NaN.
        """
        total_amount = held_amount + added_amount
        if total_amount == 0:
            return added_price
        total_cost = held_amount * held_average_cost + added_amount * added_price
        return total_cost / total_amount

    # ── Realized P&L ────────────────────────────────────────────

    @staticmethod
    def calculate_realized_pnl(
        sell_price: float,
        average_cost: float,
        amount_sold: float,
    ) -> tuple[float, float]:
        """Calculate realized P&L for a (partial) position close.

        Fees are not deducted here; they are charged to cash separately.

        Args:
            sell_price: Execution price of the sell.
            average_cost: Weighted-average cost of the position.
            amount_sold: Units actually disposed.

        Returns:
            ``(realized_pnl, realized_pnl_percent)``.  The percent is 0
            when the cost basis is zero.
        """
        cost_basis = average_cost * amount_sold
        proceeds = sell_price * amount_sold
        realized = proceeds - cost_basis
        percent = 0.0 if cost_basis == 0 else realized / cost_basis * PERCENT

        log.debug(
            "realized_pnl_calculated",
            sell_price=sell_price,
            average_cost=average_cost,
            amount_sold=amount_sold,
            cost_basis=round(cost_basis, 6),
            realized_pnl=round(realized, 6),
        )
        return realized, percent

    # ── Unrealized P&L ──────────────────────────────────────────

    @staticmethod
    def calculate_unrealized_pnl(positions: Iterable[Position]) -> float:
        """Sum unrealized P&L across open positions at their mark prices."""
        return sum(position.unrealized_pnl for position in positions)

    @staticmethod
    def percent_of(value: float, base: float) -> float:
        """``value / base * 100`` guarded against a zero base."""
        if base == 0:
            return 0.0
        return value / base * PERCENT
