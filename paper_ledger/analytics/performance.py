"""Pure performance derivations over a paper trade log and position set.

Nothing here mutates state.  Trade sequences are expected in the ledger's
canonical most-recent-first order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone

from paper_ledger.core.constants import BALANCE_DECIMALS, BASELINE_OFFSET_MS
from paper_ledger.core.logging import get_logger
from paper_ledger.core.types import (
    BalancePoint,
    PerformanceSummary,
    Position,
    TradeRecord,
)
from paper_ledger.ledger.pnl_calculator import PnLCalculator

log = get_logger(__name__)


# ── P&L Totals ──────────────────────────────────────────────────


def total_pnl(
    cash_balance: float,
    starting_balance: float,
    positions: Iterable[Position],
) -> float:
    """Cash gained or lost so far plus open unrealized exposure."""
    return (cash_balance - starting_balance) + PnLCalculator.calculate_unrealized_pnl(positions)


def total_pnl_percent(
    cash_balance: float,
    starting_balance: float,
    positions: Iterable[Position],
) -> float:
    pnl = total_pnl(cash_balance, starting_balance, positions)
    return PnLCalculator.percent_of(pnl, starting_balance)


def realized_pnl(trades: Iterable[TradeRecord]) -> float:
    """Sum of realized P&L over every trade (fees excluded)."""
    return sum(t.realized_pnl for t in trades)


def expected_cash_balance(trades: Iterable[TradeRecord], starting_balance: float) -> float:
    """Cash balance implied by replaying *trades* from *starting_balance*."""
    return starting_balance + sum(t.cash_delta for t in trades)


# ── Trade Statistics ────────────────────────────────────────────


def best_trade(trades: Sequence[TradeRecord]) -> TradeRecord | None:
    """Trade with the largest strictly positive realized P&L.

    Ties go to the earliest entry in *trades*, i.e. the most recent trade.
    """
    winners = [t for t in trades if t.realized_pnl > 0]
    if not winners:
        return None
    return max(winners, key=lambda t: t.realized_pnl)


def worst_trade(trades: Sequence[TradeRecord]) -> TradeRecord | None:
    """Trade with the most negative realized P&L, or None if nothing lost."""
    losers = [t for t in trades if t.realized_pnl < 0]
    if not losers:
        return None
    return min(losers, key=lambda t: t.realized_pnl)


def win_rate(trades: Sequence[TradeRecord]) -> float:
    """Percentage of trades that realized a profit.

    Every record carries a realized P&L (buys carry 0), so all trades
    count towards the denominator.
    """
    if not trades:
        return 0.0
    wins = sum(1 for t in trades if t.realized_pnl > 0)
    return PnLCalculator.percent_of(wins, len(trades))


# ── Balance History ─────────────────────────────────────────────


def balance_history(
    trades: Sequence[TradeRecord],
    starting_balance: float,
    now: datetime | None = None,
) -> list[BalancePoint]:
    """Rebuild the cash balance curve by replaying the log chronologically.

    The first point holds *starting_balance* one millisecond before the
    earliest trade (or at *now* when there are no trades).  Each trade then
    contributes one point.  Only the trade log is read, never the live
    cash balance.
    """
    if trades:
        baseline = trades[-1].timestamp - timedelta(milliseconds=BASELINE_OFFSET_MS)
    else:
        baseline = now or datetime.now(timezone.utc)

    history = [BalancePoint(timestamp=baseline, balance=starting_balance)]
    running = starting_balance
    for trade in reversed(trades):
        running += trade.cash_delta
        history.append(
            BalancePoint(timestamp=trade.timestamp, balance=round(running, BALANCE_DECIMALS))
        )
    return history


# ── Summary ─────────────────────────────────────────────────────


def summarize(
    trades: Sequence[TradeRecord],
    positions: Sequence[Position],
    cash_balance: float,
    starting_balance: float,
) -> PerformanceSummary:
    """Bundle the headline dashboard numbers into one object."""
    best = best_trade(trades)
    worst = worst_trade(trades)
    pnl = total_pnl(cash_balance, starting_balance, positions)

    summary = PerformanceSummary(
        starting_balance=starting_balance,
        cash_balance=cash_balance,
        total_pnl=pnl,
        total_pnl_percent=PnLCalculator.percent_of(pnl, starting_balance),
        realized_pnl=realized_pnl(trades),
        unrealized_pnl=PnLCalculator.calculate_unrealized_pnl(positions),
        win_rate=win_rate(trades),
        trade_count=len(trades),
        open_positions=len(positions),
        best_trade_pnl=best.realized_pnl if best else None,
        worst_trade_pnl=worst.realized_pnl if worst else None,
    )
    log.debug(
        "performance_summarized",
        trade_count=summary.trade_count,
        total_pnl=round(summary.total_pnl, 4),
        win_rate=round(summary.win_rate, 2),
    )
    return summary
