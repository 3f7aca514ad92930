"""DataFrame views of the ledger for chart and table consumers."""

from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from paper_ledger.core.types import BalancePoint, Position, TradeRecord

TRADE_COLUMNS = [
    "trade_id",
    "timestamp",
    "side",
    "from_token",
    "to_token",
    "from_amount",
    "to_amount",
    "execution_price",
    "fee_amount",
    "slippage_bps",
    "status",
    "realized_pnl",
    "realized_pnl_percent",
    "cash_delta",
]

BALANCE_COLUMNS = ["timestamp", "balance"]

POSITION_COLUMNS = [
    "token",
    "amount",
    "average_cost",
    "mark_price",
    "market_value",
    "unrealized_pnl",
    "unrealized_pnl_percent",
]


def trades_frame(trades: Sequence[TradeRecord]) -> pd.DataFrame:
    """Trade log as a DataFrame, oldest trade first."""
    if not trades:
        return pd.DataFrame(columns=TRADE_COLUMNS)
    rows = []
    for trade in reversed(trades):
        row = trade.to_dict()
        row["cash_delta"] = trade.cash_delta
        rows.append(row)
    df = pd.DataFrame(rows, columns=TRADE_COLUMNS)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df


def balance_history_frame(history: Sequence[BalancePoint]) -> pd.DataFrame:
    """Balance curve as a DataFrame indexed in chronological order."""
    if not history:
        return pd.DataFrame(columns=BALANCE_COLUMNS)
    df = pd.DataFrame(
        [{"timestamp": p.timestamp, "balance": p.balance} for p in history],
        columns=BALANCE_COLUMNS,
    )
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df


def positions_frame(positions: Sequence[Position]) -> pd.DataFrame:
    """Open positions with their derived valuation columns."""
    return pd.DataFrame(
        [
            {
                "token": p.token,
                "amount": p.amount,
                "average_cost": p.average_cost,
                "mark_price": p.mark_price,
                "market_value": p.market_value,
                "unrealized_pnl": p.unrealized_pnl,
                "unrealized_pnl_percent": p.unrealized_pnl_percent,
            }
            for p in positions
        ],
        columns=POSITION_COLUMNS,
    )
