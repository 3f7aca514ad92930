"""Trade history queries — filter, sort and page the paper trade log."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from paper_ledger.core.constants import DEFAULT_PAGE_SIZE
from paper_ledger.core.exceptions import ValidationError
from paper_ledger.core.types import TradeRecord, TradeSide, TradeStatus

_SORTABLE_FIELDS = frozenset(
    {
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
    }
)


@dataclass
class TradeFilter:
    """Criteria for :func:`filter_trades`. Unset fields match everything."""

    start: datetime | None = None
    end: datetime | None = None
    tokens: list[str] = field(default_factory=list)
    side: TradeSide | None = None
    status: TradeStatus | None = None
    min_pnl: float | None = None
    max_pnl: float | None = None
    search: str = ""

    def matches(self, trade: TradeRecord) -> bool:
        if self.start is not None and trade.timestamp < self.start:
            return False
        if self.end is not None and trade.timestamp > self.end:
            return False
        if self.tokens and trade.from_token not in self.tokens and trade.to_token not in self.tokens:
            return False
        if self.side is not None and trade.side != self.side:
            return False
        if self.status is not None and trade.status != self.status:
            return False
        # Trades without realized P&L never satisfy a P&L bound.
        if self.min_pnl is not None and (not trade.realized_pnl or trade.realized_pnl < self.min_pnl):
            return False
        if self.max_pnl is not None and (not trade.realized_pnl or trade.realized_pnl > self.max_pnl):
            return False
        if self.search.strip():
            query = self.search.strip().lower()
            haystack = " ".join((trade.trade_id, trade.from_token, trade.to_token)).lower()
            if query not in haystack:
                return False
        return True


@dataclass(frozen=True)
class TradePage:
    trades: list[TradeRecord]
    total_pages: int
    total_count: int


def filter_trades(trades: Iterable[TradeRecord], filters: TradeFilter) -> list[TradeRecord]:
    """Return the trades matching *filters*, preserving input order."""
    return [t for t in trades if filters.matches(t)]


def sort_trades(
    trades: Iterable[TradeRecord],
    sort_by: str = "timestamp",
    descending: bool = False,
) -> list[TradeRecord]:
    """Sort trades by a record field; ``None`` values always sort last.

    Raises:
        ValidationError: If *sort_by* is not a sortable field.
    """
    if sort_by not in _SORTABLE_FIELDS:
        msg = f"Cannot sort trades by {sort_by!r}"
        raise ValidationError(msg, context={"sort_by": sort_by})

    trades = list(trades)
    present = [t for t in trades if getattr(t, sort_by) is not None]
    missing = [t for t in trades if getattr(t, sort_by) is None]

    def _key(trade: TradeRecord) -> object:
        value = getattr(trade, sort_by)
        if isinstance(value, str):
            return value.lower()
        return value

    return sorted(present, key=_key, reverse=descending) + missing


def paginate_trades(
    trades: Sequence[TradeRecord],
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> TradePage:
    """Slice out 1-based *page* of *page_size* trades.

    Raises:
        ValidationError: If *page* or *page_size* is below 1.
    """
    if page < 1 or page_size < 1:
        msg = f"page and page_size must be >= 1, got page={page} page_size={page_size}"
        raise ValidationError(msg, context={"page": page, "page_size": page_size})

    total = len(trades)
    start = (page - 1) * page_size
    return TradePage(
        trades=list(trades[start:start + page_size]),
        total_pages=math.ceil(total / page_size),
        total_count=total,
    )
