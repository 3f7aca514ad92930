"""System-wide shared types — the single source of truth for ledger data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from paper_ledger.core.constants import PERCENT


# ── Enums ────────────────────────────────────────────────────────

class AccountMode(str, Enum):
    LIVE = "live"
    SIMULATED = "simulated"


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class TradeStatus(str, Enum):
    FILLED = "filled"
    PENDING = "pending"       # owned by the external order engine
    CANCELLED = "cancelled"   # owned by the external order engine


class OversellPolicy(str, Enum):
    CAP = "cap"        # sell at most what is held
    REJECT = "reject"  # raise OversellError


class ProceedsPolicy(str, Enum):
    CALLER = "caller"    # credit the caller-supplied to_amount
    DERIVED = "derived"  # credit amount_sold * execution_price


# ── Positions ────────────────────────────────────────────────────

@dataclass
class Position:
    """Open holding of a single token at a weighted-average cost.

    ``mark_price`` defaults to ``average_cost`` until the position is marked.
    Unrealized values are derived on every access so they can never drift
    from ``amount``, ``average_cost`` and ``mark_price``.
    """

    token: str
    amount: float
    average_cost: float
    mark_price: float | None = None

    def __post_init__(self) -> None:
        if not self.token:
            msg = "Position token must not be empty"
            raise ValueError(msg)
        if self.mark_price is None:
            self.mark_price = self.average_cost

    @property
    def market_value(self) -> float:
        return self.amount * self.mark_price

    @property
    def unrealized_pnl(self) -> float:
        return (self.mark_price - self.average_cost) * self.amount

    @property
    def unrealized_pnl_percent(self) -> float:
        if self.average_cost == 0:
            return 0.0
        return (self.mark_price - self.average_cost) / self.average_cost * PERCENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "amount": self.amount,
            "average_cost": self.average_cost,
            "mark_price": self.mark_price,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Position:
        return cls(
            token=str(data["token"]),
            amount=float(data["amount"]),
            average_cost=float(data["average_cost"]),
            mark_price=(
                float(data["mark_price"]) if data.get("mark_price") is not None else None
            ),
        )


# ── Trades ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class TradeInput:
    """Already-executed fill handed to the ledger by the caller.

    For a BUY, ``to_token``/``to_amount`` is what was acquired and
    ``from_amount`` is the cash spent.  For a SELL, ``from_token``/
    ``from_amount`` is what was disposed and ``to_amount`` is the cash
    received.
    """

    side: TradeSide
    from_token: str
    to_token: str
    from_amount: float
    to_amount: float
    execution_price: float
    fee_amount: float = 0.0
    slippage_bps: float = 0.0

    @property
    def position_token(self) -> str:
        """Token whose position this trade opens, grows or reduces."""
        return self.to_token if self.side == TradeSide.BUY else self.from_token


@dataclass(frozen=True)
class TradeRecord:
    """Immutable record of a single filled paper trade."""

    trade_id: str
    timestamp: datetime
    side: TradeSide
    from_token: str
    to_token: str
    from_amount: float
    to_amount: float
    execution_price: float
    fee_amount: float
    slippage_bps: float
    status: TradeStatus = TradeStatus.FILLED
    realized_pnl: float = 0.0
    realized_pnl_percent: float = 0.0

    def __post_init__(self) -> None:
        if not self.trade_id:
            msg = "TradeRecord trade_id must not be empty"
            raise ValueError(msg)
        if self.timestamp.tzinfo is None:
            msg = "TradeRecord timestamp must be timezone-aware (UTC)"
            raise ValueError(msg)

    @property
    def position_token(self) -> str:
        return self.to_token if self.side == TradeSide.BUY else self.from_token

    @property
    def cash_delta(self) -> float:
        """Signed change this trade applied to the cash balance."""
        if self.side == TradeSide.BUY:
            return -self.from_amount - self.fee_amount
        return self.to_amount - self.fee_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "timestamp": self.timestamp.isoformat(),
            "side": self.side.value,
            "from_token": self.from_token,
            "to_token": self.to_token,
            "from_amount": self.from_amount,
            "to_amount": self.to_amount,
            "execution_price": self.execution_price,
            "fee_amount": self.fee_amount,
            "slippage_bps": self.slippage_bps,
            "status": self.status.value,
            "realized_pnl": self.realized_pnl,
            "realized_pnl_percent": self.realized_pnl_percent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradeRecord:
        timestamp = datetime.fromisoformat(str(data["timestamp"]))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            trade_id=str(data["trade_id"]),
            timestamp=timestamp,
            side=TradeSide(data["side"]),
            from_token=str(data["from_token"]),
            to_token=str(data["to_token"]),
            from_amount=float(data["from_amount"]),
            to_amount=float(data["to_amount"]),
            execution_price=float(data["execution_price"]),
            fee_amount=float(data.get("fee_amount", 0.0)),
            slippage_bps=float(data.get("slippage_bps", 0.0)),
            status=TradeStatus(data.get("status", TradeStatus.FILLED.value)),
            realized_pnl=float(data.get("realized_pnl", 0.0)),
            realized_pnl_percent=float(data.get("realized_pnl_percent", 0.0)),
        )


# ── Analytics Types ──────────────────────────────────────────────

@dataclass(frozen=True)
class BalancePoint:
    """Cash balance after replaying the log up to ``timestamp``."""

    timestamp: datetime
    balance: float


@dataclass
class PerformanceSummary:
    """Dashboard headline numbers for one paper account."""

    starting_balance: float
    cash_balance: float
    total_pnl: float
    total_pnl_percent: float
    realized_pnl: float
    unrealized_pnl: float
    win_rate: float
    trade_count: int
    open_positions: int
    best_trade_pnl: float | None = None
    worst_trade_pnl: float | None = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
