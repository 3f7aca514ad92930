"""Paper trading ledger — virtual cash, open positions and the trade log.

The ledger is an explicit object owned by the caller.  Every mutation and
every analytics read runs under one re-entrant lock, so a trade is never
observable half-applied (cash debited but position not yet updated).

Typical lifecycle::

    ledger = PaperLedger.from_settings()
    ledger.set_simulation_mode(True)
    ledger.execute_trade(TradeInput(
        side=TradeSide.BUY, from_token="USDC", to_token="SOL",
        from_amount=150.0, to_amount=1.0, execution_price=150.0,
    ))
    ledger.mark_position("SOL", 162.5)
    ledger.total_pnl()

The ledger performs no I/O.  Persistence is layered on top by
:class:`~paper_ledger.ledger.session.LedgerSession`.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from uuid_extensions import uuid7

from paper_ledger.analytics import performance
from paper_ledger.core.constants import (
    DEFAULT_DUST_THRESHOLD,
    DEFAULT_STARTING_BALANCE,
    SNAPSHOT_VERSION,
)
from paper_ledger.core.exceptions import (
    LedgerIntegrityError,
    OversellError,
    SnapshotError,
    ValidationError,
)
from paper_ledger.core.logging import get_logger
from paper_ledger.core.types import (
    AccountMode,
    BalancePoint,
    OversellPolicy,
    PerformanceSummary,
    Position,
    ProceedsPolicy,
    TradeInput,
    TradeRecord,
    TradeSide,
    TradeStatus,
)
from paper_ledger.ledger.position_book import PositionBook, PositionChangeRecord

if TYPE_CHECKING:
    from config.settings import Settings

log = get_logger(__name__)

_RECONCILE_TOLERANCE = 1e-6


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _is_non_negative_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0


class PaperLedger:
    """Single paper trading account with weighted-average cost accounting.

    Args:
        starting_balance: Virtual cash the account starts (and resets) with.
        dust_threshold: Positions at or below this amount are closed.
        oversell_policy: Cap oversells to the held amount, or reject them.
        proceeds_policy: Credit sells with the caller's ``to_amount`` or
            with ``amount_sold * execution_price``.
        clock: Returns the timestamp stamped on new trades.
    """

    def __init__(
        self,
        starting_balance: float = DEFAULT_STARTING_BALANCE,
        *,
        dust_threshold: float = DEFAULT_DUST_THRESHOLD,
        oversell_policy: OversellPolicy = OversellPolicy.CAP,
        proceeds_policy: ProceedsPolicy = ProceedsPolicy.CALLER,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not math.isfinite(starting_balance) or starting_balance < 0:
            msg = f"starting_balance must be a non-negative number, got {starting_balance}"
            raise ValidationError(msg)
        if not dust_threshold > 0:
            msg = f"dust_threshold must be positive, got {dust_threshold}"
            raise ValidationError(msg)

        self._lock = threading.RLock()
        self._clock = clock or _utc_now
        self._oversell_policy = OversellPolicy(oversell_policy)
        self._proceeds_policy = ProceedsPolicy(proceeds_policy)

        self._mode = AccountMode.LIVE
        self._starting_balance = float(starting_balance)
        self._cash_balance = float(starting_balance)
        self._has_seen_tutorial = False
        self._book = PositionBook(dust_threshold)
        self._trades: list[TradeRecord] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> PaperLedger:
        """Build a fresh ledger from the configured defaults."""
        if settings is None:
            from config.settings import get_settings

            settings = get_settings()
        return cls(
            settings.paper_starting_balance,
            dust_threshold=settings.paper_dust_threshold,
            oversell_policy=settings.paper_oversell_policy,
            proceeds_policy=settings.paper_proceeds_policy,
            clock=clock,
        )

    # ── State Accessors ─────────────────────────────────────────

    @property
    def mode(self) -> AccountMode:
        return self._mode

    @property
    def is_simulated(self) -> bool:
        return self._mode == AccountMode.SIMULATED

    @property
    def starting_balance(self) -> float:
        return self._starting_balance

    @property
    def cash_balance(self) -> float:
        with self._lock:
            return self._cash_balance

    @property
    def has_seen_tutorial(self) -> bool:
        return self._has_seen_tutorial

    @property
    def dust_threshold(self) -> float:
        return self._book.dust_threshold

    @property
    def oversell_policy(self) -> OversellPolicy:
        return self._oversell_policy

    @property
    def proceeds_policy(self) -> ProceedsPolicy:
        """Which cash figure sells credit; see :class:`ProceedsPolicy`."""
        return self._proceeds_policy

    @property
    def trades(self) -> list[TradeRecord]:
        """Trade log, most recent first (copy)."""
        with self._lock:
            return list(self._trades)

    @property
    def positions(self) -> list[Position]:
        """Open positions in opening order (copies)."""
        with self._lock:
            return self._book.positions()

    def get_position(self, token: str) -> Position | None:
        with self._lock:
            return self._book.get(token)

    def position_history(self) -> list[PositionChangeRecord]:
        """Audit trail of position changes since the last reset or restore."""
        with self._lock:
            return self._book.get_history()

    # ── Mode Control ────────────────────────────────────────────

    def set_simulation_mode(self, enabled: bool) -> None:
        """Switch between live and simulated mode.

        Enabling on an untouched account (no trades, no positions) restores
        the cash balance to the starting balance.  Existing history is
        never wiped by re-enabling.
        """
        with self._lock:
            self._mode = AccountMode.SIMULATED if enabled else AccountMode.LIVE
            fresh = not self._trades and len(self._book) == 0
            if enabled and fresh:
                self._cash_balance = self._starting_balance
            log.info("simulation_mode_set", mode=self._mode.value, fresh_start=enabled and fresh)

    def set_has_seen_tutorial(self, seen: bool) -> None:
        with self._lock:
            self._has_seen_tutorial = bool(seen)

    # ── Trade Execution ─────────────────────────────────────────

    def execute_trade(self, trade: TradeInput) -> TradeRecord:
        """Apply an executed fill to cash and positions and log it.

        BUY merges ``to_amount`` units at ``execution_price`` into the
        ``to_token`` position and debits ``from_amount + fee_amount``.
        SELL reduces the ``from_token`` position by ``from_amount`` (capped
        at the held amount unless oversells are rejected), realizes
        P&L against the average cost, and credits the proceeds minus fee.
        Selling a token with no position is recorded with zero P&L.

        Returns:
            The new ``TradeRecord``, which is also prepended to the log.

        Raises:
            ValidationError: If any amount is negative or non-finite, or a
                token is empty.  No state is changed.
            OversellError: If oversells are rejected and the sell exceeds
                the held amount.  No state is changed.
        """
        side = self._validate_trade(trade)

        with self._lock:
            timestamp = self._clock()
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)

            if side == TradeSide.BUY:
                record = self._apply_buy(trade, timestamp)
            else:
                record = self._apply_sell(trade, timestamp)

            self._cash_balance += record.cash_delta
            self._trades.insert(0, record)
            cash_after = self._cash_balance

        log.info(
            "trade_executed",
            trade_id=record.trade_id,
            side=record.side.value,
            token=record.position_token,
            from_amount=record.from_amount,
            to_amount=record.to_amount,
            price=record.execution_price,
            fee=record.fee_amount,
            realized_pnl=round(record.realized_pnl, 6),
            cash_balance=round(cash_after, 6),
        )
        return record

    def _apply_buy(self, trade: TradeInput, timestamp: datetime) -> TradeRecord:
        self._book.buy(trade.to_token, trade.to_amount, trade.execution_price)
        return self._build_record(trade, TradeSide.BUY, timestamp, trade.to_amount, 0.0, 0.0)

    def _apply_sell(self, trade: TradeInput, timestamp: datetime) -> TradeRecord:
        token = trade.from_token
        held = self._book.held_amount(token)
        if (
            self._oversell_policy == OversellPolicy.REJECT
            and token in self._book
            and trade.from_amount > held + self._book.dust_threshold
        ):
            raise OversellError(
                f"Cannot sell {trade.from_amount} {token}; only {held} held",
                context={"token": token, "requested": trade.from_amount, "held": held},
            )

        result = self._book.sell(token, trade.from_amount, trade.execution_price)
        if result is None:
            log.info("sell_without_position", token=token, amount=trade.from_amount)
            amount_sold = trade.from_amount
            realized, percent = 0.0, 0.0
        else:
            amount_sold = result.amount_sold
            realized, percent = result.realized_pnl, result.realized_pnl_percent

        if self._proceeds_policy == ProceedsPolicy.DERIVED:
            to_amount = amount_sold * trade.execution_price
        else:
            to_amount = trade.to_amount
        return self._build_record(trade, TradeSide.SELL, timestamp, to_amount, realized, percent)

    @staticmethod
    def _build_record(
        trade: TradeInput,
        side: TradeSide,
        timestamp: datetime,
        to_amount: float,
        realized_pnl: float,
        realized_pnl_percent: float,
    ) -> TradeRecord:
        return TradeRecord(
            trade_id=f"paper-{uuid7()}",
            timestamp=timestamp,
            side=side,
            from_token=trade.from_token,
            to_token=trade.to_token,
            from_amount=trade.from_amount,
            to_amount=to_amount,
            execution_price=trade.execution_price,
            fee_amount=trade.fee_amount,
            slippage_bps=trade.slippage_bps,
            status=TradeStatus.FILLED,
            realized_pnl=realized_pnl,
            realized_pnl_percent=realized_pnl_percent,
        )

    @staticmethod
    def _validate_trade(trade: TradeInput) -> TradeSide:
        try:
            side = TradeSide(trade.side)
        except ValueError:
            msg = f"Unknown trade side: {trade.side!r}"
            raise ValidationError(msg, context={"side": trade.side}) from None

        for name in ("from_token", "to_token"):
            value = getattr(trade, name)
            if not isinstance(value, str) or not value.strip():
                msg = f"{name} must be a non-empty string, got {value!r}"
                raise ValidationError(msg, context={name: value})

        for name in ("from_amount", "to_amount", "execution_price", "fee_amount", "slippage_bps"):
            value = getattr(trade, name)
            if not _is_non_negative_number(value):
                msg = f"{name} must be a finite non-negative number, got {value!r}"
                raise ValidationError(msg, context={name: value})
        return side

    # ── Mark-to-Market ──────────────────────────────────────────

    def mark_position(self, token: str, current_price: float) -> Position | None:
        """Revalue the position in *token* at *current_price*.

        Returns the updated position, or ``None`` if *token* is not held.
        """
        self._validate_price(token, current_price)
        with self._lock:
            position = self._book.mark(token, current_price)
        if position is not None:
            log.debug(
                "position_marked",
                token=token,
                mark_price=current_price,
                unrealized_pnl=round(position.unrealized_pnl, 6),
            )
        return position

    def mark_positions(self, prices: Mapping[str, float]) -> None:
        """Apply a price-feed tick to every open position with a quote."""
        for token, price in prices.items():
            self._validate_price(token, price)
        with self._lock:
            for token, price in prices.items():
                self._book.mark(token, price)

    @staticmethod
    def _validate_price(token: str, price: float) -> None:
        if not _is_non_negative_number(price):
            msg = f"Mark price for {token} must be a finite non-negative number, got {price!r}"
            raise ValidationError(msg, context={"token": token, "price": price})

    # ── Reset ───────────────────────────────────────────────────

    def reset_account(self) -> None:
        """Clear trades and positions and restore the starting balance."""
        with self._lock:
            cleared = len(self._trades)
            self._trades.clear()
            self._book.clear()
            self._cash_balance = self._starting_balance
        log.info("account_reset", trades_cleared=cleared, cash_balance=self._starting_balance)

    # ── Analytics ───────────────────────────────────────────────

    def total_pnl(self) -> float:
        with self._lock:
            return performance.total_pnl(
                self._cash_balance, self._starting_balance, self._book.positions(),
            )

    def total_pnl_percent(self) -> float:
        with self._lock:
            return performance.total_pnl_percent(
                self._cash_balance, self._starting_balance, self._book.positions(),
            )

    def best_trade(self) -> TradeRecord | None:
        with self._lock:
            return performance.best_trade(self._trades)

    def worst_trade(self) -> TradeRecord | None:
        with self._lock:
            return performance.worst_trade(self._trades)

    def win_rate(self) -> float:
        with self._lock:
            return performance.win_rate(self._trades)

    def balance_history(self) -> list[BalancePoint]:
        with self._lock:
            return performance.balance_history(self._trades, self._starting_balance)

    def performance_summary(self) -> PerformanceSummary:
        with self._lock:
            return performance.summarize(
                self._trades,
                self._book.positions(),
                self._cash_balance,
                self._starting_balance,
            )

    # ── Reconciliation ──────────────────────────────────────────

    def expected_cash_balance(self) -> float:
        """Cash balance implied by replaying the trade log."""
        with self._lock:
            return performance.expected_cash_balance(self._trades, self._starting_balance)

    def is_reconciled(self) -> bool:
        with self._lock:
            expected = performance.expected_cash_balance(self._trades, self._starting_balance)
            scale = max(1.0, abs(expected))
            return abs(self._cash_balance - expected) <= _RECONCILE_TOLERANCE * scale

    def verify(self) -> None:
        """Raise if cash or positions violate the ledger invariants.

        Raises:
            LedgerIntegrityError: If the cash balance does not match the
                trade log, or a position is at or below the dust threshold.
        """
        with self._lock:
            if not self.is_reconciled():
                expected = self.expected_cash_balance()
                raise LedgerIntegrityError(
                    f"Cash balance {self._cash_balance} does not reconcile with "
                    f"trade log ({expected})",
                    context={"cash_balance": self._cash_balance, "expected": expected},
                )
            for position in self._book.positions():
                if position.amount <= self._book.dust_threshold:
                    raise LedgerIntegrityError(
                        f"Position {position.token} is at or below the dust threshold",
                        context={"token": position.token, "amount": position.amount},
                    )

    # ── Snapshots ───────────────────────────────────────────────

    def snapshot(self) -> dict[str, Any]:
        """Serialisable copy of the full account state."""
        with self._lock:
            return {
                "version": SNAPSHOT_VERSION,
                "mode": self._mode.value,
                "starting_balance": self._starting_balance,
                "cash_balance": self._cash_balance,
                "has_seen_tutorial": self._has_seen_tutorial,
                "positions": [p.to_dict() for p in self._book.positions()],
                "trades": [t.to_dict() for t in self._trades],
            }

    @classmethod
    def from_snapshot(
        cls,
        data: Mapping[str, Any],
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> PaperLedger:
        """Rebuild a ledger from :meth:`snapshot` output.

        Policies and the dust threshold come from *settings*; the account
        numbers, positions and trades come from *data*.

        Raises:
            SnapshotError: If *data* has an unsupported version or is
                malformed.
        """
        version = data.get("version")
        if version != SNAPSHOT_VERSION:
            msg = f"Unsupported ledger snapshot version: {version!r}"
            raise SnapshotError(msg, context={"version": version})

        if settings is None:
            from config.settings import get_settings

            settings = get_settings()

        try:
            ledger = cls(
                float(data["starting_balance"]),
                dust_threshold=settings.paper_dust_threshold,
                oversell_policy=settings.paper_oversell_policy,
                proceeds_policy=settings.paper_proceeds_policy,
                clock=clock,
            )
            positions = [Position.from_dict(p) for p in data.get("positions", [])]
            trades = [TradeRecord.from_dict(t) for t in data.get("trades", [])]
            mode = AccountMode(data.get("mode", AccountMode.LIVE.value))
            cash_balance = float(data["cash_balance"])
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            msg = f"Malformed ledger snapshot: {exc}"
            raise SnapshotError(msg) from exc

        for position in positions:
            if position.amount <= ledger.dust_threshold:
                msg = f"Snapshot position {position.token} has non-positive amount"
                raise SnapshotError(msg, context={"token": position.token, "amount": position.amount})

        ledger._mode = mode
        ledger._cash_balance = cash_balance
        ledger._has_seen_tutorial = bool(data.get("has_seen_tutorial", False))
        ledger._book.load(positions)
        ledger._trades = trades

        log.info(
            "ledger_restored",
            mode=mode.value,
            trades=len(trades),
            positions=len(positions),
            reconciled=ledger.is_reconciled(),
        )
        return ledger
