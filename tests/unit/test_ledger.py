"""Tests for the paper trading ledger engine."""

from __future__ import annotations

import math
import threading

import pytest

from paper_ledger.core.exceptions import (
    LedgerIntegrityError,
    OversellError,
    SnapshotError,
    ValidationError,
)
from paper_ledger.core.types import (
    AccountMode,
    OversellPolicy,
    ProceedsPolicy,
    TradeInput,
    TradeSide,
    TradeStatus,
)
from paper_ledger.ledger.account import PaperLedger


def _buy(token: str, amount: float, price: float, fee: float = 0.0) -> TradeInput:
    return TradeInput(
        side=TradeSide.BUY,
        from_token="USDC",
        to_token=token,
        from_amount=amount * price,
        to_amount=amount,
        execution_price=price,
        fee_amount=fee,
    )


def _sell(token: str, amount: float, price: float, fee: float = 0.0) -> TradeInput:
    return TradeInput(
        side=TradeSide.SELL,
        from_token=token,
        to_token="USDC",
        from_amount=amount,
        to_amount=amount * price,
        execution_price=price,
        fee_amount=fee,
    )


class TestModeControl:
    def test_starts_live_with_starting_balance(self, ledger: PaperLedger) -> None:
        assert ledger.mode == AccountMode.LIVE
        assert not ledger.is_simulated
        assert ledger.cash_balance == 10_000.0

    def test_enable_simulation(self, ledger: PaperLedger) -> None:
        ledger.set_simulation_mode(True)
        assert ledger.mode == AccountMode.SIMULATED
        assert ledger.is_simulated

    def test_reenabling_keeps_history(self, ledger: PaperLedger) -> None:
        ledger.set_simulation_mode(True)
        ledger.execute_trade(_buy("SOL", 10, 100))
        ledger.set_simulation_mode(False)
        ledger.set_simulation_mode(True)
        assert len(ledger.trades) == 1
        assert ledger.cash_balance == 9_000.0
        assert ledger.get_position("SOL") is not None

    def test_enable_is_idempotent_on_fresh_account(self, ledger: PaperLedger) -> None:
        ledger.set_simulation_mode(True)
        ledger.set_simulation_mode(True)
        assert ledger.cash_balance == ledger.starting_balance

    def test_tutorial_flag(self, ledger: PaperLedger) -> None:
        assert ledger.has_seen_tutorial is False
        ledger.set_has_seen_tutorial(True)
        assert ledger.has_seen_tutorial is True


class TestBuy:
    def test_first_buy_opens_position(self, ledger: PaperLedger) -> None:
        record = ledger.execute_trade(_buy("SOL", 10, 100, fee=1.5))
        pos = ledger.get_position("SOL")
        assert pos is not None
        assert pos.amount == 10
        assert pos.average_cost == 100
        assert pos.mark_price == 100
        assert pos.unrealized_pnl == 0
        assert ledger.cash_balance == pytest.approx(10_000 - 1_000 - 1.5)
        assert record.realized_pnl == 0
        assert record.realized_pnl_percent == 0
        assert record.status == TradeStatus.FILLED
        assert record.trade_id.startswith("paper-")

    def test_weighted_average_cost(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 10, 100))
        ledger.execute_trade(_buy("SOL", 10, 200))
        pos = ledger.get_position("SOL")
        assert pos is not None
        assert pos.amount == 20
        assert pos.average_cost == pytest.approx(150)
        # Marked to the latest fill
        assert pos.mark_price == 200
        assert pos.unrealized_pnl == pytest.approx(1_000)

    def test_log_is_most_recent_first(self, ledger: PaperLedger) -> None:
        first = ledger.execute_trade(_buy("SOL", 1, 100))
        second = ledger.execute_trade(_buy("ETH", 1, 2_000))
        assert [t.trade_id for t in ledger.trades] == [second.trade_id, first.trade_id]
        assert second.timestamp > first.timestamp

    def test_trade_ids_are_unique(self, ledger: PaperLedger) -> None:
        ids = {ledger.execute_trade(_buy("SOL", 1, 100)).trade_id for _ in range(20)}
        assert len(ids) == 20

    @pytest.mark.parametrize("amount", [0.0, 5e-7, 1e-6])
    def test_dust_buy_opens_no_position(self, ledger: PaperLedger, settings, amount: float) -> None:
        record = ledger.execute_trade(_buy("SOL", amount, 100, fee=0.25))
        assert ledger.get_position("SOL") is None
        assert ledger.trades == [record]
        assert ledger.cash_balance == pytest.approx(10_000 - amount * 100 - 0.25)
        ledger.verify()

        restored = PaperLedger.from_snapshot(ledger.snapshot(), settings)
        assert restored.positions == []
        assert restored.cash_balance == ledger.cash_balance

    def test_dust_buy_adds_to_open_position(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 2, 100))
        ledger.execute_trade(_buy("SOL", 0.0, 120))
        pos = ledger.get_position("SOL")
        assert pos.amount == 2
        assert pos.average_cost == pytest.approx(100)
        ledger.verify()


class TestSell:
    def test_partial_close(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 10, 100))
        record = ledger.execute_trade(_sell("SOL", 4, 150))
        assert record.realized_pnl == pytest.approx(200)
        assert record.realized_pnl_percent == pytest.approx(50)
        pos = ledger.get_position("SOL")
        assert pos is not None
        assert pos.amount == pytest.approx(6)
        assert pos.average_cost == 100
        assert pos.mark_price == 150

    def test_full_close_removes_position(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 10, 100))
        ledger.execute_trade(_sell("SOL", 4, 150))
        ledger.execute_trade(_sell("SOL", 6, 90))
        assert ledger.get_position("SOL") is None
        assert ledger.positions == []

    def test_dust_residue_closes_position(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 1.0, 100))
        ledger.execute_trade(_sell("SOL", 1.0 - 5e-7, 100))
        assert ledger.get_position("SOL") is None

    def test_oversell_is_capped(self, clock) -> None:
        capped = PaperLedger(10_000.0, clock=clock)
        exact = PaperLedger(10_000.0, clock=clock)
        for account in (capped, exact):
            account.execute_trade(_buy("SOL", 10, 100))

        over = capped.execute_trade(
            TradeInput(
                side=TradeSide.SELL, from_token="SOL", to_token="USDC",
                from_amount=50, to_amount=1_500, execution_price=150,
            )
        )
        held = exact.execute_trade(
            TradeInput(
                side=TradeSide.SELL, from_token="SOL", to_token="USDC",
                from_amount=10, to_amount=1_500, execution_price=150,
            )
        )
        assert over.realized_pnl == held.realized_pnl == pytest.approx(500)
        assert capped.get_position("SOL") is None
        assert capped.cash_balance == exact.cash_balance

    def test_oversell_rejected_when_configured(self, clock) -> None:
        ledger = PaperLedger(10_000.0, oversell_policy=OversellPolicy.REJECT, clock=clock)
        ledger.execute_trade(_buy("SOL", 10, 100))
        cash_before = ledger.cash_balance
        with pytest.raises(OversellError, match="only 10"):
            ledger.execute_trade(_sell("SOL", 11, 100))
        assert ledger.cash_balance == cash_before
        assert len(ledger.trades) == 1
        assert ledger.get_position("SOL").amount == 10

    def test_sell_without_position_is_recorded_with_zero_pnl(self, ledger: PaperLedger) -> None:
        record = ledger.execute_trade(_sell("BONK", 1_000, 0.01, fee=0.5))
        assert record.realized_pnl == 0
        assert record.realized_pnl_percent == 0
        assert ledger.get_position("BONK") is None
        assert ledger.cash_balance == pytest.approx(10_000 + 10 - 0.5)

    def test_sell_credits_caller_proceeds(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 10, 100))
        ledger.execute_trade(
            TradeInput(
                side=TradeSide.SELL, from_token="SOL", to_token="USDC",
                from_amount=5, to_amount=480, execution_price=100, fee_amount=2,
            )
        )
        assert ledger.proceeds_policy == ProceedsPolicy.CALLER
        assert ledger.cash_balance == pytest.approx(10_000 - 1_000 + 480 - 2)

    def test_derived_proceeds_policy(self, clock) -> None:
        ledger = PaperLedger(10_000.0, proceeds_policy=ProceedsPolicy.DERIVED, clock=clock)
        ledger.execute_trade(_buy("SOL", 10, 100))
        record = ledger.execute_trade(
            TradeInput(
                side=TradeSide.SELL, from_token="SOL", to_token="USDC",
                from_amount=50, to_amount=9_999, execution_price=120, fee_amount=1,
            )
        )
        assert record.to_amount == pytest.approx(1_200)
        assert ledger.cash_balance == pytest.approx(10_000 - 1_000 + 1_200 - 1)
        assert ledger.is_reconciled()

    def test_reopen_after_close_starts_new_cost_basis(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 10, 100))
        ledger.execute_trade(_sell("SOL", 10, 120))
        ledger.execute_trade(_buy("SOL", 2, 300))
        pos = ledger.get_position("SOL")
        assert pos is not None
        assert pos.amount == 2
        assert pos.average_cost == 300

    def test_zero_cost_basis_percent_is_guarded(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("AIRDROP", 100, 0))
        record = ledger.execute_trade(_sell("AIRDROP", 50, 1))
        assert record.realized_pnl == pytest.approx(50)
        assert record.realized_pnl_percent == 0


class TestValidation:
    @pytest.mark.parametrize(
        "field_name, value",
        [
            ("from_amount", -1.0),
            ("to_amount", math.nan),
            ("execution_price", math.inf),
            ("fee_amount", -0.01),
            ("slippage_bps", -5.0),
        ],
    )
    def test_rejects_bad_numbers(self, ledger: PaperLedger, field_name: str, value: float) -> None:
        fields = {
            "side": TradeSide.BUY,
            "from_token": "USDC",
            "to_token": "SOL",
            "from_amount": 100.0,
            "to_amount": 1.0,
            "execution_price": 100.0,
            field_name: value,
        }
        with pytest.raises(ValidationError, match=field_name):
            ledger.execute_trade(TradeInput(**fields))
        assert ledger.trades == []
        assert ledger.cash_balance == 10_000.0

    def test_rejects_bool_amount(self, ledger: PaperLedger) -> None:
        trade = TradeInput(TradeSide.BUY, "USDC", "SOL", 100.0, True, 100.0)  # type: ignore[arg-type]
        with pytest.raises(ValidationError, match="to_amount"):
            ledger.execute_trade(trade)
        assert ledger.trades == []

    def test_rejects_bool_mark_price(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 1, 100))
        with pytest.raises(ValidationError, match="SOL"):
            ledger.mark_position("SOL", False)  # type: ignore[arg-type]

    def test_rejects_empty_token(self, ledger: PaperLedger) -> None:
        with pytest.raises(ValidationError, match="to_token"):
            ledger.execute_trade(_buy("", 1, 100))

    def test_rejects_unknown_side(self, ledger: PaperLedger) -> None:
        trade = TradeInput(
            side="short",  # type: ignore[arg-type]
            from_token="USDC", to_token="SOL",
            from_amount=1, to_amount=1, execution_price=1,
        )
        with pytest.raises(ValidationError, match="side"):
            ledger.execute_trade(trade)

    def test_accepts_string_side(self, ledger: PaperLedger) -> None:
        trade = TradeInput(
            side="buy",  # type: ignore[arg-type]
            from_token="USDC", to_token="SOL",
            from_amount=100, to_amount=1, execution_price=100,
        )
        record = ledger.execute_trade(trade)
        assert record.side == TradeSide.BUY

    def test_rejects_negative_starting_balance(self) -> None:
        with pytest.raises(ValidationError):
            PaperLedger(-1.0)


class TestMarkToMarket:
    def test_mark_updates_unrealized(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 10, 100))
        pos = ledger.mark_position("SOL", 110)
        assert pos is not None
        assert pos.unrealized_pnl == pytest.approx(100)
        assert pos.unrealized_pnl_percent == pytest.approx(10)

    def test_mark_is_idempotent(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 3, 100))
        first = ledger.mark_position("SOL", 87.5).unrealized_pnl
        second = ledger.mark_position("SOL", 87.5).unrealized_pnl
        assert first == second

    def test_mark_unknown_token_is_noop(self, ledger: PaperLedger) -> None:
        assert ledger.mark_position("NOPE", 1.0) is None
        assert ledger.positions == []

    def test_mark_positions_batch(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 1, 100))
        ledger.execute_trade(_buy("ETH", 1, 2_000))
        ledger.mark_positions({"SOL": 120, "ETH": 1_900, "BTC": 60_000})
        assert ledger.get_position("SOL").mark_price == 120
        assert ledger.get_position("ETH").mark_price == 1_900
        assert ledger.get_position("BTC") is None

    def test_mark_rejects_nan(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 1, 100))
        with pytest.raises(ValidationError):
            ledger.mark_position("SOL", math.nan)

    def test_returned_positions_are_copies(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 1, 100))
        pos = ledger.get_position("SOL")
        pos.amount = 999
        assert ledger.get_position("SOL").amount == 1


class TestResetAndReconcile:
    def test_reset_clears_everything(self, ledger: PaperLedger) -> None:
        ledger.set_simulation_mode(True)
        ledger.set_has_seen_tutorial(True)
        ledger.execute_trade(_buy("SOL", 10, 100))
        ledger.reset_account()
        assert ledger.trades == []
        assert ledger.positions == []
        assert ledger.cash_balance == 10_000.0
        assert ledger.is_simulated
        assert ledger.has_seen_tutorial

    def test_cash_reconciles_after_mixed_sequence(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 10, 100, fee=1))
        ledger.execute_trade(_buy("ETH", 0.5, 2_000, fee=2))
        ledger.execute_trade(_sell("SOL", 3, 130, fee=0.5))
        ledger.execute_trade(_sell("ETH", 5, 1_800, fee=0.25))
        ledger.execute_trade(_sell("DOGE", 100, 0.1))
        ledger.execute_trade(_buy("SOL", 1.25, 90))
        expected = ledger.starting_balance + sum(t.cash_delta for t in ledger.trades)
        assert ledger.cash_balance == pytest.approx(expected)
        assert ledger.expected_cash_balance() == pytest.approx(expected)
        assert ledger.is_reconciled()
        ledger.verify()
        assert all(p.amount > ledger.dust_threshold for p in ledger.positions)

    def test_verify_detects_corrupted_cash(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 1, 100))
        ledger._cash_balance += 5  # simulate corruption
        assert not ledger.is_reconciled()
        with pytest.raises(LedgerIntegrityError):
            ledger.verify()

    def test_position_history_tracks_lifecycle(self, ledger: PaperLedger) -> None:
        ledger.execute_trade(_buy("SOL", 10, 100))
        ledger.execute_trade(_buy("SOL", 10, 200))
        ledger.execute_trade(_sell("SOL", 5, 150))
        ledger.execute_trade(_sell("SOL", 15, 150))
        actions = [r.action for r in ledger.position_history()]
        assert actions == ["OPEN", "ADD", "REDUCE", "CLOSE"]


class TestSnapshots:
    def test_snapshot_round_trip_preserves_analytics(self, ledger: PaperLedger, settings) -> None:
        ledger.set_simulation_mode(True)
        ledger.execute_trade(_buy("SOL", 10, 100, fee=1))
        ledger.execute_trade(_sell("SOL", 4, 150, fee=1))
        ledger.mark_position("SOL", 140)

        restored = PaperLedger.from_snapshot(ledger.snapshot(), settings)
        assert restored.mode == AccountMode.SIMULATED
        assert restored.cash_balance == ledger.cash_balance
        assert restored.total_pnl() == pytest.approx(ledger.total_pnl())
        assert restored.win_rate() == ledger.win_rate()
        assert restored.balance_history() == ledger.balance_history()
        assert restored.get_position("SOL").mark_price == 140
        assert restored.is_reconciled()

    def test_unknown_version_rejected(self, ledger: PaperLedger, settings) -> None:
        data = ledger.snapshot()
        data["version"] = 99
        with pytest.raises(SnapshotError, match="version"):
            PaperLedger.from_snapshot(data, settings)

    def test_malformed_snapshot_rejected(self, ledger: PaperLedger, settings) -> None:
        data = ledger.snapshot()
        del data["cash_balance"]
        with pytest.raises(SnapshotError, match="Malformed"):
            PaperLedger.from_snapshot(data, settings)

    def test_zero_amount_position_rejected(self, ledger: PaperLedger, settings) -> None:
        data = ledger.snapshot()
        data["positions"] = [{"token": "SOL", "amount": 0.0, "average_cost": 1.0}]
        with pytest.raises(SnapshotError, match="SOL"):
            PaperLedger.from_snapshot(data, settings)


class TestConcurrency:
    def test_concurrent_buys_reconcile(self) -> None:
        ledger = PaperLedger(1_000_000.0)

        def worker() -> None:
            for _ in range(50):
                ledger.execute_trade(_buy("SOL", 1, 10))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(ledger.trades) == 400
        assert ledger.get_position("SOL").amount == 400
        assert ledger.cash_balance == pytest.approx(1_000_000 - 4_000)
        assert ledger.is_reconciled()
