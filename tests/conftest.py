"""Shared pytest fixtures for the paper ledger suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from config.settings import Settings
from paper_ledger.ledger.account import PaperLedger


class StepClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self._now
        self._now = current + timedelta(seconds=1)
        return current


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        paper_starting_balance=10_000.0,
        paper_dust_threshold=1e-6,
        paper_oversell_policy="cap",
        paper_proceeds_policy="caller",
        paper_state_path=tmp_path / "paper_ledger.json",
    )


@pytest.fixture
def ledger(clock: StepClock) -> PaperLedger:
    return PaperLedger(10_000.0, clock=clock)
