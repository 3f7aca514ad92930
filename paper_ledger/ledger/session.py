"""Persistence-aware wrapper around a :class:`PaperLedger`.

Every mutating call is applied to the in-memory ledger first and then
snapshotted to the injected store.  A failed write never undoes or blocks
the mutation; the session is flagged dirty and the write is retried on the
next mutation or an explicit :meth:`LedgerSession.flush`.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING

from paper_ledger.core.interfaces import BaseLedgerStore
from paper_ledger.core.logging import configure_logging, get_logger
from paper_ledger.core.types import Position, TradeInput, TradeRecord
from paper_ledger.ledger.account import PaperLedger

if TYPE_CHECKING:
    from config.settings import Settings

log = get_logger(__name__)


class LedgerSession:
    """Routes ledger mutations through snapshot persistence.

    Reads go straight to :attr:`ledger`; only mutations need the session.
    """

    def __init__(self, ledger: PaperLedger, store: BaseLedgerStore) -> None:
        self._ledger = ledger
        self._store = store
        self._write_lock = threading.Lock()
        self._dirty = False
        self._failed_writes = 0

    @classmethod
    def open(
        cls,
        store: BaseLedgerStore | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> LedgerSession:
        """Resume the stored ledger, or start a fresh one if none is saved.

        Also installs logging from *settings*; production always logs JSON.

        Raises:
            SnapshotError: If the stored snapshot cannot be restored.
        """
        if settings is None:
            from config.settings import get_settings

            settings = get_settings()
        configure_logging(
            settings.log_level,
            json=settings.log_json or settings.ledger_env == "prod",
        )
        if store is None:
            from paper_ledger.storage.json_store import JsonLedgerStore

            store = JsonLedgerStore(settings.paper_state_path)

        data = store.load()
        if data is None:
            ledger = PaperLedger.from_settings(settings, clock=clock)
            log.info("ledger_session_started", restored=False)
        else:
            ledger = PaperLedger.from_snapshot(data, settings, clock=clock)
            log.info("ledger_session_started", restored=True, trades=len(ledger.trades))
        return cls(ledger, store)

    # ── Accessors ───────────────────────────────────────────────

    @property
    def ledger(self) -> PaperLedger:
        return self._ledger

    @property
    def dirty(self) -> bool:
        """True when the last snapshot write failed and is pending retry."""
        return self._dirty

    @property
    def failed_writes(self) -> int:
        return self._failed_writes

    # ── Mutations ───────────────────────────────────────────────

    def set_simulation_mode(self, enabled: bool) -> None:
        self._ledger.set_simulation_mode(enabled)
        self._persist()

    def set_has_seen_tutorial(self, seen: bool) -> None:
        self._ledger.set_has_seen_tutorial(seen)
        self._persist()

    def execute_trade(self, trade: TradeInput) -> TradeRecord:
        record = self._ledger.execute_trade(trade)
        self._persist()
        return record

    def mark_position(self, token: str, current_price: float) -> Position | None:
        position = self._ledger.mark_position(token, current_price)
        if position is not None:
            self._persist()
        return position

    def mark_positions(self, prices: Mapping[str, float]) -> None:
        self._ledger.mark_positions(prices)
        self._persist()

    def reset_account(self) -> None:
        self._ledger.reset_account()
        self._persist()

    # ── Persistence ─────────────────────────────────────────────

    def flush(self) -> bool:
        """Write the current snapshot now. Returns True on success."""
        return self._persist()

    def _persist(self) -> bool:
        # An older snapshot must never overwrite a newer one.
        with self._write_lock:
            snapshot = self._ledger.snapshot()
            try:
                self._store.save(snapshot)
            except OSError as exc:
                self._dirty = True
                self._failed_writes += 1
                log.warning(
                    "ledger_snapshot_write_failed",
                    error=str(exc),
                    failed_writes=self._failed_writes,
                )
                return False
            if self._dirty:
                log.info("ledger_snapshot_resynced", failed_writes=self._failed_writes)
            self._dirty = False
            return True
