"""Custom exception hierarchy for the paper ledger."""

from __future__ import annotations

from typing import Any


class PaperLedgerError(Exception):
    """Base exception for all paper ledger errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = context or {}


# ── Caller Contract ──────────────────────────────────────────────

class ValidationError(PaperLedgerError):
    """Trade input or query arguments violate the caller contract."""


class OversellError(PaperLedgerError):
    """Sell requested more than is held while oversell rejection is enabled."""


# ── Ledger State ─────────────────────────────────────────────────

class LedgerIntegrityError(PaperLedgerError):
    """Cash balance does not reconcile with the trade log."""


class SnapshotError(PaperLedgerError):
    """Persisted ledger state is malformed or has an unsupported version."""
