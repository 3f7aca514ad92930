"""System-wide constants. All magic numbers and strings live here."""

from __future__ import annotations

# ── Account Defaults ─────────────────────────────────────────────
DEFAULT_STARTING_BALANCE = 10_000.0   # virtual USD
DEFAULT_DUST_THRESHOLD = 1e-6         # positions at or below this are closed

# ── Percent / Rounding ───────────────────────────────────────────
PERCENT = 100.0
BALANCE_DECIMALS = 2

# ── Balance History ──────────────────────────────────────────────
BASELINE_OFFSET_MS = 1                # baseline point sits just before first trade

# ── Persistence ──────────────────────────────────────────────────
SNAPSHOT_VERSION = 1

# ── Trade Paging ─────────────────────────────────────────────────
DEFAULT_PAGE_SIZE = 20
