"""Paper ledger global settings — loaded from environment variables via .env file."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from paper_ledger.core.constants import DEFAULT_DUST_THRESHOLD, DEFAULT_STARTING_BALANCE
from paper_ledger.core.types import OversellPolicy, ProceedsPolicy

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """All configuration flows through this class. Never read env vars directly."""

    model_config = SettingsConfigDict(
        env_file=PROJECT_ROOT / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────
    ledger_env: Literal["dev", "prod"] = "dev"

    # ── Paper Trading ────────────────────────────────────────────
    paper_starting_balance: float = DEFAULT_STARTING_BALANCE
    paper_dust_threshold: float = DEFAULT_DUST_THRESHOLD
    paper_oversell_policy: OversellPolicy = OversellPolicy.CAP
    paper_proceeds_policy: ProceedsPolicy = ProceedsPolicy.CALLER

    # ── Persistence ──────────────────────────────────────────────
    paper_state_path: Path = PROJECT_ROOT / "data" / "paper_ledger.json"

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = False

    @model_validator(mode="after")
    def _check_ledger_bounds(self) -> "Settings":
        """Reject values that would break the accounting invariants."""
        if self.paper_starting_balance < 0:
            msg = (
                "PAPER_STARTING_BALANCE must be non-negative, "
                f"got {self.paper_starting_balance}"
            )
            raise ValueError(msg)
        if self.paper_dust_threshold <= 0:
            msg = (
                "PAPER_DUST_THRESHOLD must be positive, "
                f"got {self.paper_dust_threshold}"
            )
            raise ValueError(msg)
        return self


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Singleton settings loader — reads .env once, reuses thereafter."""
    global _settings_instance  # noqa: PLW0603
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
