"""Abstract base classes — persistence adapters implement these interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BaseLedgerStore(ABC):
    """Interface for durable storage of ledger snapshots."""

    @abstractmethod
    def save(self, snapshot: dict[str, Any]) -> None:
        """Persist *snapshot*, replacing any previous one."""
        ...

    @abstractmethod
    def load(self) -> dict[str, Any] | None:
        """Return the last saved snapshot, or None if there is none."""
        ...

    def clear(self) -> None:
        """Forget the stored snapshot. Default implementation is a no-op."""
