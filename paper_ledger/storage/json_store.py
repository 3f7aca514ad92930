"""JSON snapshot store for paper ledger persistence.

The whole account is written as one JSON document::

    data/
    └── paper_ledger.json   # mode, balances, positions, trades (overwritten on save)

Writes go to a sibling temp file first and are then swapped in with
``os.replace`` so a crash mid-write never leaves a truncated snapshot.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from paper_ledger.core.exceptions import SnapshotError
from paper_ledger.core.interfaces import BaseLedgerStore
from paper_ledger.core.logging import get_logger

log = get_logger(__name__)


class JsonLedgerStore(BaseLedgerStore):
    """Load and save ledger snapshots as a single JSON file.

    Usage::

        store = JsonLedgerStore(Path("data/paper_ledger.json"))
        store.save(ledger.snapshot())
        data = store.load()   # None when nothing was saved yet
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def save(self, snapshot: dict[str, Any]) -> None:
        """Atomically overwrite the stored snapshot.

        Raises:
            OSError: If the file cannot be written.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        payload = json.dumps(snapshot, indent=2) + "\n"
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, self._path)
        log.debug(
            "ledger_snapshot_saved",
            path=str(self._path),
            trades=len(snapshot.get("trades", [])),
        )

    def load(self) -> dict[str, Any] | None:
        """Return the stored snapshot, or None if nothing has been saved.

        Raises:
            SnapshotError: If the file exists but is not a JSON object.
        """
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            msg = f"Corrupt ledger snapshot at {self._path}: {exc}"
            raise SnapshotError(msg, context={"path": str(self._path)}) from exc
        if not isinstance(data, dict):
            msg = f"Ledger snapshot at {self._path} is not a JSON object"
            raise SnapshotError(msg, context={"path": str(self._path)})
        return data

    def clear(self) -> None:
        """Delete the stored snapshot if present."""
        if self._path.exists():
            self._path.unlink()
            log.info("ledger_snapshot_cleared", path=str(self._path))
