"""Paper trading ledger — trade execution, position accounting, and persistence sessions."""

from paper_ledger.ledger.pnl_calculator import PnLCalculator
from paper_ledger.ledger.position_book import PositionBook, PositionChangeRecord, ReduceResult
from paper_ledger.ledger.account import PaperLedger
from paper_ledger.ledger.session import LedgerSession

__all__ = [
    "LedgerSession",
    "PaperLedger",
    "PnLCalculator",
    "PositionBook",
    "PositionChangeRecord",
    "ReduceResult",
]
