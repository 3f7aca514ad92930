"""Runtime configuration for the paper ledger."""
