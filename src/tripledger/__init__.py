"""Trip group ledger: shared expenses, balances and settle-up plans."""

__version__ = "0.1.0"
