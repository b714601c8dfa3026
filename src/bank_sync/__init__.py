"""Open Banking connection management and transaction reconciliation."""

__version__ = "0.1.0"
