"""Ledger contract and the file-backed reference ledger."""

from bank_sync.ledger.base import Ledger
from bank_sync.ledger.file_ledger import FileLedger

__all__ = ["Ledger", "FileLedger"]
