#!/usr/bin/env python3
"""Open Banking transaction sync.

This is the main entry point script for bank sync. It wraps the package
CLI for running from a checkout.

Usage:
    python sync_transactions.py credentials set
    python sync_transactions.py sync-all

For full documentation and options:
    python sync_transactions.py --help
"""

import sys
from pathlib import Path

# Add src to path for development installs
src_path = Path(__file__).parent / "src"
if src_path.exists():
    sys.path.insert(0, str(src_path))

from bank_sync.cli import main

if __name__ == "__main__":
    sys.exit(main())
