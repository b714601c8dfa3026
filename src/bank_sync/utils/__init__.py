"""Shared helpers: logging, decimals, dates, and output sanitization."""
