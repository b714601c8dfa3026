"""Packaged default data files."""
