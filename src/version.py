# src/version.py - v1
"""Package version."""

__version__ = "1.4.0"
