"""Verified, read-only AI assistant for Ghostfolio portfolios."""

__version__ = "1.0.0"
