"""Daybook: incremental full-text search over dated journal folders."""

__version__ = "0.3.0"
