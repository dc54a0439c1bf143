"""Bulk-reduce CPU/NET stake delegated from one authority account."""

__version__ = "0.1.0"
