"""Scheduled cross-platform publishing for connected social accounts."""

__version__ = "0.1.0"
