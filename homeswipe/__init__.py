"""Homeswipe: incremental replication of residential listings into SQLite."""

__version__ = "0.1.0"
