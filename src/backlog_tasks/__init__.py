"""Sync Backlog issues into a tree of markdown task files."""

__version__ = "0.1.0"
