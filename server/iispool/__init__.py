"""Recycle and stop IIS application pools on local and remote hosts."""

__version__ = "1.0.0"
