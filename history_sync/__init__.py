"""Incremental sync of Claude conversation history to a remote service."""

__version__ = "0.1.0"
