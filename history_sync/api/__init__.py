"""Client for the remote conversation history API."""

from .client import HistoryClient, SyncResponse

__all__ = ["HistoryClient", "SyncResponse"]
