"""Persistence for capsules and sync history."""

from cuesync.storage.sync_store import SyncStore

__all__ = ["SyncStore"]
