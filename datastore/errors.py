from __future__ import annotations


class StorageError(Exception):
    """A durable write to one of the agent's stores failed."""
