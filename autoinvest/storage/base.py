"""Durable store interface and an in-memory implementation."""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional


class DurableStore(ABC):
    """Key-value persistence surface.

    Each ``save`` call is assumed to be crash-consistent on its own.
    """

    @abstractmethod
    async def save(self, key: str, blob: bytes) -> None:
        """Store ``blob`` under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    async def load(self, key: str) -> Optional[bytes]:
        """Return the blob stored under ``key``, or None if absent."""
        pass


class MemoryStore(DurableStore):
    """Dict-backed store for tests and ephemeral runs."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self.save_count = 0

    async def save(self, key: str, blob: bytes) -> None:
        self._blobs[key] = bytes(blob)
        self.save_count += 1

    async def load(self, key: str) -> Optional[bytes]:
        return self._blobs.get(key)

    async def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    async def keys(self) -> List[str]:
        return sorted(self._blobs)
