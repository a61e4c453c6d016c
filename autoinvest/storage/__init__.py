"""Persistence adapters."""

from autoinvest.storage.base import DurableStore, MemoryStore
from autoinvest.storage.database import Database

__all__ = [
    'DurableStore',
    'MemoryStore',
    'Database',
]
