"""Durable local key-value persistence."""

from .backends import JsonFileStorage, MemoryStorage, StorageBackend
from .local_store import HEAVY_FIELDS, DurableLocalStore

__all__ = [
    "DurableLocalStore",
    "HEAVY_FIELDS",
    "JsonFileStorage",
    "MemoryStorage",
    "StorageBackend",
]
