"""Record storage."""
from .memory_store import InMemoryStore, RecordStore
from .rwlock import ReadWriteLock

__all__ = ["InMemoryStore", "RecordStore", "ReadWriteLock"]
