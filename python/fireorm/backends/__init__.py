"""Document store backends.

``fireorm.backends.memory`` keeps documents in process memory.
``fireorm.backends.firestore`` talks to Google Cloud Firestore and is imported
on demand so the in-memory backend works without the Google client loaded.
"""

from __future__ import annotations

from fireorm.backends.memory import MemoryQuery, MemoryStore, MemoryTransaction

__all__ = [
    "MemoryStore",
    "MemoryQuery",
    "MemoryTransaction",
]
