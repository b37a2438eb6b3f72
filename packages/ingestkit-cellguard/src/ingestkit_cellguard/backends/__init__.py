"""Concrete backend implementations for ingestkit-cellguard.

All backends depend only on the standard library.
"""

from __future__ import annotations

from ingestkit_cellguard.backends.memory import InMemoryProgressSink, InMemorySessionStore
from ingestkit_cellguard.backends.sqlite import SQLiteLearningStore

__all__ = [
    "InMemoryProgressSink",
    "InMemorySessionStore",
    "SQLiteLearningStore",
]
