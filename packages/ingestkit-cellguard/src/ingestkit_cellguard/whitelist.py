"""Process-wide cache of user-whitelisted characters.

Reads take an immutable snapshot (a ``frozenset``) without locking; writes
build a new set under a lock and swap it in.  The cache only grows.
Control and zero-width characters are never admitted.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from ingestkit_cellguard.classifier import is_floor_char
from ingestkit_cellguard.protocols import LearningStore

logger = logging.getLogger("ingestkit_cellguard")


class WhitelistCache:
    """Copy-on-write whitelist with optional write-through to a learning store."""

    def __init__(self, store: LearningStore | None = None) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._chars: frozenset[str] = frozenset()
        if store is not None:
            self._chars = frozenset(
                w.char for w in store.load_whitelist() if not is_floor_char(w.char)
            )
            logger.debug("Loaded %d whitelisted characters", len(self._chars))

    @property
    def chars(self) -> frozenset[str]:
        return self._chars

    def __contains__(self, char: object) -> bool:
        return char in self._chars

    def __len__(self) -> int:
        return len(self._chars)

    def add(self, char: str, description: str = "", persist: bool = True) -> bool:
        """Whitelist *char*; return False if it was refused or already present.

        With *persist* the learning store is written first, so a store
        failure leaves the cache unchanged and the exception propagates.
        """
        if len(char) != 1 or is_floor_char(char):
            return False
        with self._lock:
            if char in self._chars:
                return False
            if persist and self._store is not None:
                self._store.add_whitelisted_character(char, description)
            self._chars = self._chars | {char}
        logger.info("Whitelisted character U+%04X", ord(char))
        return True

    def add_many(
        self, chars: Iterable[tuple[str, str]], persist: bool = True
    ) -> list[str]:
        """Add ``(char, description)`` pairs; return the newly added chars."""
        return [c for c, desc in chars if self.add(c, desc, persist=persist)]
