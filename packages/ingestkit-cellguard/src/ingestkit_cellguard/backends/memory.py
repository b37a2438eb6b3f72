"""In-process backends for the SessionStore and ProgressSink protocols.

Both keep their state in dicts guarded by a lock and live as long as the
process.  Expiry is driven by ``CellGuardRouter.purge_expired_sessions``.
"""

from __future__ import annotations

import threading

from ingestkit_cellguard.models import ProgressUpdate, Session


class InMemorySessionStore:
    """Dict-backed session store."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def set(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.session_id] = session

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)


class InMemoryProgressSink:
    """Latest progress per session; a lower percentage never replaces a higher one."""

    def __init__(self) -> None:
        self._updates: dict[str, ProgressUpdate] = {}
        self._lock = threading.Lock()

    def update(self, session_id: str, percent: int, message: str = "") -> None:
        percent = max(0, min(100, int(percent)))
        with self._lock:
            current = self._updates.get(session_id)
            if current is not None and percent < current.percent:
                percent = current.percent
            self._updates[session_id] = ProgressUpdate(
                session_id=session_id,
                percent=percent,
                message=message or (current.message if current else ""),
            )

    def get(self, session_id: str) -> ProgressUpdate | None:
        with self._lock:
            return self._updates.get(session_id)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._updates.pop(session_id, None)
