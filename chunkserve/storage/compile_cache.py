"""In-memory cache of compile sessions."""

import logging
import threading

from chunkserve.domain.artifact import CompiledArtifact, CompileSession
from chunkserve.errors import CacheError, StaleSessionError

logger = logging.getLogger(__name__)


class CompileCache:
    """Two-level mapping ``entry_id -> request_id -> CompileSession``.

    A session is inserted once, complete, and never overwritten, so readers
    see either the whole session or nothing. Sessions live until evicted.
    """

    def __init__(self):
        self._entries: dict[str, dict[str, CompileSession]] = {}
        self._write_lock = threading.Lock()

    def put(self, session: CompileSession) -> None:
        """Store a finished session.

        Raises:
            CacheError: If the ``(entry_id, request_id)`` key already exists
        """
        with self._write_lock:
            sessions = self._entries.setdefault(session.entry_id, {})
            if session.request_id in sessions:
                raise CacheError(
                    f"Session '{session.request_id}' for entry '{session.entry_id}' already cached"
                )
            sessions[session.request_id] = session
        logger.info(f"Cached session {session.request_id} for entry '{session.entry_id}'")

    def get_session(self, entry_id: str, request_id: str) -> CompileSession:
        """Return a session or raise :class:`StaleSessionError`."""
        session = self._entries.get(entry_id, {}).get(request_id)
        if session is None:
            logger.info(f"Stale session {request_id} for entry '{entry_id}'")
            raise StaleSessionError(entry_id, request_id)
        return session

    def get_artifact(self, entry_id: str, request_id: str, chunk_id: str) -> CompiledArtifact | None:
        return self.get_session(entry_id, request_id).get(chunk_id)

    def has_session(self, entry_id: str, request_id: str) -> bool:
        return request_id in self._entries.get(entry_id, {})

    def session_ids(self, entry_id: str) -> list[str]:
        return list(self._entries.get(entry_id, {}))

    def evict(self, entry_id: str, request_id: str | None = None) -> int:
        """Drop one session, or every session of an entry.

        Returns:
            Number of sessions removed
        """
        with self._write_lock:
            if request_id is None:
                removed = len(self._entries.pop(entry_id, {}))
            else:
                sessions = self._entries.get(entry_id, {})
                removed = 1 if sessions.pop(request_id, None) is not None else 0
                if not sessions:
                    self._entries.pop(entry_id, None)
        if removed:
            logger.info(f"Evicted {removed} session(s) for entry '{entry_id}'")
        return removed

    def clear(self) -> None:
        with self._write_lock:
            self._entries.clear()

    def __len__(self) -> int:
        return sum(len(sessions) for sessions in self._entries.values())
