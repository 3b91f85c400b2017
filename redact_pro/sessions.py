from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .ratelimit import SWEEP_INTERVAL_SECONDS
from .views import DocumentSession

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    session: DocumentSession
    last_access: float


class SessionStore:
    """In-process document sessions with idle expiry and a size cap.

    A session expires once it has not been read for ttl_seconds. When the
    store is full, adding a session evicts the least recently used one.
    Expired sessions are dropped lazily on access and by sweep(), which the
    background sweeper thread calls periodically.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_sessions: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._entries

    def _expired(self, entry: _Entry, now: float) -> bool:
        return now - entry.last_access > self.ttl_seconds

    def put(self, session_id: str, session: DocumentSession) -> None:
        now = self._clock()
        with self._lock:
            self._entries.pop(session_id, None)
            while self._entries and len(self._entries) >= self.max_sessions:
                oldest = min(self._entries, key=lambda k: self._entries[k].last_access)
                del self._entries[oldest]
                logger.info("Session store full; evicted %s", oldest)
            self._entries[session_id] = _Entry(session, now)

    def get(self, session_id: str) -> DocumentSession | None:
        """The session, refreshing its idle timer; None when unknown or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            if self._expired(entry, now):
                del self._entries[session_id]
                return None
            entry.last_access = now
            return entry.session

    def pop(self, session_id: str) -> DocumentSession | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.pop(session_id, None)
        if entry is None or self._expired(entry, now):
            return None
        return entry.session

    def sweep(self) -> int:
        """Drop expired sessions; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if self._expired(e, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired sessions", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def start_sweeper(self, interval: float = SWEEP_INTERVAL_SECONDS) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()

        def run() -> None:
            while not self._stop.wait(interval):
                self.sweep()

        self._sweeper = threading.Thread(target=run, name="session-sweeper", daemon=True)
        self._sweeper.start()

    def stop(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1)
            self._sweeper = None
