"""Verification records kept between wizard steps, scoped to a sign-in session."""
from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional


class VerificationKind(enum.Enum):
    PASSWORD = "passwordVerificationRecordId"
    SOCIAL = "socialVerificationRecordId"


@dataclass
class _Entry:
    value: str
    expires_at: float


@dataclass
class _Session:
    records: Dict[VerificationKind, _Entry] = field(default_factory=dict)
    state: Optional[_Entry] = None


class VerificationStore:
    """Per-session verification record IDs and pending OAuth state.

    Every value expires ``ttl`` seconds after it was written; expired values
    read as absent.
    """

    def __init__(self, ttl: float = 600, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._sessions: Dict[str, _Session] = {}
        self._lock = threading.Lock()

    def _live(self, entry: Optional[_Entry]) -> Optional[str]:
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.value

    def set(self, session_id: str, kind: VerificationKind, record_id: str) -> None:
        with self._lock:
            session = self._sessions.setdefault(session_id, _Session())
            session.records[kind] = _Entry(record_id, self._clock() + self.ttl)

    def get(self, session_id: str, kind: VerificationKind) -> Optional[str]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return self._live(session.records.get(kind))

    def has(self, session_id: str, kind: VerificationKind) -> bool:
        return self.get(session_id, kind) is not None

    def set_state(self, session_id: str, state: str) -> None:
        with self._lock:
            session = self._sessions.setdefault(session_id, _Session())
            session.state = _Entry(state, self._clock() + self.ttl)

    def pop_state(self, session_id: str) -> Optional[str]:
        """Return the pending state once; a second call yields ``None``."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            entry, session.state = session.state, None
            return self._live(entry)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def purge_expired(self) -> int:
        now = self._clock()
        removed = 0
        with self._lock:
            for session_id in list(self._sessions):
                session = self._sessions[session_id]
                for kind in [k for k, e in session.records.items() if e.expires_at <= now]:
                    del session.records[kind]
                    removed += 1
                if session.state is not None and session.state.expires_at <= now:
                    session.state = None
                    removed += 1
                if not session.records and session.state is None:
                    del self._sessions[session_id]
        return removed
