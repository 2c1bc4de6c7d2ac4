from __future__ import annotations

import time
import uuid
from threading import RLock
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from .contracts import AuditEvent, ConsultationSessionState, TopicConfig

T = TypeVar("T")


class InMemorySessionStore:
    def __init__(self, ttl_seconds: int):
        self._ttl_seconds = ttl_seconds
        self._lock = RLock()
        self._sessions: Dict[str, Dict[str, Any]] = {}

    def create_session(
        self,
        topic: TopicConfig,
        state: Optional[ConsultationSessionState] = None,
    ) -> str:
        session_id = uuid.uuid4().hex
        now = time.time()
        with self._lock:
            self._sessions[session_id] = {
                "session_id": session_id,
                "created_at": now,
                "updated_at": now,
                "expires_at": now + self._ttl_seconds,
                "topic": topic,
                "state": state or ConsultationSessionState(active_topic_id=topic.metadata.id),
                "audit_events": [],
            }
        return session_id

    def _touch(self, session_id: str) -> None:
        now = time.time()
        session = self._sessions[session_id]
        session["updated_at"] = now
        session["expires_at"] = now + self._ttl_seconds

    def _require(self, session_id: str) -> Dict[str, Any]:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session_id: {session_id}")
        return session

    def transition(
        self,
        session_id: str,
        step: Callable[[TopicConfig, ConsultationSessionState], Tuple[ConsultationSessionState, T]],
    ) -> T:
        """Run one read-modify-write step against a session under the store lock.

        ``step`` receives the current topic and state and returns the next state
        together with an arbitrary result that is handed back to the caller.
        """
        with self._lock:
            session = self._require(session_id)
            next_state, result = step(session["topic"], session["state"])
            session["state"] = next_state
            self._touch(session_id)
        return result

    def append_audit_event(self, session_id: str, event: AuditEvent) -> None:
        with self._lock:
            self._require(session_id)["audit_events"].append(event)
            self._touch(session_id)

    def get_session(self, session_id: str) -> Dict[str, Any]:
        with self._lock:
            session = self._require(session_id)
            return {
                "session_id": session["session_id"],
                "created_at": session["created_at"],
                "updated_at": session["updated_at"],
                "expires_at": session["expires_at"],
                "topic": session["topic"],
                "state": session["state"],
                "audit_events": list(session["audit_events"]),
            }

    def destroy_session(self, session_id: str, reason: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        return session is not None

    def cleanup_expired_sessions(self) -> int:
        now = time.time()
        expired = []
        with self._lock:
            for session_id, session in self._sessions.items():
                if session["expires_at"] <= now:
                    expired.append(session_id)
        for session_id in expired:
            self.destroy_session(session_id, reason="ttl_expired")
        return len(expired)
