"""
Session Store v1.0
In-memory conversation sessions with per-chat locks and TTL eviction.
"""

import asyncio
import time
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional, Any

from ..schemas import ConversationSession, ConversationStep

logger = logging.getLogger("session_store")


class SessionStore:
    """
    Chat id -> conversation progress.

    Sessions live only for the process lifetime. Abandoned sessions are
    evicted after ``ttl_seconds`` without activity; the sweep runs on access
    at most once per ``cleanup_interval`` seconds.
    """

    def __init__(self, ttl_seconds: int = 86400, cleanup_interval: int = 300,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._sessions: Dict[str, ConversationSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}
        self._last_cleanup = clock()

    @asynccontextmanager
    async def locked(self, chat_id) -> AsyncIterator[None]:
        """
        Hold one chat's mutex across read-decide-write.

        The lock entry exists only while someone holds or waits for it, or
        while the chat has a session, so messages from chats that never
        started a dialogue leave nothing behind.
        """
        key = str(chat_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                self._release(key)

    def _release(self, key: str) -> None:
        if key not in self._sessions and key not in self._holders:
            self._locks.pop(key, None)

    def _maybe_sweep(self) -> None:
        now = self._clock()
        if now - self._last_cleanup > self.cleanup_interval:
            self.sweep(now)

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop sessions idle longer than the TTL; returns how many were removed."""
        now = self._clock() if now is None else now
        expired = [
            chat_id for chat_id, session in self._sessions.items()
            if now - session.touched_at > self.ttl_seconds
        ]
        for chat_id in expired:
            del self._sessions[chat_id]
            self._release(chat_id)
        self._last_cleanup = now
        if expired:
            logger.info(f"🔄 Evicted {len(expired)} abandoned sessions")
        return len(expired)

    def get(self, chat_id) -> Optional[ConversationSession]:
        self._maybe_sweep()
        session = self._sessions.get(str(chat_id))
        if session is None:
            return None
        if self._clock() - session.touched_at > self.ttl_seconds:
            del self._sessions[str(chat_id)]
            self._release(str(chat_id))
            return None
        return session.model_copy()

    def start(self, chat_id, step: ConversationStep,
              pending_email: Optional[str] = None) -> ConversationSession:
        """Create or replace the session for ``chat_id``."""
        self._maybe_sweep()
        session = ConversationSession(chat_id=str(chat_id), step=step,
                                      pending_email=pending_email, touched_at=self._clock())
        self._sessions[session.chat_id] = session
        logger.debug(f"Session {session.chat_id} -> {step.value}")
        return session.model_copy()

    def touch(self, chat_id) -> None:
        session = self._sessions.get(str(chat_id))
        if session is not None:
            session.touched_at = self._clock()

    def delete(self, chat_id) -> bool:
        removed = self._sessions.pop(str(chat_id), None) is not None
        self._release(str(chat_id))
        return removed

    def find_chat_by_pending_email(self, email: str) -> Optional[str]:
        """Chat whose in-flight session currently holds ``email``."""
        now = self._clock()
        for chat_id, session in self._sessions.items():
            if session.pending_email == email and now - session.touched_at <= self.ttl_seconds:
                return chat_id
        return None

    def get_stats(self) -> Dict[str, Any]:
        steps: Dict[str, int] = {}
        for session in self._sessions.values():
            steps[session.step.value] = steps.get(session.step.value, 0) + 1
        return {
            "sessions": len(self._sessions),
            "by_step": steps,
            "locks": len(self._locks),
            "ttl_seconds": self.ttl_seconds,
        }

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, chat_id) -> bool:
        return str(chat_id) in self._sessions
