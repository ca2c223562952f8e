"""Short-lived registry decoupling request acceptance from stream attachment.

A session holds only the accepted request; nothing of the run is buffered.
Each session is consumed by its first subscriber and is reclaimed after the
TTL whether or not anyone attached.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable

from eot.errors import SessionNotFoundError
from eot.models import ReasoningRequest, StreamingSession

logger = logging.getLogger(__name__)

SESSION_TTL_SEC = 15 * 60
SWEEP_INTERVAL_SEC = 5 * 60


class SessionRegistry:
    def __init__(
        self,
        ttl_sec: float = SESSION_TTL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._sessions: dict[str, StreamingSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def register(self, request: ReasoningRequest) -> str:
        session_id = f"eot_{uuid.uuid4().hex}"
        self._sessions[session_id] = StreamingSession(
            session_id=session_id,
            request=request,
            created_at=self._clock(),
        )
        logger.info("Registered session %s (%s, %d participants)",
                    session_id, request.strategy.value, len(request.participants))
        return session_id

    def _expired(self, session: StreamingSession, now: float) -> bool:
        return now - session.created_at > self.ttl_sec

    def attach(self, session_id: str) -> StreamingSession:
        """Consume a session. A second attach, or an expired session, raises SessionNotFoundError."""
        session = self._sessions.pop(session_id, None)
        if session is None or self._expired(session, self._clock()):
            raise SessionNotFoundError(session_id)
        logger.info("Attached to session %s", session_id)
        return session

    def sweep(self) -> int:
        """Drop expired sessions. Returns how many were removed."""
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if self._expired(s, now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("Swept %d expired session(s)", len(expired))
        return len(expired)

    async def run_sweeper(self, interval_sec: float = SWEEP_INTERVAL_SEC) -> None:
        """Sweep periodically until cancelled."""
        while True:
            await asyncio.sleep(interval_sec)
            self.sweep()
