"""Meeting sessions — per-circle participant lists with lazy expiry.

A live session is what allows an outcome to be recorded for a circle. Reads
past the expiry delete the session; nothing else ever removes one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from hazel.decisions.control_block import utcnow
from hazel.errors import NoActiveMeeting

logger = logging.getLogger(__name__)

DEFAULT_MEETING_DURATION = timedelta(hours=3)


@dataclass(frozen=True)
class MeetingSession:
    participants: frozenset[str]
    expires_at: datetime


class MeetingSessionStore:
    """In-memory meeting state, one session per circle (last write wins)."""

    def __init__(
        self,
        default_ttl: timedelta = DEFAULT_MEETING_DURATION,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._sessions: dict[str, MeetingSession] = {}

    def get(self, circle: str) -> MeetingSession | None:
        session = self._sessions.get(circle)
        if session is None:
            return None
        if self._clock() > session.expires_at:
            del self._sessions[circle]
            logger.info("Meeting for circle %s expired", circle)
            return None
        return session

    def set(
        self, circle: str, participants: Iterable[str], ttl: timedelta | None = None
    ) -> MeetingSession:
        session = MeetingSession(
            participants=frozenset(participants),
            expires_at=self._clock() + (ttl if ttl is not None else self.default_ttl),
        )
        self._sessions[circle] = session
        logger.info(
            "Meeting for circle %s set with %d participants (active meetings: %d)",
            circle,
            len(session.participants),
            len(self._sessions),
        )
        return session

    def require(self, circle: str) -> MeetingSession:
        session = self.get(circle)
        if session is None:
            raise NoActiveMeeting(circle)
        return session
