"""Session Registry: identifier to Process Session mapping.

Entries are created on the first spawn request for an identifier and
removed only on explicit close. A session whose child exited on its own
stays registered (inactive) so it can be restarted in place.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator

from ptymux.session.process import ProcessSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Process-wide set of sessions, owned by the host's context object."""

    def __init__(self) -> None:
        self._sessions: dict[str, ProcessSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[ProcessSession]:
        return iter(list(self._sessions.values()))

    def get(self, session_id: str) -> ProcessSession | None:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str, factory: Callable[[], ProcessSession]) -> ProcessSession:
        """Return the session for ``session_id``, creating it with ``factory`` if absent."""
        session = self._sessions.get(session_id)
        if session is None:
            session = factory()
            self._sessions[session_id] = session
            logger.debug("Registered session %s", session_id)
        return session

    def all(self) -> list[ProcessSession]:
        return list(self._sessions.values())

    @property
    def active_count(self) -> int:
        return sum(1 for session in self._sessions.values() if session.active)

    async def remove(self, session_id: str) -> bool:
        """Kill the session's child (if live) and forget the session.

        Returns:
            True if the identifier was registered.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.kill()
        logger.info("Removed session %s", session_id)
        return True

    async def teardown(self) -> None:
        """Kill every live child and clear the mapping. Safe to call twice."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        if not sessions:
            return
        results = await asyncio.gather(
            *(session.kill() for session in sessions), return_exceptions=True
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.warning("Failed to kill session %s during teardown: %s", session.session_id, result)
        logger.info("Tore down %d session(s)", len(sessions))
