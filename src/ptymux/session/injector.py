"""Timed character-at-a-time text submission.

Interactive TUIs read their input in raw mode through a per-character
state machine. Handing such a program a whole line in a single write
(as a mobile soft keyboard "send" produces) can leave it in a broken
input state, so submitted text is written one character at a time with
a short pause between writes, followed by a carriage return.

Direct keystroke input never goes through here; it is written as-is.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Protocol

from ptymux.config.settings import InjectorConfig

logger = logging.getLogger(__name__)

DEFAULT_CHAR_DELAY = 0.005
DEFAULT_SUBMIT_DELAY = 0.03
SUBMIT_KEY = b"\r"


class Scheduler(ABC):
    """Source of the pauses between injected writes."""

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        ...


class AsyncioScheduler(Scheduler):
    """Pauses on the running event loop, letting other sessions' I/O proceed."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class Writable(Protocol):
    def write(self, data: bytes) -> None:
        ...


class TextInjector:
    """Feeds a block of text to a session as individual character writes.

    Example usage::

        injector = TextInjector()
        await injector.inject(session, "explain this repo")
    """

    def __init__(
        self,
        scheduler: Scheduler | None = None,
        char_delay: float = DEFAULT_CHAR_DELAY,
        submit_delay: float = DEFAULT_SUBMIT_DELAY,
    ) -> None:
        self._scheduler = scheduler or AsyncioScheduler()
        self._char_delay = char_delay
        self._submit_delay = submit_delay

    @classmethod
    def from_config(cls, config: InjectorConfig, scheduler: Scheduler | None = None) -> TextInjector:
        return cls(
            scheduler=scheduler,
            char_delay=config.char_delay,
            submit_delay=config.submit_delay,
        )

    async def inject(self, session: Writable, text: str) -> None:
        """Write ``text`` one character per write, then press Enter.

        Iterating a ``str`` yields whole code points, so a multi-byte
        character is always encoded and written in one piece. If the
        session's process exits part way through, the remaining writes
        are dropped by the session itself.
        """
        for index, char in enumerate(text):
            if index:
                await self._scheduler.sleep(self._char_delay)
            session.write(char.encode("utf-8", errors="replace"))
        await self._scheduler.sleep(self._submit_delay)
        session.write(SUBMIT_KEY)
        logger.debug("Injected %d characters + Enter", len(text))
