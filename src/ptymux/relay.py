"""I/O relay between a Process Session and its bound consumer.

Output is pumped from the pty in the order the child produced it and
handed to the consumer one chunk at a time; the pump awaits each
delivery before reading again, so a slow consumer slows the reader down
instead of growing a buffer here. Every event carries the session
identifier so one transport can carry several sessions.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from ptymux.domain.models import ExitStatus

if TYPE_CHECKING:
    from ptymux.session.pty_process import ProcessHandle

logger = logging.getLogger(__name__)


class SessionConsumer(ABC):
    """A display surface bound to one or more sessions.

    Implementations receive the raw output of each session plus its
    lifecycle events. They must not reorder data for a given session.
    """

    @abstractmethod
    async def send_data(self, session_id: str, data: bytes) -> None:
        """Deliver one chunk of process output."""
        ...

    @abstractmethod
    async def send_exit(self, session_id: str, status: ExitStatus) -> None:
        """Report that the session's process exited on its own."""
        ...

    @abstractmethod
    async def send_error(self, session_id: str, message: str) -> None:
        """Report a lifecycle error such as a missing binary."""
        ...


class RelayEvent(BaseModel):
    """One core-to-consumer event, as recorded by :class:`QueueConsumer`."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["data", "exited", "error"]
    session_id: str
    data: bytes = b""
    status: ExitStatus | None = None
    message: str = Field(default="")


class QueueConsumer(SessionConsumer):
    """In-process consumer that turns events into an asyncio queue.

    Used by local hosts that read events in their own task, and by tests.

    Example usage::

        consumer = QueueConsumer()
        await hub.spawn("tab-1", consumer)
        event = await consumer.get()
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[RelayEvent] = asyncio.Queue()

    async def send_data(self, session_id: str, data: bytes) -> None:
        await self._queue.put(RelayEvent(kind="data", session_id=session_id, data=data))

    async def send_exit(self, session_id: str, status: ExitStatus) -> None:
        await self._queue.put(RelayEvent(kind="exited", session_id=session_id, status=status))

    async def send_error(self, session_id: str, message: str) -> None:
        await self._queue.put(RelayEvent(kind="error", session_id=session_id, message=message))

    async def get(self, timeout: float | None = None) -> RelayEvent:
        """Wait for the next event."""
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def drain(self) -> list[RelayEvent]:
        """Return every event queued so far without waiting."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events


async def pump(handle: ProcessHandle, deliver: Callable[[bytes], Awaitable[None]]) -> int:
    """Copy output from ``handle`` to ``deliver`` until the child's end of file.

    Returns:
        Total number of bytes relayed.
    """
    total = 0
    while True:
        chunk = await handle.read()
        if not chunk:
            return total
        total += len(chunk)
        await deliver(chunk)
