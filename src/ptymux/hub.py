"""SessionHub: the per-host context object.

One hub is constructed when a host (desktop window or relay server)
starts and is handed to every component that needs session access. It
owns the Session Registry and routes the consumer commands
(spawn, write, submitText, resize, kill) to the right session.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ptymux.config.settings import Settings
from ptymux.domain.models import Geometry
from ptymux.relay import SessionConsumer
from ptymux.session.environment import EnvironmentPolicy
from ptymux.session.injector import Scheduler, TextInjector
from ptymux.session.launcher import Launcher, PtyLauncher
from ptymux.session.locator import BinaryLocator
from ptymux.session.process import DEFAULT_GEOMETRY, ProcessSession
from ptymux.session.registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionHub:
    """Routes consumer commands to Process Sessions.

    Example usage::

        hub = SessionHub(PtyLauncher(BinaryLocator()))
        consumer = QueueConsumer()
        await hub.spawn("tab-1", consumer, working_directory="~/src/app")
        hub.write("tab-1", b"/help")
        await hub.submit_text("tab-1", "summarise the README")
        ...
        await hub.shutdown()
    """

    def __init__(
        self,
        launcher: Launcher,
        injector: TextInjector | None = None,
        registry: SessionRegistry | None = None,
        geometry: Geometry = DEFAULT_GEOMETRY,
        default_directory: str | None = None,
        kill_grace: float = 0.5,
    ) -> None:
        self._launcher = launcher
        self._injector = injector or TextInjector()
        self._registry = registry if registry is not None else SessionRegistry()
        self._geometry = geometry
        self._default_directory = default_directory
        self._kill_grace = kill_grace

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        geometry: Geometry | None = None,
        scheduler: Scheduler | None = None,
    ) -> SessionHub:
        """Build a hub that launches the configured binary on real ptys."""
        launcher = PtyLauncher(
            locator=BinaryLocator.from_config(settings.locator),
            environment=EnvironmentPolicy.from_config(settings.session),
        )
        return cls(
            launcher=launcher,
            injector=TextInjector.from_config(settings.injector, scheduler=scheduler),
            geometry=geometry or Geometry(columns=settings.session.columns, rows=settings.session.rows),
            default_directory=settings.session.working_directory,
            kill_grace=settings.session.kill_grace,
        )

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def launcher(self) -> Launcher:
        return self._launcher

    def session(self, session_id: str) -> ProcessSession | None:
        return self._registry.get(session_id)

    def get_or_create(
        self,
        session_id: str,
        consumer: SessionConsumer | None = None,
        working_directory: str | Path | None = None,
    ) -> ProcessSession:
        """Return the registered session, creating an unspawned one if needed."""
        session = self._registry.get_or_create(
            session_id,
            lambda: ProcessSession(
                session_id,
                self._launcher,
                consumer=consumer,
                working_directory=working_directory or self._default_directory,
                geometry=self._geometry,
                kill_grace=self._kill_grace,
            ),
        )
        if consumer is not None:
            session.attach(consumer)
        return session

    # -------------------------------------------------------------------
    # Consumer commands
    # -------------------------------------------------------------------

    async def spawn(
        self,
        session_id: str,
        consumer: SessionConsumer | None = None,
        working_directory: str | Path | None = None,
    ) -> ProcessSession:
        """Create or reuse the session and (re)launch its child.

        Check ``session.active`` on the result: a failed launch has
        already been reported to the consumer as an error event.
        """
        session = self.get_or_create(session_id, consumer, working_directory)
        await session.spawn(working_directory)
        return session

    async def restart(self, session_id: str) -> bool:
        """Relaunch a registered session in its current directory."""
        session = self._registry.get(session_id)
        if session is None:
            logger.debug("Restart requested for unknown session %s", session_id)
            return False
        return await session.spawn()

    def attach(self, session_id: str, consumer: SessionConsumer) -> bool:
        session = self._registry.get(session_id)
        if session is None:
            return False
        session.attach(consumer)
        return True

    def detach(self, session_id: str) -> None:
        session = self._registry.get(session_id)
        if session is not None:
            session.detach()

    def write(self, session_id: str, data: bytes | str) -> None:
        """Forward keystroke bytes as-is; unknown or inactive sessions drop them."""
        session = self._registry.get(session_id)
        if session is None:
            return
        if isinstance(data, str):
            data = data.encode("utf-8", errors="replace")
        session.write(data)

    async def submit_text(self, session_id: str, text: str) -> None:
        """Inject a block of text followed by Enter (see :class:`TextInjector`)."""
        session = self._registry.get(session_id)
        if session is None:
            return
        await self._injector.inject(session, text)

    def resize(self, session_id: str, columns: int, rows: int) -> None:
        session = self._registry.get(session_id)
        if session is not None:
            session.resize(columns, rows)

    async def kill(self, session_id: str) -> None:
        """Terminate the child but keep the session registered (inactive)."""
        session = self._registry.get(session_id)
        if session is not None:
            await session.kill()

    async def close(self, session_id: str) -> bool:
        """Terminate the child and forget the session (tab or connection closed)."""
        return await self._registry.remove(session_id)

    async def shutdown(self) -> None:
        """Host-wide teardown; idempotent."""
        await self._registry.teardown()
