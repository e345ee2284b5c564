"""Process Session: one logical tab or connection and its child process.

State machine::

    UNSPAWNED --spawn--> RUNNING --child exits--> EXITED --spawn--> RUNNING
                            |                                 ^
                            +----kill----> KILLED ---spawn----+

At most one child is alive per session at any time: :meth:`spawn`
always terminates the previous child before launching the next one.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from ptymux.domain.models import ExitStatus, Geometry, SessionInfo, SessionState
from ptymux.errors import PtymuxError
from ptymux.relay import SessionConsumer, pump
from ptymux.session.launcher import Launcher
from ptymux.session.pty_process import ProcessHandle

logger = logging.getLogger(__name__)

DEFAULT_GEOMETRY = Geometry(columns=120, rows=40)
DEFAULT_LABEL = "Session"


def resolve_working_directory(path: str | Path | None) -> str:
    """Absolute form of ``path``, or the user's home directory when unset."""
    if path is None or str(path).strip() == "":
        return str(Path.home())
    return str(Path(path).expanduser().resolve())


class ProcessSession:
    """Owns one pty-backed child process and its lifecycle state.

    The session is reusable: after the child exits (or is killed) the
    consumer can call :meth:`spawn` again on the same object to restart
    it in place.
    """

    def __init__(
        self,
        session_id: str,
        launcher: Launcher,
        consumer: SessionConsumer | None = None,
        working_directory: str | Path | None = None,
        geometry: Geometry | None = None,
        kill_grace: float = 0.5,
    ) -> None:
        self._id = session_id
        self._launcher = launcher
        self._consumer = consumer
        self._working_directory = resolve_working_directory(working_directory)
        self._geometry = geometry or DEFAULT_GEOMETRY
        self._kill_grace = kill_grace
        self._state = SessionState.UNSPAWNED
        self._handle: ProcessHandle | None = None
        self._relay_task: asyncio.Task[None] | None = None
        self._exit_status: ExitStatus | None = None
        self._lock = asyncio.Lock()
        self._delivery_failed = False

    # -------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def geometry(self) -> Geometry:
        return self._geometry

    @property
    def working_directory(self) -> str:
        return self._working_directory

    @property
    def label(self) -> str:
        return Path(self._working_directory).name or DEFAULT_LABEL

    @property
    def pid(self) -> int | None:
        return self._handle.pid if self._handle is not None else None

    @property
    def exit_status(self) -> ExitStatus | None:
        return self._exit_status

    @property
    def consumer(self) -> SessionConsumer | None:
        return self._consumer

    def info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self._id,
            state=self._state,
            active=self.active,
            label=self.label,
            working_directory=self._working_directory,
            geometry=self._geometry,
            pid=self.pid,
            exit_status=self._exit_status,
        )

    # -------------------------------------------------------------------
    # Consumer binding
    # -------------------------------------------------------------------

    def attach(self, consumer: SessionConsumer) -> None:
        """Bind ``consumer``, replacing any previously bound one."""
        self._consumer = consumer
        self._delivery_failed = False

    def detach(self) -> None:
        """Unbind the consumer; output produced meanwhile is dropped."""
        self._consumer = None

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    async def spawn(self, working_directory: str | Path | None = None) -> bool:
        """Launch (or relaunch) the child process.

        Any live child is terminated first. Launch errors are reported to
        the bound consumer as an ``error`` event rather than raised.

        Args:
            working_directory: New directory for this and later launches;
                keeps the current one when None.

        Returns:
            True if a child is now running.
        """
        async with self._lock:
            if working_directory is not None:
                self._working_directory = resolve_working_directory(working_directory)

            if await self._stop_handle():
                self._state = SessionState.KILLED

            try:
                handle = await self._launcher.launch(self._working_directory, self._geometry)
            except PtymuxError as e:
                logger.error("Cannot spawn session %s: %s", self._id, e)
                await self._notify_error(str(e))
                return False

            self._handle = handle
            self._exit_status = None
            self._state = SessionState.RUNNING
            self._delivery_failed = False
            self._relay_task = asyncio.create_task(self._run(handle), name=f"relay-{self._id}")
            logger.info(
                "Session %s running (pid=%s, %dx%d, cwd=%s)",
                self._id, handle.pid, self._geometry.columns, self._geometry.rows,
                self._working_directory,
            )
            return True

    async def kill(self) -> None:
        """Terminate the child, if any. Never raises for an already dead child."""
        async with self._lock:
            if await self._stop_handle():
                logger.info("Session %s killed", self._id)
            self._state = SessionState.KILLED

    def write(self, data: bytes) -> None:
        """Forward raw bytes to the child; silently dropped unless running."""
        handle = self._handle
        if self._state is not SessionState.RUNNING or handle is None:
            logger.debug("Dropped %d bytes for inactive session %s", len(data), self._id)
            return
        try:
            handle.write(data)
        except OSError as e:
            # The child can exit between the state check and the write
            logger.debug("Write to session %s failed: %s", self._id, e)

    def resize(self, columns: int, rows: int) -> None:
        """Record the new size and apply it to the running child, best effort.

        Raises:
            ValueError: If either dimension is not positive.
        """
        self._geometry = Geometry(columns=columns, rows=rows)
        handle = self._handle
        if self._state is not SessionState.RUNNING or handle is None:
            return
        try:
            handle.resize(self._geometry)
        except OSError as e:
            logger.debug("Resize of session %s failed: %s", self._id, e)

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------

    async def _stop_handle(self) -> bool:
        """Cancel the relay and terminate the current child. True if there was one."""
        handle, task = self._handle, self._relay_task
        self._handle = None
        self._relay_task = None

        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if handle is None:
            return False
        try:
            await handle.terminate(self._kill_grace)
        except OSError as e:
            logger.debug("Terminating session %s failed: %s", self._id, e)
        return True

    async def _run(self, handle: ProcessHandle) -> None:
        total = await pump(handle, self._deliver)
        status = await handle.wait()
        if self._handle is not handle:
            # Killed or replaced while the exit was being collected
            return

        self._handle = None
        self._relay_task = None
        self._exit_status = status
        self._state = SessionState.EXITED
        await handle.terminate(self._kill_grace)
        logger.info(
            "Session %s exited (code=%s, signal=%s, %d bytes relayed)",
            self._id, status.exit_code, status.signal, total,
        )
        await self._notify_exit(status)

    async def _deliver(self, chunk: bytes) -> None:
        consumer = self._consumer
        if consumer is None:
            return
        try:
            await consumer.send_data(self._id, chunk)
        except Exception as e:
            if self._delivery_failed:
                logger.debug("Consumer of session %s rejected output: %s", self._id, e)
            else:
                self._delivery_failed = True
                logger.warning("Consumer of session %s rejected output: %s", self._id, e)

    async def _notify_exit(self, status: ExitStatus) -> None:
        consumer = self._consumer
        if consumer is None:
            return
        try:
            await consumer.send_exit(self._id, status)
        except Exception as e:
            logger.warning("Consumer of session %s rejected exit event: %s", self._id, e)

    async def _notify_error(self, message: str) -> None:
        consumer = self._consumer
        if consumer is None:
            return
        try:
            await consumer.send_error(self._id, message)
        except Exception as e:
            logger.warning("Consumer of session %s rejected error event: %s", self._id, e)
