"""Pseudo-terminal backed child processes.

Uses a pty for realistic terminal behaviour: raw-mode keystrokes, window
size reporting and job-control signals all work as they would in a real
terminal emulator. The parent keeps the master side non-blocking and
waits for readability through the event loop, so many sessions can be
pumped from one thread.
"""

from __future__ import annotations

import asyncio
import errno
import fcntl
import logging
import os
import pty
import signal
import struct
import termios
from abc import ABC, abstractmethod

from ptymux.domain.models import ExitStatus, Geometry
from ptymux.errors import SpawnFailure

logger = logging.getLogger(__name__)

READ_CHUNK = 4096
# How often a terminating handle polls for the child to be reaped
REAP_POLL_INTERVAL = 0.02


class ProcessHandle(ABC):
    """One live child process and its terminal.

    The Process Session talks to its child only through this interface,
    which lets tests substitute a handle fed with synthetic output.
    """

    @property
    @abstractmethod
    def pid(self) -> int | None:
        ...

    @abstractmethod
    async def read(self) -> bytes:
        """Wait for the next chunk of output; ``b""`` once the child is gone."""
        ...

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write bytes to the terminal's input side without blocking.

        Raises:
            OSError: If the terminal is closed or the child has exited.
        """
        ...

    @abstractmethod
    def resize(self, geometry: Geometry) -> None:
        """Apply a new window size.

        Raises:
            OSError: If the terminal is already closed.
        """
        ...

    @abstractmethod
    async def wait(self) -> ExitStatus:
        """Wait for the child to exit and return how it ended."""
        ...

    @abstractmethod
    async def terminate(self, grace: float = 0.5) -> None:
        """Stop the child (SIGTERM, then SIGKILL after ``grace``) and release the terminal.

        Safe to call more than once.
        """
        ...


def _set_winsize(fd: int, geometry: Geometry) -> None:
    winsize = struct.pack("HHHH", geometry.rows, geometry.columns, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _status_from_wait(status: int) -> ExitStatus:
    if os.WIFSIGNALED(status):
        return ExitStatus(signal=os.WTERMSIG(status))
    return ExitStatus(exit_code=os.waitstatus_to_exitcode(status))


class PtyProcess(ProcessHandle):
    """A child process attached to the slave side of a fresh pty.

    Use :meth:`spawn` to create one; the constructor only wraps an
    already running child.
    """

    def __init__(self, pid: int, master_fd: int, geometry: Geometry) -> None:
        self._pid = pid
        self._master_fd: int | None = master_fd
        self._geometry = geometry
        self._status: ExitStatus | None = None
        self._pending = bytearray()
        self._flush_loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    def spawn(
        cls,
        argv: list[str],
        cwd: str,
        env: dict[str, str],
        geometry: Geometry,
    ) -> PtyProcess:
        """Fork and exec ``argv`` on a new pty sized to ``geometry``.

        A close-on-exec pipe reports exec or chdir failures from the
        child back to the parent, so a missing or non-executable binary
        surfaces here instead of as an immediate exit.

        Raises:
            SpawnFailure: If the pty cannot be opened, the fork fails, or
                the child cannot change directory or exec.
        """
        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise SpawnFailure(f"Cannot open pseudo-terminal: {e}", e.errno) from e

        _set_winsize(slave_fd, geometry)
        err_read, err_write = os.pipe()

        try:
            pid = os.fork()
        except OSError as e:
            for fd in (master_fd, slave_fd, err_read, err_write):
                os.close(fd)
            raise SpawnFailure(f"Cannot fork: {e}", e.errno) from e

        if pid == 0:
            # Child process
            try:
                os.close(master_fd)
                os.close(err_read)
                os.setsid()
                fcntl.ioctl(slave_fd, termios.TIOCSCTTY, 0)
                os.dup2(slave_fd, 0)
                os.dup2(slave_fd, 1)
                os.dup2(slave_fd, 2)
                if slave_fd > 2:
                    os.close(slave_fd)
                # Python ignores SIGPIPE; the child expects the default
                signal.signal(signal.SIGPIPE, signal.SIG_DFL)
                os.chdir(cwd)
                os.execvpe(argv[0], argv, env)
            except OSError as e:
                os.write(err_write, str(e.errno or 0).encode())
            finally:
                os._exit(127)

        # Parent process
        os.close(slave_fd)
        os.close(err_write)
        try:
            report = b""
            while chunk := os.read(err_read, 64):
                report += chunk
        finally:
            os.close(err_read)

        if report:
            code = int(report) or None
            os.waitpid(pid, 0)
            os.close(master_fd)
            reason = os.strerror(code) if code else "unknown error"
            raise SpawnFailure(f"Cannot launch {argv[0]} in {cwd}: {reason}", code)

        os.set_blocking(master_fd, False)
        logger.info("Spawned %s (pid=%d, %dx%d, cwd=%s)", argv[0], pid, geometry.columns, geometry.rows, cwd)
        return cls(pid, master_fd, geometry)

    @property
    def pid(self) -> int | None:
        return self._pid

    @property
    def geometry(self) -> Geometry:
        return self._geometry

    @property
    def is_closed(self) -> bool:
        return self._master_fd is None

    async def read(self) -> bytes:
        loop = asyncio.get_running_loop()
        while self._master_fd is not None:
            fd = self._master_fd
            try:
                return os.read(fd, READ_CHUNK)
            except BlockingIOError:
                await self._wait_readable(loop, fd)
            except OSError as e:
                # Linux reports EIO on the master once the slave side is gone
                if e.errno != errno.EIO:
                    logger.debug("pty read failed (pid=%d): %s", self._pid, e)
                return b""
        return b""

    @staticmethod
    async def _wait_readable(loop: asyncio.AbstractEventLoop, fd: int) -> None:
        ready = loop.create_future()

        def _on_readable() -> None:
            if not ready.done():
                ready.set_result(None)

        loop.add_reader(fd, _on_readable)
        try:
            await ready
        finally:
            loop.remove_reader(fd)

    def write(self, data: bytes) -> None:
        """Queue ``data`` for the child without ever blocking the event loop.

        Whatever the pty does not accept immediately is kept in a pending
        buffer and flushed when the master becomes writable. Later writes
        append behind it, so byte order is preserved.
        """
        if self._master_fd is None:
            raise OSError(errno.EBADF, "pty is closed")
        if self._pending:
            self._pending += data
            return
        try:
            written = os.write(self._master_fd, data)
        except BlockingIOError:
            written = 0
        if written < len(data):
            self._pending += data[written:]
            self._start_flush()

    @property
    def pending_bytes(self) -> int:
        """Bytes written but not yet accepted by the pty."""
        return len(self._pending)

    def _start_flush(self) -> None:
        if self._flush_loop is not None or self._master_fd is None:
            return
        self._flush_loop = asyncio.get_running_loop()
        self._flush_loop.add_writer(self._master_fd, self._flush)

    def _stop_flush(self) -> None:
        if self._flush_loop is not None and self._master_fd is not None:
            self._flush_loop.remove_writer(self._master_fd)
        self._flush_loop = None

    def _flush(self) -> None:
        if self._master_fd is None:
            return
        try:
            written = os.write(self._master_fd, self._pending)
        except BlockingIOError:
            return
        except OSError as e:
            logger.debug("Dropping %d pending bytes (pid=%d): %s", len(self._pending), self._pid, e)
            self._pending.clear()
            self._stop_flush()
            return
        del self._pending[:written]
        if not self._pending:
            self._stop_flush()

    def resize(self, geometry: Geometry) -> None:
        if self._master_fd is None:
            raise OSError(errno.EBADF, "pty is closed")
        _set_winsize(self._master_fd, geometry)
        self._geometry = geometry

    def _reap(self, block: bool = False) -> ExitStatus | None:
        if self._status is not None:
            return self._status
        try:
            pid, status = os.waitpid(self._pid, 0 if block else os.WNOHANG)
        except ChildProcessError:
            self._status = ExitStatus()
            return self._status
        if pid == 0:
            return None
        self._status = _status_from_wait(status)
        return self._status

    async def wait(self) -> ExitStatus:
        """Poll for the child's exit status.

        Sessions only call this after :meth:`read` has reported end of
        file, when the child is already gone or about to be, so the poll
        normally completes on its first or second pass.
        """
        while True:
            status = self._reap()
            if status is not None:
                return status
            await asyncio.sleep(REAP_POLL_INTERVAL)

    async def terminate(self, grace: float = 0.5) -> None:
        if self._reap() is None:
            try:
                os.kill(self._pid, signal.SIGTERM)
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self.wait(), timeout=grace)
            except asyncio.TimeoutError:
                logger.debug("pid=%d ignored SIGTERM, sending SIGKILL", self._pid)
                try:
                    os.kill(self._pid, signal.SIGKILL)
                except ProcessLookupError:
                    pass
                self._reap(block=True)
        self.close()

    def close(self) -> None:
        """Release the master side of the pty."""
        self._stop_flush()
        self._pending.clear()
        if self._master_fd is not None:
            try:
                os.close(self._master_fd)
            except OSError:
                pass
            self._master_fd = None
