"""Resolution of the interactive target executable.

The path is re-resolved on every spawn so that a changed configuration
or a freshly installed binary takes effect without restarting the host.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from ptymux.config.settings import DEFAULT_CANDIDATES, LocatorConfig
from ptymux.errors import BinaryNotFound

logger = logging.getLogger(__name__)


class BinaryLocator:
    """Finds the executable to launch for each session.

    Resolution order, first match wins:

    1. The configured override path, returned unchecked.
    2. The well-known install locations, each checked for existence
       and execute permission.
    3. A ``which`` lookup on PATH, bounded by ``lookup_timeout``.

    Example usage::

        locator = BinaryLocator(binary_name="claude")
        path = await locator.resolve()
    """

    def __init__(
        self,
        override_path: str = "",
        binary_name: str = "claude",
        candidates: list[str] | None = None,
        lookup_timeout: float = 5.0,
    ) -> None:
        self._override_path = override_path
        self._binary_name = binary_name
        self._candidates = list(DEFAULT_CANDIDATES if candidates is None else candidates)
        self._lookup_timeout = lookup_timeout

    @classmethod
    def from_config(cls, config: LocatorConfig) -> BinaryLocator:
        return cls(
            override_path=config.override_path,
            binary_name=config.binary_name,
            candidates=config.candidates,
            lookup_timeout=config.lookup_timeout,
        )

    @property
    def binary_name(self) -> str:
        return self._binary_name

    async def resolve(self) -> str:
        """Return the path of the executable to launch.

        Raises:
            BinaryNotFound: If no step of the resolution order matches.
        """
        if self._override_path and self._override_path.strip():
            logger.debug("Using configured binary override %s", self._override_path)
            return self._override_path

        found = self.find_candidate()
        if found is not None:
            return found

        found = await self.lookup_path()
        if found is not None:
            return found

        raise BinaryNotFound(self._binary_name)

    async def find(self) -> str | None:
        """Like :meth:`resolve`, but returns None instead of raising."""
        try:
            return await self.resolve()
        except BinaryNotFound:
            return None

    def find_candidate(self) -> str | None:
        """Return the first well-known location holding an executable file."""
        for candidate in self._candidates:
            path = Path(candidate).expanduser()
            if path.is_file() and os.access(path, os.X_OK):
                logger.debug("Found %s at %s", self._binary_name, path)
                return str(path)
        return None

    async def lookup_path(self) -> str | None:
        """Run ``which`` for the binary name; None on any failure."""
        try:
            proc = await asyncio.create_subprocess_exec(
                "which", self._binary_name,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.debug("PATH lookup could not start: %s", e)
            return None

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self._lookup_timeout)
        except asyncio.TimeoutError:
            logger.warning("PATH lookup for %s timed out after %.1fs", self._binary_name, self._lookup_timeout)
            proc.kill()
            await proc.wait()
            return None

        if proc.returncode != 0:
            return None
        path = stdout.decode(errors="replace").strip()
        return path or None
