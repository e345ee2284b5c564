"""Launch step shared by every Process Session.

Resolves the target binary, builds the child environment and starts the
child on a pseudo-terminal. Sessions depend on the :class:`Launcher`
interface so tests can launch fake processes instead.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from ptymux.domain.models import Geometry
from ptymux.session.environment import EnvironmentPolicy
from ptymux.session.locator import BinaryLocator
from ptymux.session.pty_process import ProcessHandle, PtyProcess

logger = logging.getLogger(__name__)


class Launcher(ABC):
    """Creates the process behind a session."""

    @abstractmethod
    async def launch(self, working_directory: str, geometry: Geometry) -> ProcessHandle:
        """Start a new child in ``working_directory`` sized to ``geometry``.

        Raises:
            BinaryNotFound: If the executable cannot be resolved.
            SpawnFailure: If the OS refuses to start the child.
        """
        ...

    async def binary_available(self) -> bool:
        """Whether a launch would currently find an executable."""
        return True


class PtyLauncher(Launcher):
    """Launches the located binary on a real pty."""

    def __init__(
        self,
        locator: BinaryLocator,
        environment: EnvironmentPolicy | None = None,
        args: list[str] | None = None,
    ) -> None:
        self._locator = locator
        self._environment = environment or EnvironmentPolicy()
        self._args = list(args or [])

    @property
    def locator(self) -> BinaryLocator:
        return self._locator

    async def launch(self, working_directory: str, geometry: Geometry) -> ProcessHandle:
        binary = await self._locator.resolve()
        env = self._environment.build()
        return PtyProcess.spawn([binary, *self._args], working_directory, env, geometry)

    async def binary_available(self) -> bool:
        return await self._locator.find() is not None
