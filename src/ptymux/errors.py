"""Exception hierarchy for ptymux.

Lifecycle errors are local to one session: they are caught by the
session that raised them and reported to its consumer as ``error``
events, never propagated to the host.
"""

from __future__ import annotations


class PtymuxError(Exception):
    """Base class for all ptymux errors."""


class BinaryNotFound(PtymuxError):
    """Raised when no executable target can be resolved."""

    def __init__(self, binary_name: str) -> None:
        super().__init__(f"{binary_name} not found in configured path, known locations, or PATH")
        self.binary_name = binary_name


class SpawnFailure(PtymuxError):
    """Raised when the OS refuses to launch the child process."""

    def __init__(self, message: str, errno: int | None = None) -> None:
        super().__init__(message)
        self.errno = errno


class MalformedMessage(PtymuxError):
    """Raised when an inbound transport envelope cannot be parsed."""


class Unauthorized(PtymuxError):
    """Raised when a credential or bearer token is not accepted."""


class DirectoryNotAllowed(PtymuxError):
    """Raised when a requested working directory lies outside the browsable roots."""
