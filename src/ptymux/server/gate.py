"""Remote Gate: credential check, bearer tokens and directory allow-list.

Tokens are random values held in memory for the lifetime of the host
process; restarting the host invalidates all of them.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterable
from pathlib import Path

from ptymux.errors import DirectoryNotAllowed, Unauthorized

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class RemoteGate:
    """Validates remote consumers before a session is created for them.

    Args:
        password: Shared login password. When empty, a random one is
            generated and must be read from :attr:`password`.
        allowed_roots: Directories under which remote consumers may
            open sessions.
    """

    def __init__(self, password: str = "", allowed_roots: Iterable[str | Path] = ()) -> None:
        self._password_generated = not password
        self._password = password or secrets.token_hex(4)
        self._tokens: set[str] = set()
        self._roots = [Path(root).expanduser().resolve() for root in allowed_roots]

    @property
    def password(self) -> str:
        return self._password

    @property
    def password_generated(self) -> bool:
        return self._password_generated

    @property
    def allowed_roots(self) -> list[Path]:
        return list(self._roots)

    @property
    def token_count(self) -> int:
        return len(self._tokens)

    def authenticate(self, credential: str) -> str:
        """Exchange the password for a new bearer token.

        Raises:
            Unauthorized: If the password does not match.
        """
        if not secrets.compare_digest(credential.encode(), self._password.encode()):
            logger.warning("Login rejected: wrong password")
            raise Unauthorized("Wrong password")
        token = secrets.token_hex(TOKEN_BYTES)
        self._tokens.add(token)
        logger.info("Issued token (%d active)", len(self._tokens))
        return token

    def is_valid(self, token: str | None) -> bool:
        return bool(token) and token in self._tokens

    def authorize(self, token: str | None) -> None:
        """Check that ``token`` was issued by this host process.

        Raises:
            Unauthorized: If it was not.
        """
        if not self.is_valid(token):
            raise Unauthorized("Unauthorized")

    def revoke(self, token: str) -> None:
        self._tokens.discard(token)

    def resolve_directory(self, requested: str | None) -> str:
        """Working directory for a connection that asked for ``requested``.

        No request means the host user's home directory. An explicit
        request must name an existing directory inside an allowed root.

        Raises:
            DirectoryNotAllowed: If the directory is missing or outside
                every allowed root.
        """
        if not requested:
            return str(Path.home())
        path = Path(requested).expanduser().resolve()
        if not any(path == root or path.is_relative_to(root) for root in self._roots):
            raise DirectoryNotAllowed(f"Directory not allowed: {requested}")
        if not path.is_dir():
            raise DirectoryNotAllowed(f"Not a directory: {requested}")
        return str(path)

    @staticmethod
    def new_session_id() -> str:
        """Identifier for a session bound to one network connection."""
        return f"ws-{secrets.token_hex(8)}"
