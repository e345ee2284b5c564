"""Child process environment construction.

A spawned CLI inherits the full host environment except for the
markers that would make it think it is already running inside this
wrapper. Terminal capability variables are always forced so colour and
key handling do not depend on how the host itself was started.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path

from ptymux.config.settings import DEFAULT_STRIP_ENV, SessionConfig

logger = logging.getLogger(__name__)

TERM = "xterm-256color"
COLORTERM = "truecolor"


class EnvironmentPolicy:
    """Deny-list plus forced values applied to a copy of the host environment."""

    def __init__(
        self,
        strip: Iterable[str] = DEFAULT_STRIP_ENV,
        extra: Mapping[str, str] | None = None,
        lang_fallback: str = "en_US.UTF-8",
    ) -> None:
        self.strip = frozenset(strip)
        self.extra = dict(extra or {})
        self.lang_fallback = lang_fallback

    @classmethod
    def from_config(cls, config: SessionConfig) -> EnvironmentPolicy:
        return cls(
            strip=config.strip_env,
            extra=config.extra_env,
            lang_fallback=config.lang_fallback,
        )

    def build(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return the environment for a new child process.

        Args:
            base: Environment to start from; defaults to ``os.environ``.
                  The mapping itself is never modified.
        """
        source = os.environ if base is None else base
        env = {key: value for key, value in source.items() if key not in self.strip}

        env.update(self.extra)
        env["TERM"] = TERM
        env["COLORTERM"] = COLORTERM
        env["LANG"] = source.get("LANG") or self.lang_fallback
        env.setdefault("HOME", str(Path.home()))

        removed = sorted(self.strip.intersection(source))
        if removed:
            logger.debug("Stripped re-entrancy markers from child env: %s", ", ".join(removed))
        return env
