"""Listing of browsable project directories."""

from __future__ import annotations

import logging
from pathlib import Path

from ptymux.domain.models import ProjectEntry

logger = logging.getLogger(__name__)


def list_projects(projects_dir: str | Path) -> list[ProjectEntry]:
    """Return the non-hidden subdirectories of ``projects_dir``, sorted by name.

    An unreadable or missing directory yields an empty list.
    """
    root = Path(projects_dir).expanduser()
    try:
        entries = [
            ProjectEntry(name=child.name, path=str(child))
            for child in root.iterdir()
            if child.is_dir() and not child.name.startswith(".")
        ]
    except OSError as e:
        logger.debug("Cannot list projects in %s: %s", root, e)
        return []
    return sorted(entries, key=lambda entry: entry.name.lower())
