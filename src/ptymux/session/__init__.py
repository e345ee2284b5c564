"""Process session management for ptymux.

Locates the target executable, launches it behind a pseudo-terminal,
and tracks each session's lifecycle from spawn to exit or kill.

Public API:
    BinaryLocator -- resolves the executable path
    ProcessSession -- one session's state machine
    SessionRegistry -- identifier to session mapping
    TextInjector -- timed character-at-a-time submission
"""

from ptymux.session.injector import AsyncioScheduler, Scheduler, TextInjector
from ptymux.session.launcher import Launcher, PtyLauncher
from ptymux.session.locator import BinaryLocator
from ptymux.session.process import ProcessSession
from ptymux.session.registry import SessionRegistry

__all__ = [
    "AsyncioScheduler",
    "BinaryLocator",
    "Launcher",
    "ProcessSession",
    "PtyLauncher",
    "Scheduler",
    "SessionRegistry",
    "TextInjector",
]
