"""Shared test fixtures for the ptymux test suite.

Provides common fixtures used across unit tests: a fake launcher, a
queue consumer, a recording scheduler and a hub wired to all three.
"""

from __future__ import annotations

import pytest

from fakes import FakeLauncher, RecordingScheduler
from ptymux.domain.models import Geometry
from ptymux.hub import SessionHub
from ptymux.relay import QueueConsumer
from ptymux.session.injector import TextInjector


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def consumer() -> QueueConsumer:
    return QueueConsumer()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def hub(launcher: FakeLauncher, scheduler: RecordingScheduler) -> SessionHub:
    return SessionHub(
        launcher,
        injector=TextInjector(scheduler=scheduler),
        geometry=Geometry(columns=80, rows=24),
        kill_grace=0.0,
    )
