"""Tests for SessionRegistry."""

from __future__ import annotations

import pytest

from fakes import FakeLauncher
from ptymux.session.process import ProcessSession
from ptymux.session.registry import SessionRegistry


def _factory(launcher: FakeLauncher, session_id: str):
    return lambda: ProcessSession(session_id, launcher, kill_grace=0.0)


class TestRegistry:
    def test_get_or_create_reuses_entry(self, launcher: FakeLauncher) -> None:
        registry = SessionRegistry()
        first = registry.get_or_create("a", _factory(launcher, "a"))
        second = registry.get_or_create("a", _factory(launcher, "a"))
        assert first is second
        assert len(registry) == 1
        assert "a" in registry
        assert registry.get("missing") is None

    @pytest.mark.asyncio
    async def test_active_count(self, launcher: FakeLauncher) -> None:
        registry = SessionRegistry()
        a = registry.get_or_create("a", _factory(launcher, "a"))
        registry.get_or_create("b", _factory(launcher, "b"))
        assert registry.active_count == 0
        await a.spawn()
        assert registry.active_count == 1
        await registry.teardown()

    @pytest.mark.asyncio
    async def test_remove_kills_and_forgets(self, launcher: FakeLauncher) -> None:
        registry = SessionRegistry()
        session = registry.get_or_create("a", _factory(launcher, "a"))
        await session.spawn()
        assert await registry.remove("a")
        assert "a" not in registry
        assert launcher.live == []
        assert not await registry.remove("a")

    @pytest.mark.asyncio
    async def test_teardown_empty_registry(self) -> None:
        registry = SessionRegistry()
        await registry.teardown()
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_teardown_kills_everything(self, launcher: FakeLauncher) -> None:
        registry = SessionRegistry()
        for session_id in ("a", "b", "c"):
            await registry.get_or_create(session_id, _factory(launcher, session_id)).spawn()
        # An exited session stays registered and must not break teardown
        launcher.launched[1].finish(0)
        assert len(launcher.live) == 2

        await registry.teardown()
        assert launcher.live == []
        assert len(registry) == 0
        assert all(p.closed for p in launcher.launched)

    @pytest.mark.asyncio
    async def test_teardown_twice_is_safe(self, launcher: FakeLauncher) -> None:
        registry = SessionRegistry()
        await registry.get_or_create("a", _factory(launcher, "a")).spawn()
        await registry.teardown()
        await registry.teardown()
        assert launcher.live == []

    @pytest.mark.asyncio
    async def test_teardown_survives_failing_kill(self, launcher: FakeLauncher, monkeypatch: pytest.MonkeyPatch) -> None:
        registry = SessionRegistry()
        bad = registry.get_or_create("bad", _factory(launcher, "bad"))
        good = registry.get_or_create("good", _factory(launcher, "good"))
        await good.spawn()

        async def explode() -> None:
            raise RuntimeError("boom")

        monkeypatch.setattr(bad, "kill", explode)
        await registry.teardown()
        assert launcher.live == []
