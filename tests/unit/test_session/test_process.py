"""Tests for the ProcessSession lifecycle state machine."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

from fakes import FakeLauncher, settle
from ptymux.domain.models import ExitStatus, Geometry, SessionState
from ptymux.errors import BinaryNotFound, SpawnFailure
from ptymux.relay import QueueConsumer
from ptymux.session.process import ProcessSession, resolve_working_directory


@pytest.fixture
def session(launcher: FakeLauncher, consumer: QueueConsumer, tmp_path: Path) -> ProcessSession:
    return ProcessSession(
        "tab-1",
        launcher,
        consumer=consumer,
        working_directory=tmp_path,
        geometry=Geometry(columns=100, rows=30),
        kill_grace=0.0,
    )


class TestInitialState:
    def test_unspawned_defaults(self, launcher: FakeLauncher) -> None:
        session = ProcessSession("s", launcher)
        assert session.state is SessionState.UNSPAWNED
        assert not session.active
        assert session.pid is None
        assert session.working_directory == str(Path.home())
        assert session.geometry == Geometry(columns=120, rows=40)

    def test_label_from_directory(self, session: ProcessSession, tmp_path: Path) -> None:
        assert session.label == tmp_path.name

    def test_label_default_for_root(self, launcher: FakeLauncher) -> None:
        assert ProcessSession("s", launcher, working_directory="/").label == "Session"

    def test_resolve_working_directory(self, tmp_path: Path) -> None:
        assert resolve_working_directory(None) == str(Path.home())
        assert resolve_working_directory("") == str(Path.home())
        assert resolve_working_directory(tmp_path / "a" / "..") == str(tmp_path.resolve())


class TestSpawn:
    @pytest.mark.asyncio
    async def test_spawn_runs_one_process(self, session: ProcessSession, launcher: FakeLauncher, tmp_path: Path) -> None:
        assert await session.spawn()
        assert session.active
        assert session.state is SessionState.RUNNING
        assert len(launcher.live) == 1
        assert session.pid == launcher.launched[0].pid
        assert launcher.calls == [(str(tmp_path.resolve()), Geometry(columns=100, rows=30))]
        await session.kill()

    @pytest.mark.asyncio
    async def test_second_spawn_terminates_first(self, session: ProcessSession, launcher: FakeLauncher) -> None:
        await session.spawn()
        first = launcher.launched[0]
        await session.spawn()
        second = launcher.launched[1]
        assert first.terminated
        assert not first.alive
        assert second.alive
        assert launcher.live == [second]
        assert session.pid == second.pid
        await session.kill()

    @pytest.mark.asyncio
    async def test_concurrent_spawns_leave_one_live_process(self, session: ProcessSession, launcher: FakeLauncher) -> None:
        await asyncio.gather(session.spawn(), session.spawn(), session.spawn())
        assert len(launcher.launched) == 3
        assert len(launcher.live) == 1
        await session.kill()
        assert launcher.live == []

    @pytest.mark.asyncio
    async def test_spawn_with_new_directory(self, session: ProcessSession, launcher: FakeLauncher, tmp_path: Path) -> None:
        other = tmp_path / "other"
        other.mkdir()
        await session.spawn(other)
        assert session.working_directory == str(other.resolve())
        assert session.label == "other"
        assert launcher.calls[-1][0] == str(other.resolve())
        await session.kill()

    @pytest.mark.asyncio
    async def test_binary_not_found_emits_error(self, session: ProcessSession, launcher: FakeLauncher, consumer: QueueConsumer) -> None:
        launcher.error = BinaryNotFound("claude")
        assert not await session.spawn()
        assert session.state is SessionState.UNSPAWNED
        assert not session.active
        assert launcher.launched == []
        event = await consumer.get(timeout=1)
        assert event.kind == "error"
        assert event.session_id == "tab-1"
        assert "claude not found" in event.message

    @pytest.mark.asyncio
    async def test_spawn_failure_emits_error(self, session: ProcessSession, launcher: FakeLauncher, consumer: QueueConsumer) -> None:
        launcher.error = SpawnFailure("Cannot launch claude: Permission denied", 13)
        assert not await session.spawn()
        event = await consumer.get(timeout=1)
        assert event.kind == "error"
        assert "Permission denied" in event.message

    @pytest.mark.asyncio
    async def test_failed_spawn_without_consumer_is_silent(self, launcher: FakeLauncher) -> None:
        launcher.error = BinaryNotFound("claude")
        session = ProcessSession("s", launcher)
        assert not await session.spawn()


class TestRelay:
    @pytest.mark.asyncio
    async def test_output_delivered_in_order(self, session: ProcessSession, launcher: FakeLauncher, consumer: QueueConsumer) -> None:
        await session.spawn()
        process = launcher.launched[0]
        for chunk in (b"one ", b"two ", b"three"):
            process.feed(chunk)
        events = [await consumer.get(timeout=1) for _ in range(3)]
        assert [e.data for e in events] == [b"one ", b"two ", b"three"]
        assert all(e.kind == "data" and e.session_id == "tab-1" for e in events)
        await session.kill()

    @pytest.mark.asyncio
    async def test_detached_session_drops_output(self, session: ProcessSession, launcher: FakeLauncher, consumer: QueueConsumer) -> None:
        await session.spawn()
        session.detach()
        launcher.launched[0].feed(b"lost")
        await settle()
        assert consumer.drain() == []
        other = QueueConsumer()
        session.attach(other)
        launcher.launched[0].feed(b"kept")
        assert (await other.get(timeout=1)).data == b"kept"
        await session.kill()

    @pytest.mark.asyncio
    async def test_failing_consumer_does_not_stop_relay(self, launcher: FakeLauncher) -> None:
        class Flaky(QueueConsumer):
            calls = 0

            async def send_data(self, session_id: str, data: bytes) -> None:
                Flaky.calls += 1
                if Flaky.calls == 1:
                    raise RuntimeError("socket closed")
                await super().send_data(session_id, data)

        consumer = Flaky()
        session = ProcessSession("s", launcher, consumer=consumer, kill_grace=0.0)
        await session.spawn()
        launcher.launched[0].feed(b"first")
        launcher.launched[0].feed(b"second")
        assert (await consumer.get(timeout=1)).data == b"second"
        await session.kill()


    @pytest.mark.asyncio
    async def test_dead_consumer_warned_once(self, launcher: FakeLauncher, caplog: pytest.LogCaptureFixture) -> None:
        class Closed(QueueConsumer):
            async def send_data(self, session_id: str, data: bytes) -> None:
                raise RuntimeError("socket closed")

        session = ProcessSession("s", launcher, consumer=Closed(), kill_grace=0.0)
        await session.spawn()
        with caplog.at_level(logging.DEBUG, logger="ptymux.session.process"):
            for chunk in (b"1", b"2", b"3"):
                launcher.launched[0].feed(chunk)
            await settle(20)
        rejected = [r for r in caplog.records if "rejected output" in r.getMessage()]
        assert len(rejected) == 3
        assert [r.levelno for r in rejected].count(logging.WARNING) == 1

        session.attach(Closed())
        with caplog.at_level(logging.DEBUG, logger="ptymux.session.process"):
            caplog.clear()
            launcher.launched[0].feed(b"4")
            await settle(20)
        assert [r.levelno for r in caplog.records if "rejected output" in r.getMessage()] == [logging.WARNING]
        await session.kill()


class TestExit:
    @pytest.mark.asyncio
    async def test_spontaneous_exit_notifies_and_stays_restartable(
        self, session: ProcessSession, launcher: FakeLauncher, consumer: QueueConsumer
    ) -> None:
        await session.spawn()
        launcher.launched[0].finish(exit_code=3)
        event = await consumer.get(timeout=1)
        assert event.kind == "exited"
        assert event.status == ExitStatus(exit_code=3)
        assert session.state is SessionState.EXITED
        assert not session.active
        assert session.exit_status == ExitStatus(exit_code=3)
        assert session.pid is None

        assert await session.spawn()
        assert session.active
        assert session.exit_status is None
        assert len(launcher.launched) == 2
        await session.kill()

    @pytest.mark.asyncio
    async def test_exit_by_signal_recorded(self, session: ProcessSession, launcher: FakeLauncher, consumer: QueueConsumer) -> None:
        await session.spawn()
        launcher.launched[0].finish(exit_code=None, signal=9)
        event = await consumer.get(timeout=1)
        assert event.status == ExitStatus(signal=9)

    @pytest.mark.asyncio
    async def test_output_before_exit_is_delivered_first(
        self, session: ProcessSession, launcher: FakeLauncher, consumer: QueueConsumer
    ) -> None:
        await session.spawn()
        launcher.launched[0].feed(b"bye")
        launcher.launched[0].finish(0)
        first = await consumer.get(timeout=1)
        second = await consumer.get(timeout=1)
        assert (first.kind, first.data) == ("data", b"bye")
        assert second.kind == "exited"

    @pytest.mark.asyncio
    async def test_kill_does_not_emit_exit(self, session: ProcessSession, launcher: FakeLauncher, consumer: QueueConsumer) -> None:
        await session.spawn()
        await session.kill()
        await settle()
        assert session.state is SessionState.KILLED
        assert consumer.drain() == []
        assert launcher.launched[0].terminated

    @pytest.mark.asyncio
    async def test_restart_racing_exit_leaves_single_live_process(
        self, session: ProcessSession, launcher: FakeLauncher, consumer: QueueConsumer
    ) -> None:
        await session.spawn()
        first = launcher.launched[0]
        # Exit is in flight while the consumer asks for a restart
        first.finish(exit_code=0)
        await session.spawn()
        await settle()
        assert session.active
        assert launcher.live == [launcher.launched[-1]]
        assert session.pid == launcher.launched[-1].pid
        # Any exit event seen belongs to the first process, never the new one
        for event in consumer.drain():
            assert event.kind == "exited"
        launcher.launched[-1].feed(b"still here")
        assert (await consumer.get(timeout=1)).data == b"still here"
        await session.kill()


class TestWriteResizeKill:
    @pytest.mark.asyncio
    async def test_write_forwarded_when_running(self, session: ProcessSession, launcher: FakeLauncher) -> None:
        await session.spawn()
        session.write(b"ls\r")
        assert launcher.launched[0].writes == [b"ls\r"]
        await session.kill()

    def test_write_when_unspawned_is_noop(self, session: ProcessSession) -> None:
        session.write(b"ignored")

    @pytest.mark.asyncio
    async def test_write_after_exit_is_noop(self, session: ProcessSession, launcher: FakeLauncher, consumer: QueueConsumer) -> None:
        await session.spawn()
        process = launcher.launched[0]
        process.finish(0)
        await consumer.get(timeout=1)
        session.write(b"too late")
        assert process.writes == []

    @pytest.mark.asyncio
    async def test_write_race_with_exit_swallowed(self, session: ProcessSession, launcher: FakeLauncher) -> None:
        await session.spawn()
        process = launcher.launched[0]
        process.closed = True
        session.write(b"x")
        await session.kill()

    def test_resize_before_spawn_applies_at_launch(self, session: ProcessSession, launcher: FakeLauncher) -> None:
        session.resize(132, 50)
        assert session.geometry == Geometry(columns=132, rows=50)

    @pytest.mark.asyncio
    async def test_resize_before_spawn_used_for_pty(self, session: ProcessSession, launcher: FakeLauncher) -> None:
        session.resize(132, 50)
        await session.spawn()
        assert launcher.calls[-1][1] == Geometry(columns=132, rows=50)
        await session.kill()

    @pytest.mark.asyncio
    async def test_resize_running_applied(self, session: ProcessSession, launcher: FakeLauncher) -> None:
        await session.spawn()
        session.resize(90, 20)
        assert launcher.launched[0].resizes == [Geometry(columns=90, rows=20)]
        await session.kill()

    @pytest.mark.asyncio
    async def test_resize_after_kill_is_noop(self, session: ProcessSession, launcher: FakeLauncher) -> None:
        await session.spawn()
        await session.kill()
        session.resize(90, 20)
        assert launcher.launched[0].resizes == []
        assert session.geometry == Geometry(columns=90, rows=20)

    @pytest.mark.asyncio
    async def test_resize_race_swallowed(self, session: ProcessSession, launcher: FakeLauncher) -> None:
        await session.spawn()
        launcher.launched[0].closed = True
        session.resize(90, 20)
        await session.kill()

    def test_resize_rejects_non_positive(self, session: ProcessSession) -> None:
        with pytest.raises(ValueError):
            session.resize(0, 10)

    @pytest.mark.asyncio
    async def test_kill_twice_is_safe(self, session: ProcessSession) -> None:
        await session.spawn()
        await session.kill()
        await session.kill()
        assert session.state is SessionState.KILLED

    @pytest.mark.asyncio
    async def test_kill_unspawned(self, session: ProcessSession) -> None:
        await session.kill()
        assert session.state is SessionState.KILLED

    @pytest.mark.asyncio
    async def test_info_snapshot(self, session: ProcessSession, launcher: FakeLauncher) -> None:
        await session.spawn()
        info = session.info()
        assert info.session_id == "tab-1"
        assert info.active
        assert info.state is SessionState.RUNNING
        assert info.pid == launcher.launched[0].pid
        await session.kill()
