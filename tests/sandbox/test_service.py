"""End-to-end tests for SandboxService against real files."""

import asyncio
import os

import pytest

from slice_sandbox.config import Config
from slice_sandbox.errors import (
    DelimiterMissingError, SessionBusyError, UnregisteredSessionError,
    WriteBackFailedError,
)
from slice_sandbox.providers.base import SymbolKind, SymbolNode
from slice_sandbox.providers.documents import FileDocumentStore
from slice_sandbox.regions.grammar import delimiter_line, split_buffer
from slice_sandbox.regions.models import LineRange
from slice_sandbox.sandbox.backup import BackupStore
from slice_sandbox.sandbox.metrics import read_sync_stats
from slice_sandbox.sandbox.scheduler import SyncOutcome
from slice_sandbox.sandbox.service import SandboxService


ORIGINAL = "".join(f"line {i}\n" for i in range(30))


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class StaticSymbols:
    def __init__(self, tree):
        self.tree = tree

    async def query_symbols(self, artifact_id):
        return self.tree


class FailingBackups(BackupStore):
    def snapshot(self, session_id, artifact_id, text):
        raise OSError("read-only backup dir")


@pytest.fixture
def cfg(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("SLICEBOX_"):
            monkeypatch.delenv(key)
    return Config({"state_dir": str(tmp_path / "state"), "quiet_period_ms": 250})


@pytest.fixture
def artifact(tmp_path):
    path = tmp_path / "module.py"
    path.write_text(ORIGINAL, encoding="utf-8")
    return str(path)


def _service(cfg, **kwargs):
    return SandboxService(cfg, FileDocumentStore(), **kwargs)


def _read(path):
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def _edit_scratch(session, old, new):
    text = _read(session.buffer_id)
    assert old in text
    with open(session.buffer_id, "w", encoding="utf-8", newline="") as f:
        f.write(text.replace(old, new))


class TestSlice:
    def test_creates_scratch_backup_and_session(self, cfg, artifact):
        service = _service(cfg)
        session = asyncio.run(service.slice(artifact, [15]))

        assert session.artifact_id == artifact
        assert session.regions.ranges() == [LineRange(8, 22)]
        assert not session.is_live
        assert session.buffer_id.startswith(service.scratch_dir)
        assert session.buffer_id.endswith(".sandbox.py")
        scratch = _read(session.buffer_id)
        assert scratch.startswith(delimiter_line("region_0") + "\nline 8\n")
        assert os.path.isfile(session.backup.path)
        assert split_buffer(_read(session.backup.path)) == session.regions.backup_blocks()
        assert service.registry.get(session.buffer_id) is session
        assert service.registry.get(session.session_id) is session
        assert _read(artifact) == ORIGINAL

    def test_symbol_boundaries(self, cfg, artifact):
        symbols = StaticSymbols([
            SymbolNode("a", SymbolKind.FUNCTION, 2, 6),
            SymbolNode("b", SymbolKind.CLASS, 12, 20),
        ])
        session = asyncio.run(_service(cfg, symbols=symbols).slice(artifact, [3, 14]))
        assert session.regions.ranges() == [LineRange(2, 6), LineRange(12, 20)]

    def test_nothing_to_slice(self, cfg, artifact):
        service = _service(cfg)
        assert asyncio.run(service.slice(artifact, [])) is None
        assert len(service.registry) == 0

    def test_backup_failure_still_opens_session(self, cfg, artifact):
        service = _service(cfg, backups=FailingBackups(cfg.BACKUP_DIR))

        async def run():
            session = await service.slice(artifact, [3])
            _edit_scratch(session, "line 3", "changed")
            await service.sync_now(session.session_id)
            await service.revert(session.session_id)
            return session

        session = asyncio.run(run())
        assert session.backup is None
        assert _read(artifact) == ORIGINAL

    def test_each_slice_gets_its_own_session(self, cfg, artifact):
        service = _service(cfg)

        async def run():
            return await service.slice(artifact, [2]), await service.slice(artifact, [25])

        first, second = asyncio.run(run())
        assert first.session_id != second.session_id
        assert len(service.registry) == 2


class TestResolve:
    def test_accept_keeps_edits_and_cleans_up(self, cfg, artifact):
        service = _service(cfg)

        async def run():
            session = await service.slice(artifact, [10])
            _edit_scratch(session, "line 10\n", "line 10a\nline 10b\n")
            await service.accept(session.buffer_id)
            return session

        session = asyncio.run(run())
        assert "line 10a\nline 10b\nline 11\n" in _read(artifact)
        assert not os.path.exists(session.backup.path)
        assert not os.path.exists(session.buffer_id)
        assert session.session_id not in service.registry
        with pytest.raises(UnregisteredSessionError):
            asyncio.run(service.sync_now(session.session_id))

    def test_revert_after_live_syncs_restores_original(self, cfg, artifact):
        clock = FakeClock()
        service = _service(cfg, clock=clock)

        async def run():
            session = await service.slice(artifact, [3, 25])
            service.set_live(session.session_id, True)

            _edit_scratch(session, "line 3\n", "")
            assert service.on_buffer_changed(session.buffer_id)
            clock.now += 1
            assert await service.fire_due_timers() == [SyncOutcome.APPLIED]

            _edit_scratch(session, "line 25\n", "line 25\nextra\n")
            service.on_buffer_changed(session.buffer_id)
            clock.now += 1
            assert await service.fire_due_timers() == [SyncOutcome.APPLIED]
            assert "line 3\n" not in _read(artifact)
            assert "extra\n" in _read(artifact)

            await service.revert(session.session_id)
            return session

        session = asyncio.run(run())
        assert _read(artifact) == ORIGINAL
        assert session.sync_count == 2
        assert not os.path.exists(session.backup.path)
        assert len(service.registry) == 0

    def test_unknown_key(self, cfg):
        service = _service(cfg)
        with pytest.raises(UnregisteredSessionError) as exc_info:
            asyncio.run(service.accept("missing"))
        assert exc_info.value.key == "missing"
        with pytest.raises(UnregisteredSessionError):
            service.toggle_live("missing")


class TestLiveSync:
    def test_toggle(self, cfg, artifact):
        service = _service(cfg)
        session = asyncio.run(service.slice(artifact, [3]))
        assert service.toggle_live(session.session_id) is True
        assert service.toggle_live(session.session_id) is False

    def test_disabling_cancels_pending_timer(self, cfg, artifact):
        clock = FakeClock()
        service = _service(cfg, clock=clock)
        session = asyncio.run(service.slice(artifact, [3]))
        service.set_live(session.session_id, True)
        service.on_buffer_changed(session.buffer_id)
        assert session.has_pending_timer

        service.set_live(session.session_id, False)
        clock.now += 10
        assert not session.has_pending_timer
        assert asyncio.run(service.fire_due_timers()) == []

    def test_change_to_unknown_buffer_is_ignored(self, cfg):
        assert not _service(cfg).on_buffer_changed("/nowhere/buffer.py")

    def test_broken_delimiter_reports_and_stays_live(self, cfg, artifact):
        clock = FakeClock()
        errors = []
        service = _service(cfg, clock=clock, on_error=lambda s, e: errors.append(e))

        async def run():
            session = await service.slice(artifact, [4])
            service.set_live(session.session_id, True)
            _edit_scratch(session, delimiter_line("region_0"), "oops")
            service.on_buffer_changed(session.buffer_id)
            clock.now += 1
            return session, await service.fire_due_timers()

        session, outcomes = asyncio.run(run())
        assert outcomes == [SyncOutcome.FAILED]
        assert isinstance(errors[0], DelimiterMissingError)
        assert session.is_live
        assert session.last_error
        assert _read(artifact) == ORIGINAL

    def test_next_deadline(self, cfg, artifact):
        clock = FakeClock()
        service = _service(cfg, clock=clock)
        session = asyncio.run(service.slice(artifact, [3]))
        assert service.next_deadline() is None
        service.set_live(session.session_id, True)
        service.on_buffer_changed(session.buffer_id)
        assert service.next_deadline() == pytest.approx(0.25)


class TestOneShot:
    def test_sync_now_while_busy(self, cfg, artifact):
        service = _service(cfg)
        session = asyncio.run(service.slice(artifact, [3]))
        session.scheduler.busy = True
        with pytest.raises(SessionBusyError):
            asyncio.run(service.sync_now(session.session_id))

    def test_sync_now_failure_propagates(self, cfg, artifact):
        service = _service(cfg)

        async def run():
            session = await service.slice(artifact, [3])
            _edit_scratch(session, delimiter_line("region_0"), "")
            with pytest.raises(DelimiterMissingError):
                await service.sync_now(session.session_id)
            return session

        session = asyncio.run(run())
        assert session.last_error
        assert session.sync_count == 0

    def test_metrics_logged(self, cfg, artifact):
        service = _service(cfg)

        async def run():
            session = await service.slice(artifact, [3])
            await service.sync_now(session.session_id)
            await service.accept(session.session_id)

        asyncio.run(run())
        stats = read_sync_stats(cfg.STATE_DIR)
        assert stats["outcomes"] == {"applied": 1, "accepted": 1}
        assert stats["success_rate"] == 100.0

    def test_shutdown_keeps_backups(self, cfg, artifact):
        service = _service(cfg)
        session = asyncio.run(service.slice(artifact, [3]))
        service.shutdown()
        assert len(service.registry) == 0
        assert os.path.isfile(session.backup.path)


class TestOutsideEdits:
    def test_appended_lines_survive_sync_and_revert(self, cfg, artifact):
        service = _service(cfg)

        async def run():
            session = await service.slice(artifact, [2])
            with open(artifact, "a", encoding="utf-8") as f:
                f.write("appended elsewhere\n")
            _edit_scratch(session, "line 2\n", "LINE TWO\n")
            await service.sync_now(session.session_id)
            synced = _read(artifact)
            await service.revert(session.session_id)
            return synced

        synced = asyncio.run(run())
        assert "LINE TWO\n" in synced
        assert synced.endswith("line 29\nappended elsewhere\n")
        assert _read(artifact) == ORIGINAL + "appended elsewhere\n"

    def test_truncated_artifact_clamps_region_end(self, cfg, artifact):
        service = _service(cfg)

        async def run():
            session = await service.slice(artifact, [15])
            assert session.regions.ranges() == [LineRange(8, 22)]
            with open(artifact, "w", encoding="utf-8", newline="") as f:
                f.write("".join(f"line {i}\n" for i in range(12)))
            await service.sync_now(session.session_id)
            return session

        session = asyncio.run(run())
        restored = "\n".join(f"line {i}" for i in range(8, 23))
        assert _read(artifact) == "".join(f"line {i}\n" for i in range(8)) + restored
        assert session.regions.ranges() == [LineRange(8, 22)]

    def test_artifact_shorter_than_region_start_fails(self, cfg, artifact):
        service = _service(cfg)

        async def run():
            session = await service.slice(artifact, [25])
            with open(artifact, "w", encoding="utf-8", newline="") as f:
                f.write("tiny\n")
            with pytest.raises(WriteBackFailedError):
                await service.sync_now(session.session_id)
            return session

        session = asyncio.run(run())
        assert _read(artifact) == "tiny\n"
        assert session.regions.ranges() == [LineRange(18, 30)]
