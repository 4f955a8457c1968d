from __future__ import annotations

import asyncio
import io
import os
import signal
import subprocess
import sys
import textwrap
import time
from pathlib import Path
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

import tui
from history import HistoryBuffer, HistoryEntry
from probe import Config, ProbeError, ProbeResult
from tui import KeyReader, ProbeWorker, Scheduler, decode_keys, draw, run_dashboard
from views import Key, SelectionOverlay


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


# --------------------
# Scheduler
# --------------------

def test_scheduler_is_due_before_first_arm() -> None:
    scheduler = Scheduler(2.0, clock=FakeClock())
    assert scheduler.due()
    assert scheduler.remaining() == 0.0


def test_scheduler_interval_elapses() -> None:
    clock = FakeClock()
    scheduler = Scheduler(2.0, clock=clock)
    scheduler.arm()
    assert not scheduler.due()
    assert scheduler.remaining() == pytest.approx(2.0)
    clock.now += 1.5
    assert scheduler.remaining() == pytest.approx(0.5)
    clock.now += 0.5
    assert scheduler.due()
    clock.now += 10
    assert scheduler.remaining() == 0.0


# --------------------
# Keys
# --------------------

@pytest.mark.parametrize("data,keys", [
    ("j", [Key.NEXT]),
    ("k", [Key.PREVIOUS]),
    ("gG", [Key.FIRST, Key.LAST]),
    ("q", [Key.QUIT]),
    ("\x1b", [Key.CLEAR]),
    ("\x1b[B\x1b[A", [Key.NEXT, Key.PREVIOUS]),
    ("\x1b[H\x1b[F", [Key.FIRST, Key.LAST]),
    ("\x1b[1~\x1b[4~", [Key.FIRST, Key.LAST]),
    ("\x1bOB", [Key.NEXT]),
    ("\x1b[15~j", [Key.NEXT]),
    ("xyz", []),
    ("", []),
])
def test_decode_keys(data: str, keys) -> None:
    assert decode_keys(data) == keys


def test_key_reader_without_tty_just_waits() -> None:
    with KeyReader(io.StringIO("j")) as reader:
        assert reader.fd is None
        assert reader.read(0) == []


# --------------------
# Probe worker
# --------------------

def _wait(worker: ProbeWorker):
    deadline = time.monotonic() + 5
    while time.monotonic() < deadline:
        entry = worker.poll()
        if entry is not None:
            return entry
        time.sleep(0.01)
    raise AssertionError("probe batch never finished")


def test_worker_wraps_batch_in_entry() -> None:
    calls = []

    async def prober(address, count, timeout_ms, family):
        calls.append((address, count, timeout_ms, family.value))
        return [ProbeResult(latency_ms=4.0), None]

    cfg = Config(address="192.0.2.1", count=2, timeout_ms=250)
    with ProbeWorker(cfg, prober=prober) as worker:
        assert worker.poll() is None
        worker.submit()
        assert worker.busy
        worker.submit()  # ignored while busy
        entry = _wait(worker)
        assert not worker.busy
    assert calls == [("192.0.2.1", 2, 250, "auto")]
    assert entry.sent == 2
    assert entry.received == 1
    assert entry.latency() == pytest.approx(254.0)


def test_worker_reraises_fatal_errors() -> None:
    async def prober(address, count, timeout_ms, family):
        raise ProbeError("cannot resolve nowhere.invalid")

    with ProbeWorker(Config(), prober=prober) as worker:
        worker.submit()
        with pytest.raises(ProbeError, match="nowhere.invalid"):
            _wait(worker)


# --------------------
# Drawing
# --------------------

def test_draw_produces_full_screen_text() -> None:
    overlay = SelectionOverlay(HistoryBuffer(5))
    text = draw(overlay, 8, 3)
    assert text.plain == "\n".join([" " * 8] * 3)


# --------------------
# Quitting with a batch in flight
# --------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def test_close_discards_running_batch() -> None:
    async def slow(address, count, timeout_ms, family):
        await asyncio.sleep(30)

    worker = ProbeWorker(Config(), prober=slow)
    worker.submit()
    assert worker._thread.daemon
    worker.close()
    assert not worker.busy
    assert worker.poll() is None


def test_exit_does_not_wait_for_slow_batch() -> None:
    script = textwrap.dedent("""
        import asyncio
        import time

        from probe import Config
        from tui import ProbeWorker

        async def slow(address, count, timeout_ms, family):
            await asyncio.sleep(30)

        with ProbeWorker(Config(), prober=slow) as worker:
            worker.submit()
            time.sleep(0.2)
    """)
    env = dict(os.environ, PYTHONPATH=str(PROJECT_ROOT))
    started = time.monotonic()
    proc = subprocess.run([sys.executable, "-c", script], cwd=PROJECT_ROOT, env=env,
                          capture_output=True, timeout=20)
    assert proc.returncode == 0, proc.stderr.decode()
    assert time.monotonic() - started < 10


# --------------------
# Redraw loop
# --------------------

class FakeLive:
    def __init__(self) -> None:
        self.updates = []

    def __enter__(self) -> "FakeLive":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def update(self, renderable, refresh: bool = False) -> None:
        self.updates.append(renderable)


class InstantWorker:
    """Finishes a batch on the second poll after it was submitted."""

    def __init__(self) -> None:
        self.submitted = 0
        self._polls_left = None

    @property
    def busy(self) -> bool:
        return self._polls_left is not None

    def submit(self) -> None:
        self.submitted += 1
        self._polls_left = 1

    def poll(self):
        if self._polls_left is None:
            return None
        if self._polls_left:
            self._polls_left -= 1
            return None
        self._polls_left = None
        return HistoryEntry.from_attempts([ProbeResult(latency_ms=5.0)], 1000.0)


class ScriptedKeys:
    """Each read returns the next step (a key list, or a callable producing one)."""

    def __init__(self, *steps) -> None:
        self.steps = list(steps)
        self.reads = 0

    def read(self, timeout: float):
        self.reads += 1
        step = self.steps.pop(0) if self.steps else [Key.QUIT]
        return step() if callable(step) else step


@pytest.fixture
def screen(monkeypatch):
    live = FakeLive()
    fake_console = SimpleNamespace(size=SimpleNamespace(width=20, height=6))
    monkeypatch.setattr(tui, "Live", lambda *args, **kwargs: live)
    monkeypatch.setattr(tui, "console", fake_console)
    return SimpleNamespace(live=live, console=fake_console)


def test_redraws_only_on_size_batch_and_key(screen) -> None:
    worker = InstantWorker()
    keys = ScriptedKeys([], [Key.NEXT], [], [], [], [Key.QUIT])
    run_dashboard(Config(interval_secs=60), keys, worker)

    # initial size, finished batch, selection change; idle reads draw nothing
    assert len(screen.live.updates) == 3
    assert keys.reads == 6
    assert worker.submitted == 1
    batch, selected = screen.live.updates[1:]
    # a single entry fills the screen, so selection shows only as a tint
    assert batch.plain == selected.plain
    assert batch.spans != selected.spans


def test_resize_triggers_redraw(screen) -> None:
    def shrink():
        screen.console.size = SimpleNamespace(width=12, height=4)
        return []

    worker = InstantWorker()
    keys = ScriptedKeys([], [], shrink, [], [Key.QUIT])
    run_dashboard(Config(interval_secs=60), keys, worker)

    assert len(screen.live.updates) == 3
    rows = screen.live.updates[-1].plain.split("\n")
    assert [len(row) for row in rows] == [12] * 4


def test_scheduler_rearms_after_batch(screen, monkeypatch) -> None:
    clock = FakeClock()
    monkeypatch.setattr(tui, "Scheduler", lambda interval: Scheduler(interval, clock=clock))

    def later():
        clock.now += 2.0
        return []

    worker = InstantWorker()
    keys = ScriptedKeys([], [], [], [], later, [], [], [Key.QUIT])
    run_dashboard(Config(interval_secs=2.0), keys, worker)
    # first batch right away, the second only once the interval has passed
    assert worker.submitted == 2
    assert len(screen.live.updates) == 3


def test_signal_handlers_are_restored(screen) -> None:
    before = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    during = {}

    def capture():
        during.update({sig: signal.getsignal(sig) for sig in before})
        return [Key.QUIT]

    run_dashboard(Config(interval_secs=60), ScriptedKeys(capture), InstantWorker())
    assert all(during[sig] is not before[sig] for sig in before)
    assert {sig: signal.getsignal(sig) for sig in before} == before


# --------------------
# Command line
# --------------------

def test_unwritable_log_file_exits_with_error(tmp_path) -> None:
    blocker = tmp_path / "afile"
    blocker.write_text("", encoding="utf-8")
    result = CliRunner().invoke(tui.app, ["--log-file", str(blocker / "sub" / "pinggrid.log")])
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_os_error_from_loop_exits_with_error(tmp_path, monkeypatch) -> None:
    def denied(cfg, keys, worker):
        raise PermissionError("ping: permission denied")

    monkeypatch.setattr(tui, "run_dashboard", denied)
    result = CliRunner().invoke(tui.app, ["--log-file", str(tmp_path / "pinggrid.log")])
    assert result.exit_code == 1
    assert "Error: ping: permission denied" in result.output
