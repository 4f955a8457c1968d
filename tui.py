# pinggrid_tui.py
"""
Pinggrid TUI: full-screen terminal dashboard that pings one target in
batches and tiles the batch history over the whole terminal.

Features:
- One colored cell per probe batch, newest first; green = no loss at the best
  latency seen so far, fading to red with loss or slower round trips
- The grid re-partitions on every resize; cells show a verbose or compact
  summary when they are wide enough
- Keyboard selection with an inspect panel (j/k, arrows, g/G, Home/End, Esc)
- Redraws only on resize, finished probe batch or navigation key
- Press 'q' to quit gracefully; Ctrl-C also works

Requirements:
  rich
  typer
  PyYAML (via probe.py import)

Usage:
  python tui.py --address 1.1.1.1 --count 5 --interval 2
  python tui.py --config ./pinggrid.yaml
"""
from __future__ import annotations

import asyncio
import logging
import os
import select
import signal
import sys
import threading
import time
import termios
import tty
from concurrent.futures import Future
from typing import Callable, List, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.text import Text

from canvas import Canvas
from history import HistoryBuffer, HistoryEntry
from probe import Config, IPFamily, ProbeError, load_config, probe_batch
from views import Key, SelectionOverlay

app = typer.Typer(add_completion=False)
console = Console()

KEY_POLL_SECS = 0.1


# --------------------
# Scheduling
# --------------------

class Scheduler:
    """Tracks when the next probe batch is due on a monotonic clock."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self.clock = clock
        self._deadline: Optional[float] = None  # None: due right away

    def due(self) -> bool:
        return self.remaining() <= 0.0

    def remaining(self) -> float:
        if self._deadline is None:
            return 0.0
        return max(0.0, self._deadline - self.clock())

    def arm(self) -> None:
        self._deadline = self.clock() + self.interval


class ProbeWorker:
    """Runs one probe batch at a time off the UI thread.

    Batches run on daemon threads: quitting never waits for a batch that is
    still in flight.
    """

    def __init__(self, cfg: Config, prober=probe_batch):
        self.cfg = cfg
        self.prober = prober
        self._future: Optional[Future] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def busy(self) -> bool:
        return self._future is not None

    def submit(self) -> None:
        if self.busy:
            return
        logging.debug(f"probing {self.cfg.address} x{self.cfg.count}")
        self._future = Future()
        self._thread = threading.Thread(target=self._run, args=(self._future,), name="probe", daemon=True)
        self._thread.start()

    def _run(self, future: Future) -> None:
        if not future.set_running_or_notify_cancel():
            return
        cfg = self.cfg
        try:
            result = asyncio.run(self.prober(cfg.address, cfg.count, cfg.timeout_ms, IPFamily(cfg.family)))
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)

    def poll(self) -> Optional[HistoryEntry]:
        """Return the finished batch, if any; re-raises fatal probe errors."""
        if self._future is None or not self._future.done():
            return None
        future, self._future = self._future, None
        entry = HistoryEntry.from_attempts(future.result(), self.cfg.timeout_ms)
        logging.debug(f"batch done: loss={entry.loss():.2f} latency={entry.latency():.1f}ms")
        return entry

    def close(self) -> None:
        # the result of a batch still running is discarded
        self._future = None

    def __enter__(self) -> "ProbeWorker":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# --------------------
# Keyboard handling
# --------------------

ESCAPE_SEQUENCES = {
    "\x1b[A": Key.PREVIOUS,
    "\x1b[B": Key.NEXT,
    "\x1b[C": Key.NEXT,
    "\x1b[D": Key.PREVIOUS,
    "\x1b[H": Key.FIRST,
    "\x1b[F": Key.LAST,
    "\x1b[1~": Key.FIRST,
    "\x1b[4~": Key.LAST,
    "\x1bOA": Key.PREVIOUS,
    "\x1bOB": Key.NEXT,
    "\x1bOC": Key.NEXT,
    "\x1bOD": Key.PREVIOUS,
    "\x1bOH": Key.FIRST,
    "\x1bOF": Key.LAST,
}

CHAR_KEYS = {
    "j": Key.NEXT,
    "k": Key.PREVIOUS,
    "l": Key.NEXT,
    "h": Key.PREVIOUS,
    "g": Key.FIRST,
    "G": Key.LAST,
    "q": Key.QUIT,
    "Q": Key.QUIT,
}


def decode_keys(data: str) -> List[Key]:
    """Turn raw terminal input into key events; unknown input is ignored."""
    keys: List[Key] = []
    i = 0
    while i < len(data):
        if data[i] == "\x1b":
            seq = next((s for s in ESCAPE_SEQUENCES if data.startswith(s, i)), None)
            if seq is not None:
                keys.append(ESCAPE_SEQUENCES[seq])
                i += len(seq)
            elif data[i + 1:i + 2] in ("[", "O"):
                # unknown sequence: skip through its final byte
                i += 2
                while i < len(data) and not (data[i].isalpha() or data[i] == "~"):
                    i += 1
                i += 1
            else:
                keys.append(Key.CLEAR)
                i += 1
            continue
        key = CHAR_KEYS.get(data[i])
        if key is not None:
            keys.append(key)
        i += 1
    return keys


class KeyReader:
    """Puts stdin in cbreak mode and reads whatever keys are pending."""

    def __init__(self, stream=None):
        self.stream = stream if stream is not None else sys.stdin
        self.fd: Optional[int] = None
        self._saved = None

    def __enter__(self) -> "KeyReader":
        if self.stream.isatty():
            self.fd = self.stream.fileno()
            self._saved = termios.tcgetattr(self.fd)
            tty.setcbreak(self.fd)
        return self

    def __exit__(self, *exc) -> None:
        if self.fd is not None and self._saved is not None:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._saved)

    def read(self, timeout: float) -> List[Key]:
        if self.fd is None:
            time.sleep(timeout)
            return []
        ready, _, _ = select.select([self.fd], [], [], timeout)
        if not ready:
            return []
        data = os.read(self.fd, 64).decode(errors="ignore")
        return decode_keys(data)


# --------------------
# Main loop
# --------------------

def draw(overlay: SelectionOverlay, width: int, height: int) -> Text:
    canvas = Canvas(width, height)
    overlay.render(canvas, canvas.area)
    return canvas.to_text()


def run_dashboard(cfg: Config, keys: KeyReader, worker: ProbeWorker) -> None:
    history = HistoryBuffer(cfg.history)
    overlay = SelectionOverlay(history, cfg.inspect_min_height)
    scheduler = Scheduler(cfg.interval_secs)

    stop = False
    def _stop(*_):
        nonlocal stop
        stop = True
    previous = {}
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, _stop)
    except ValueError:
        logging.debug("signal handlers not installed (not in main thread)")

    size = None
    try:
        with Live(console=console, auto_refresh=False, screen=True) as live:
            while not stop:
                dirty = False
                if scheduler.due() and not worker.busy:
                    worker.submit()
                entry = worker.poll()
                if entry is not None:
                    overlay.insert(entry)
                    scheduler.arm()
                    dirty = True

                current = (console.size.width, console.size.height)
                if current != size:
                    size = current
                    dirty = True

                if dirty:
                    live.update(draw(overlay, *size), refresh=True)

                for key in keys.read(KEY_POLL_SECS):
                    if key is Key.QUIT:
                        stop = True
                        break
                    if overlay.handle_key(key):
                        live.update(draw(overlay, *size), refresh=True)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def setup_logging(cfg: Config) -> None:
    log_dir = os.path.dirname(os.path.abspath(cfg.log_file))
    os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        filename=cfg.log_file,
        level=getattr(logging, cfg.log_level.upper()),
        format="%(asctime)s %(levelname)s %(message)s",
        encoding="utf-8",
    )


@app.command()
def tui(config: Optional[str] = typer.Option(None, help="Path to pinggrid.yaml"),
        address: Optional[str] = typer.Option(None, help="Target host or IP"),
        count: Optional[int] = typer.Option(None, help="Pings per batch"),
        interval: Optional[float] = typer.Option(None, help="Seconds between batches"),
        timeout: Optional[float] = typer.Option(None, help="Per-ping timeout in milliseconds"),
        history: Optional[int] = typer.Option(None, help="Number of batches kept on screen"),
        family: Optional[str] = typer.Option(None, help="auto|v4|v6"),
        inspect_height: Optional[int] = typer.Option(None, help="Minimum height of the inspect panel"),
        log_file: Optional[str] = typer.Option(None, help="Log file path"),
        log_level: Optional[str] = typer.Option(None, help="Log level")):
    try:
        cfg = load_config(
            config,
            address=address,
            count=count,
            interval_secs=interval,
            timeout_ms=timeout,
            history=history,
            family=family,
            inspect_min_height=inspect_height,
            log_file=log_file,
            log_level=log_level,
        )
    except (OSError, ValueError) as e:
        typer.secho(f"Config error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)

    try:
        setup_logging(cfg)
        logging.info(f"dashboard starting: {cfg.address} x{cfg.count} every {cfg.interval_secs}s")
        with ProbeWorker(cfg) as worker, KeyReader() as keys:
            run_dashboard(cfg, keys, worker)
    except (ProbeError, OSError) as e:
        logging.exception("dashboard failed")
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    logging.info("dashboard stopped")


if __name__ == "__main__":
    app()
