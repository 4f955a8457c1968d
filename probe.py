# pinggrid_probe.py
"""
Pinggrid probe: the measuring side of the dashboard.

Features:
- Loads an optional YAML config (target, batch size, interval, timeout, history size)
- Runs batches of ICMP echo requests through the system ping binary
- Classifies each attempt as a reply, a drop (no reply / timeout) or a send failure
- `check` and `once` commands for trying the probe without the dashboard

CLI:
  python probe.py check --config ./pinggrid.yaml
  python probe.py once  --address 1.1.1.1 --count 5

Requirements:
  PyYAML
  typer
"""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import enum
import logging
import math
import re
import shutil
import socket
from dataclasses import dataclass
from typing import List, Optional

import typer
import yaml

app = typer.Typer(add_completion=False, help="Pinggrid probe (batch ping)")

# -------------------------
# Config model (lightweight)
# -------------------------

@dataclass
class Config:
    address: str = "8.8.8.8"
    family: str = "auto"  # auto|v4|v6
    count: int = 5
    interval_secs: float = 2.0
    timeout_ms: float = 1000.0
    history: int = 256
    inspect_min_height: int = 5
    log_file: str = "pinggrid.log"
    log_level: str = "INFO"


def validate_config(cfg: Config) -> Config:
    if not cfg.address:
        raise ValueError("Config key 'address' must not be empty")
    if cfg.family not in ("auto", "v4", "v6"):
        raise ValueError(f"Invalid family '{cfg.family}' (expected auto, v4 or v6)")
    if cfg.count < 1:
        raise ValueError(f"Config key 'count' must be positive, got {cfg.count}")
    if cfg.interval_secs <= 0:
        raise ValueError(f"Config key 'interval_secs' must be positive, got {cfg.interval_secs}")
    if cfg.timeout_ms <= 0:
        raise ValueError(f"Config key 'timeout_ms' must be positive, got {cfg.timeout_ms}")
    if cfg.history < 1:
        raise ValueError(f"Config key 'history' must be positive, got {cfg.history}")
    if cfg.inspect_min_height < 3:
        raise ValueError(f"Config key 'inspect_min_height' must be at least 3, got {cfg.inspect_min_height}")
    if not isinstance(logging.getLevelName(cfg.log_level.upper()), int):
        raise ValueError(f"Unknown log level '{cfg.log_level}'")
    return cfg


def load_config(path: Optional[str] = None, **overrides) -> Config:
    """Build a Config from an optional YAML file; non-None overrides win."""
    raw: dict = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
    known = {f.name for f in dataclasses.fields(Config)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown config key(s): {', '.join(unknown)}")
    defaults = Config()
    cfg = Config(
        address=str(raw.get("address", defaults.address)),
        family=str(raw.get("family", defaults.family)),
        count=int(raw.get("count", defaults.count)),
        interval_secs=float(raw.get("interval_secs", defaults.interval_secs)),
        timeout_ms=float(raw.get("timeout_ms", defaults.timeout_ms)),
        history=int(raw.get("history", defaults.history)),
        inspect_min_height=int(raw.get("inspect_min_height", defaults.inspect_min_height)),
        log_file=str(raw.get("log_file", defaults.log_file)),
        log_level=str(raw.get("log_level", defaults.log_level)),
    )
    cfg = dataclasses.replace(cfg, **{k: v for k, v in overrides.items() if v is not None})
    return validate_config(cfg)


# -------------------------
# Probe results
# -------------------------

class ProbeError(Exception):
    """A failure that aborts the whole batch (resolution, missing binary)."""


@dataclass(frozen=True)
class ProbeResult:
    latency_ms: float = 0.0
    dropped: bool = False


class IPFamily(enum.Enum):
    AUTO = "auto"
    V4 = "v4"
    V6 = "v6"


# -------------------------
# Ping subprocess wrapper
# -------------------------

PING_RTT_RE = re.compile(r"time[=<](?P<ms>[0-9]+\.?[0-9]*) ?ms")

# iputils ping: 0 = reply, 1 = no reply, anything else = error
PING_NO_REPLY = 1


def parse_ping_output(returncode: int, stdout: str, timeout_ms: float) -> Optional[ProbeResult]:
    """Classify one `ping -c 1` run."""
    if returncode == PING_NO_REPLY:
        return ProbeResult(dropped=True)
    if returncode != 0:
        return None
    m = PING_RTT_RE.search(stdout)
    if not m:
        # exit 0 without a reply line: treat as a lost reply
        return ProbeResult(dropped=True)
    rtt_ms = float(m.group("ms"))
    if rtt_ms > timeout_ms:
        return ProbeResult(dropped=True)
    return ProbeResult(latency_ms=rtt_ms)


def ping_commands(host: str, timeout_ms: float, family: IPFamily) -> List[List[str]]:
    deadline = str(max(1, math.ceil(timeout_ms / 1000.0)))
    if family == IPFamily.V4:
        return [["ping", "-n", "-c", "1", "-w", deadline, host]]
    if family == IPFamily.V6:
        return [["ping6", "-n", "-c", "1", "-w", deadline, host]]
    # AUTO: try ping (v4) then ping6
    return [
        ["ping", "-n", "-c", "1", "-w", deadline, host],
        ["ping6", "-n", "-c", "1", "-w", deadline, host],
    ]


async def run_ping(host: str, timeout_ms: float, family: IPFamily) -> Optional[ProbeResult]:
    """Send one echo request. None means the request could not be sent."""
    result: Optional[ProbeResult] = None
    missing = 0
    cmds = ping_commands(host, timeout_ms, family)
    for cmd in cmds:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError:
            missing += 1
            continue
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_ms / 1000.0 + 1)
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            return ProbeResult(dropped=True)
        result = parse_ping_output(proc.returncode, stdout.decode(errors="ignore"), timeout_ms)
        if result is not None:
            return result
        logging.warning(f"{cmd[0]} {host} failed ({proc.returncode}): {stderr.decode(errors='ignore').strip()}")
    if missing == len(cmds):
        raise ProbeError(f"ping binary not found: {', '.join(c[0] for c in cmds)}")
    return result


async def resolve(address: str) -> None:
    loop = asyncio.get_running_loop()
    try:
        await loop.getaddrinfo(address, None)
    except socket.gaierror as exc:
        raise ProbeError(f"cannot resolve {address}: {exc}") from exc


async def probe_batch(address: str, count: int, timeout_ms: float,
                      family: IPFamily = IPFamily.AUTO) -> List[Optional[ProbeResult]]:
    """Run `count` pings one after another; one slot per attempt."""
    await resolve(address)
    return [await run_ping(address, timeout_ms, family) for _ in range(count)]


# -------------------------
# CLI commands
# -------------------------

@app.command()
def check(config: Optional[str] = typer.Option(None, help="Path to pinggrid.yaml")):
    """Check presence of the ping binaries and print a config summary."""
    cfg = load_config(config)
    ping_ok = shutil.which("ping") or shutil.which("ping6")
    typer.echo(f"ping present: {'yes' if ping_ok else 'NO'}")
    typer.echo(
        f"Target: {cfg.address} ({cfg.family}) | batch: {cfg.count} | "
        f"interval: {cfg.interval_secs}s | timeout: {cfg.timeout_ms:.0f}ms | history: {cfg.history}"
    )


@app.command()
def once(config: Optional[str] = typer.Option(None, help="Path to pinggrid.yaml"),
         address: Optional[str] = typer.Option(None, help="Target host or IP"),
         count: Optional[int] = typer.Option(None, help="Pings per batch"),
         timeout: Optional[float] = typer.Option(None, help="Per-ping timeout in milliseconds")):
    """Run a single probe batch and print its summary."""
    from history import HistoryEntry

    cfg = load_config(config, address=address, count=count, timeout_ms=timeout)
    try:
        attempts = asyncio.run(probe_batch(cfg.address, cfg.count, cfg.timeout_ms, IPFamily(cfg.family)))
    except ProbeError as e:
        typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    entry = HistoryEntry.from_attempts(attempts, cfg.timeout_ms)
    color = typer.colors.GREEN if entry.loss() == 0 else typer.colors.RED
    typer.secho(f"📡 {cfg.address}:{entry.verbose_label()}", fg=color)


if __name__ == "__main__":
    app()
