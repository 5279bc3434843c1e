"""
util.py
Cross-cutting utilities:
- Process execution port (list-of-args or bash -lc string) with dry-run support,
  returning structured (rc, stdout bytes, stderr bytes)
- Logging setup (console + rotating file)
- Scoped working directory and signal-to-exception conversion
- Small helpers: naming, sizes, time/host
"""

from __future__ import annotations
import logging, logging.handlers, os, shlex, shutil, signal, socket, subprocess, sys, tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Optional

from .errors import RunInterrupted

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


@dataclass
class Proc:
    rc: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.rc == 0

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", "replace")

    @property
    def err_text(self) -> str:
        return self.stderr.decode("utf-8", "replace").strip()


def _display(cmd) -> str:
    return cmd if isinstance(cmd, str) else " ".join(shlex.quote(str(c)) for c in cmd)


def run(
    cmd,
    capture: bool = False,
    env: Optional[Dict[str, str]] = None,
    dry: bool = False,
    stdout_path: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> Proc:
    """
    Execute a command.
    - If cmd is a string, run via /bin/bash -lc.
    - env entries are merged over os.environ.
    - stdout_path streams stdout into that file (dumps); otherwise capture=True
      collects stdout/stderr in memory.
    - Never raises for a failing command: missing binary -> rc 127, timeout -> rc 124.
    """
    if isinstance(cmd, str):
        cmd_list = ["/bin/bash", "-lc", cmd]
    else:
        cmd_list = [str(c) for c in cmd]
    if dry:
        print("[dry-run]", _display(cmd))
        return Proc(0)
    merged_env = None
    if env:
        merged_env = os.environ.copy()
        merged_env.update(env)
    log.debug("exec: %s", _display(cmd))
    try:
        if stdout_path is not None:
            with open(stdout_path, "wb") as out:
                cp = subprocess.run(
                    cmd_list, stdout=out, stderr=subprocess.PIPE, env=merged_env, timeout=timeout
                )
            return Proc(cp.returncode, b"", cp.stderr or b"")
        if capture:
            cp = subprocess.run(
                cmd_list, stdout=subprocess.PIPE, stderr=subprocess.PIPE, env=merged_env, timeout=timeout
            )
            return Proc(cp.returncode, cp.stdout or b"", cp.stderr or b"")
        cp = subprocess.run(cmd_list, env=merged_env, timeout=timeout)
        return Proc(cp.returncode)
    except FileNotFoundError as e:
        log.error("command not found: %s", e)
        return Proc(127, b"", str(e).encode())
    except subprocess.TimeoutExpired:
        log.warning("command timed out after %ss: %s", timeout, _display(cmd))
        return Proc(124, b"", b"timeout")


def setup_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> Optional[Path]:
    """Configure the root logger once: stdout always, rotating file when log_dir is usable."""
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in list(root.handlers):
        if getattr(h, "_apprip", False):
            root.removeHandler(h)
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(lvl)
    ch.setFormatter(logging.Formatter(LOG_FORMAT))
    ch._apprip = True
    root.addHandler(ch)
    if not log_dir:
        return None
    try:
        ensure_dir(log_dir)
    except OSError as e:
        log.warning("file logging disabled: %s", e)
        return None
    path = log_dir / "apprip.log"
    fh = logging.handlers.RotatingFileHandler(str(path), maxBytes=10 * 1024 * 1024, backupCount=5)
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter(LOG_FORMAT))
    fh._apprip = True
    root.addHandler(fh)
    return path


@contextmanager
def scoped_workdir(parent: Path, prefix: str) -> Iterator[Path]:
    """Create a private working directory and remove it on every exit path."""
    ensure_dir(parent)
    wd = Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent)))
    try:
        yield wd
    finally:
        if wd.exists():
            log.info("Cleaning up working directory %s", wd)
            shutil.rmtree(wd, ignore_errors=True)


@contextmanager
def signals_raise(*signums: int) -> Iterator[None]:
    """Turn SIGTERM/SIGHUP (by default) into RunInterrupted for the duration of the block."""
    signums = signums or (signal.SIGTERM, signal.SIGHUP)

    def _raise(signum, _frame):
        raise RunInterrupted(signum)

    previous = {}
    try:
        for s in signums:
            previous[s] = signal.signal(s, _raise)
    except ValueError:
        # not the main thread: handlers cannot be installed, run without them
        pass
    try:
        yield
    finally:
        for s, h in previous.items():
            signal.signal(s, h)


def safe_name(identity: str) -> str:
    """Filesystem-safe artifact stem: '/' and ':' become '_'."""
    return identity.replace("/", "_").replace(":", "_")


def format_bytes(n: int) -> str:
    if n < 1024:
        return f"{n}B"
    if n < 1024**2:
        return f"{n // 1024}KB"
    if n < 1024**3:
        return f"{n // 1024**2}MB"
    return f"{n // 1024**3}GB"


def mask(secret: Optional[str]) -> str:
    if not secret:
        return ""
    return secret[:2] + "***" if len(secret) > 4 else "***"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def utc_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")


def ensure_dir(p: Path):
    """Create directory with better error reporting."""
    try:
        p.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        raise PermissionError(f"Cannot create directory {p} - insufficient permissions")
    except OSError as e:
        raise OSError(f"Cannot create directory {p}: {e}")


def host_fqdn() -> str:
    """Equivalent of `hostname -f`, falling back to the node name."""
    try:
        name = socket.getfqdn()
    except OSError:
        name = ""
    return name or os.uname().nodename
