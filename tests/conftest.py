"""
Pytest configuration and shared fixtures.
"""
import json
import pytest
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from apprip.types import Config
from apprip.util import Proc


@dataclass
class Reply:
    rc: int = 0
    stdout: bytes = b""
    stderr: bytes = b""


@dataclass
class Call:
    line: str
    argv: list
    env: Optional[dict]
    stdout_path: Optional[Path]
    dry: bool


class FakeRunner:
    """
    Stand-in for apprip.util.run. Rules match a substring of the joined
    command, first registered rule wins. A rule with several replies hands
    them out in order and repeats the last one. Unmatched commands succeed
    with empty output. Successful `tar czf` commands create their archive.
    """

    def __init__(self):
        self.calls: List[Call] = []
        self._rules = []

    def on(self, needle: str, *replies: Reply):
        self._rules.append((needle, list(replies) or [Reply()]))
        return self

    def __call__(self, cmd, capture=False, env=None, dry=False, stdout_path=None, timeout=None):
        argv = [cmd] if isinstance(cmd, str) else [str(c) for c in cmd]
        line = " ".join(argv)
        self.calls.append(Call(line, argv, env, stdout_path, dry))
        if dry:
            return Proc(0)
        reply = Reply()
        for needle, replies in self._rules:
            if needle in line:
                reply = replies.pop(0) if len(replies) > 1 else replies[0]
                break
        if reply.rc == 0 and "czf" in argv:
            _touch_archive(argv)
        if stdout_path is not None:
            Path(stdout_path).write_bytes(reply.stdout)
            return Proc(reply.rc, b"", reply.stderr)
        return Proc(reply.rc, reply.stdout, reply.stderr)

    def lines(self, needle: str) -> List[str]:
        return [c.line for c in self.calls if needle in c.line]


def _touch_archive(argv: list) -> None:
    out = argv[argv.index("czf") + 1]
    if out.startswith("/backup/"):
        mounts = [argv[i + 1] for i, a in enumerate(argv[:-1]) if a == "-v"]
        host = next(m.rsplit(":", 1)[0] for m in mounts if m.endswith(":/backup"))
        out = str(Path(host) / out[len("/backup/"):])
    Path(out).write_bytes(b"\x1f\x8b fake archive")


class FakeSink:
    """Records submissions and snapshots the catalog before the workdir is removed."""

    def __init__(self, fail: bool = False, archive_name: str = "apps.pxar"):
        self.fail = fail
        self.archive_name = archive_name
        self.calls = []
        self.catalog = None
        self.files = []

    def backup(self, sources, dry=False):
        from apprip.errors import SinkError
        self.calls.append(dict(sources))
        wd = Path(sources[self.archive_name])
        self.catalog = json.loads((wd / "metadata.json").read_text())
        self.catalog_mode = (wd / "metadata.json").stat().st_mode & 0o777
        self.files = sorted(str(p.relative_to(wd)) for p in wd.rglob("*") if p.is_file())
        if self.fail:
            raise SinkError("PBS backup failed (rc=1): connection refused")
        return "host/testhost/2025-01-22T15:19:17Z"


def docker_inspect(image, env=None, volumes=(), binds=()) -> bytes:
    mounts = [{"Type": "volume", "Name": v, "Destination": f"/data/{v}"} for v in volumes]
    mounts += [{"Type": "bind", "Source": b, "Destination": b} for b in binds]
    doc = [{
        "Config": {"Image": image, "Env": [f"{k}={v}" for k, v in (env or {}).items()]},
        "Mounts": mounts,
    }]
    return json.dumps(doc).encode()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def fake_sink():
    return FakeSink()


@pytest.fixture
def temp_config_file(tmp_path):
    """Create a temporary configuration file for testing."""
    toml_content = f"""
[pbs]
server = "pbs.example.net"
port = 8007
datastore = "apps"
token_user = "backup@pbs"
token_name = "apprip"
token_secret = "s3cret-token"
keyfile = "{tmp_path / 'pbs.key'}"

[backup]
work_dir = "{tmp_path / 'work'}"
archive_name = "apps.pxar"
include_root = true

[databases]
max_attempts = 2
retry_delay = 1

[runtime]
log_level = "DEBUG"
log_dir = ""
lock_file = "{tmp_path / 'apprip.lock'}"
"""
    p = tmp_path / "apprip.toml"
    p.write_text(toml_content)
    return p


@pytest.fixture
def sample_config(tmp_path):
    """Create a sample configuration object for testing."""
    return Config(
        pbs_repository="backup@pbs!apprip@pbs.example.net:8007:apps",
        pbs_password="s3cret-token",
        pbs_fingerprint=None,
        pbs_keyfile=None,
        pbs_client="proxmox-backup-client",
        work_dir=tmp_path / "work",
        archive_name="apps.pxar",
        include_root=False,
        skip_lost_and_found=True,
        exclusions=["/proc", "/sys"],
        docker="docker",
        helper_image="busybox",
        skip_bind_prefixes=["/var/run", "/run", "/proc", "/sys"],
        dump_attempts=3,
        dump_retry_delay=5,
        redis_save=True,
        redis_timeout=60,
        log_level="DEBUG",
        log_dir=None,
        lock_file=tmp_path / "apprip.lock",
        restore_dir=tmp_path / "restore",
    )
