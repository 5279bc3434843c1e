"""
config.py
Load and validate configuration from TOML (Python 3.11+ tomllib).
Search order:
  1) explicit --config path
  2) adjacent DEFAULT_CONFIG_PATH (bundle root / 'apprip.toml')
  3) /etc/apprip.toml
"""

from __future__ import annotations
import os
import tomllib
from pathlib import Path
from typing import Any, Dict
from .types import Config
from .bundle import DEFAULT_CONFIG_PATH, SYSTEM_CONFIG_PATH, bundled_tool
from .errors import ConfigError

DEFAULT_EXCLUSIONS = [
    "/proc", "/sys", "/dev", "/tmp", "/run", "/var/tmp", "/var/cache/apt",
    "/lost+found", "/mnt", "/media", "/swapfile", "/swap.img",
]
DEFAULT_SKIP_BIND_PREFIXES = ["/var/run", "/run", "/proc", "/sys"]


def _gv(d: Dict[str, Any], path: list[str], default=None):
    cur = d
    for k in path:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def _load_toml(path: Path) -> Dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def find_config(path_arg: str | None) -> Path:
    """Pick the best config path based on CLI arg and availability."""
    if path_arg:
        p = Path(path_arg)
        if not p.exists():
            raise FileNotFoundError(f"Specified config file does not exist: {path_arg}")
        return p
    p = Path(DEFAULT_CONFIG_PATH)
    if p.exists():
        return p
    p = Path(SYSTEM_CONFIG_PATH)
    if not p.exists():
        raise FileNotFoundError(f"No config found at {DEFAULT_CONFIG_PATH} or {SYSTEM_CONFIG_PATH}")
    return p


def build_repository(pbs: Dict[str, Any]) -> str:
    """
    PBS repository string: explicit `repository`, else
    '<token_user>!<token_name>@<server>:<port>:<datastore>'.
    """
    if pbs.get("repository"):
        return str(pbs["repository"])
    server = pbs.get("server")
    datastore = pbs.get("datastore")
    if not server or not datastore:
        return ""
    user = pbs.get("token_user", "")
    if pbs.get("token_name"):
        user = f"{user}!{pbs['token_name']}"
    port = pbs.get("port", 8007)
    prefix = f"{user}@" if user else ""
    return f"{prefix}{server}:{port}:{datastore}"


def _int(value, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}")


def _float(value, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}")


def load_config(path: Path) -> Config:
    cfg = _load_toml(path)

    def gv(keys, default=None):
        return _gv(cfg, keys, default)

    keyfile = gv(["pbs", "keyfile"])
    log_dir = gv(["runtime", "log_dir"], "/var/log/apprip")
    attempts = _int(gv(["databases", "max_attempts"], 3), "databases.max_attempts")
    if attempts < 1:
        raise ConfigError("databases.max_attempts must be at least 1")

    return Config(
        pbs_repository=build_repository(gv(["pbs"], {}) or {}),
        pbs_password=gv(["pbs", "token_secret"]) or os.environ.get("PBS_PASSWORD"),
        pbs_fingerprint=gv(["pbs", "fingerprint"]),
        pbs_keyfile=Path(keyfile) if keyfile else None,
        pbs_client=gv(["pbs", "client"]) or bundled_tool("proxmox-backup-client"),
        work_dir=Path(gv(["backup", "work_dir"], "/tmp")),
        archive_name=gv(["backup", "archive_name"], "apps.pxar"),
        include_root=bool(gv(["backup", "include_root"], False)),
        skip_lost_and_found=bool(gv(["backup", "skip_lost_and_found"], True)),
        exclusions=list(gv(["backup", "exclusions"], DEFAULT_EXCLUSIONS)),
        docker=gv(["docker", "binary"], "docker"),
        helper_image=gv(["docker", "helper_image"], "busybox"),
        skip_bind_prefixes=list(gv(["docker", "skip_bind_prefixes"], DEFAULT_SKIP_BIND_PREFIXES)),
        dump_attempts=attempts,
        dump_retry_delay=_float(gv(["databases", "retry_delay"], 5), "databases.retry_delay"),
        redis_save=bool(gv(["databases", "redis_save"], True)),
        redis_timeout=_int(gv(["databases", "redis_timeout"], 60), "databases.redis_timeout"),
        log_level=gv(["runtime", "log_level"], "INFO"),
        log_dir=Path(log_dir) if log_dir else None,
        lock_file=Path(gv(["runtime", "lock_file"], "/run/apprip.lock")),
        restore_dir=Path(gv(["restore", "dest_dir"], "/tmp")),
    )
