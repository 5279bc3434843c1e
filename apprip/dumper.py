"""
dumper.py
Per-engine dump procedures and the registry that maps an engine kind to one.

Each procedure runs the engine's own dump tool inside the workload via
`docker exec` and streams stdout into a file restorable without the live
workload:
  postgres -> pg_dump custom format (.dump)
  mysql    -> mysqldump logical SQL (.sql)
  mongo    -> mongodump archive (.archive)
Redis is never dumped here; trigger_redis_save only asks the engine to
persist its own snapshot.
"""

from __future__ import annotations
import logging, time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .types import DumpArtifact, EngineKind, Workload
from .errors import DumpError
from .retry import with_retry, validate_dump, DEFAULT_ATTEMPTS, DEFAULT_DELAY
from .util import run, safe_name, format_bytes

log = logging.getLogger(__name__)


@dataclass
class DumpCommand:
    argv: List[str]
    env: Optional[Dict[str, str]] = None
    label: str = ""


@dataclass(frozen=True)
class DumpStrategy:
    engine: EngineKind
    extension: str
    min_size: int
    build: Callable[[Workload, str], DumpCommand]


def _first(env: Dict[str, str], *keys: str) -> str:
    for k in keys:
        if env.get(k):
            return env[k]
    return ""


def postgres_credentials(env: Dict[str, str]) -> Tuple[str, str]:
    """(user, database); both default to 'postgres'."""
    return env.get("POSTGRES_USER") or "postgres", env.get("POSTGRES_DB") or "postgres"


def mysql_credentials(env: Dict[str, str]) -> Tuple[str, str, Optional[str]]:
    """
    (user, password, database). A missing user or password falls back to root
    with the root password; a missing database means all databases (None).
    """
    user = _first(env, "MYSQL_USER", "MARIADB_USER")
    password = _first(env, "MYSQL_PASSWORD", "MARIADB_PASSWORD")
    if not user or not password:
        user = "root"
        password = _first(env, "MYSQL_ROOT_PASSWORD", "MARIADB_ROOT_PASSWORD")
    db = _first(env, "MYSQL_DATABASE", "MARIADB_DATABASE") or None
    return user, password, db


def mongo_credentials(env: Dict[str, str]) -> Tuple[str, str]:
    return env.get("MONGO_INITDB_ROOT_USERNAME", ""), env.get("MONGO_INITDB_ROOT_PASSWORD", "")


def _postgres_cmd(w: Workload, docker: str) -> DumpCommand:
    user, db = postgres_credentials(w.env)
    return DumpCommand(
        [docker, "exec", w.id, "pg_dump", "-U", user, "-Fc", db],
        label=f"user={user}, db={db}",
    )


def _mysql_cmd(w: Workload, docker: str) -> DumpCommand:
    user, password, db = mysql_credentials(w.env)
    # `-e MYSQL_PWD` without a value forwards it from our environment,
    # keeping the password off the process list.
    argv = [docker, "exec", "-e", "MYSQL_PWD", w.id,
            "mysqldump", "--single-transaction", "-u", user]
    argv.append(db if db else "--all-databases")
    return DumpCommand(argv, env={"MYSQL_PWD": password or ""},
                       label=f"user={user}, db={db or '--all-databases'}")


def _mongo_cmd(w: Workload, docker: str) -> DumpCommand:
    user, password = mongo_credentials(w.env)
    argv = [docker, "exec", w.id, "mongodump", "--archive"]
    if user and password:
        argv += ["-u", user, "-p", password, "--authenticationDatabase", "admin"]
    return DumpCommand(argv, label=f"user={user or '-'}")


STRATEGIES: Dict[EngineKind, DumpStrategy] = {
    EngineKind.POSTGRES: DumpStrategy(EngineKind.POSTGRES, ".dump", 1024, _postgres_cmd),
    EngineKind.MYSQL: DumpStrategy(EngineKind.MYSQL, ".sql", 1024, _mysql_cmd),
    EngineKind.MONGO: DumpStrategy(EngineKind.MONGO, ".archive", 512, _mongo_cmd),
}


def get_strategy(engine: EngineKind) -> Optional[DumpStrategy]:
    return STRATEGIES.get(engine)


def dump_path(out_dir: Path, workload_id: str, engine: EngineKind) -> Optional[Path]:
    """Expected artifact location; the restore side uses the same convention."""
    strategy = get_strategy(engine)
    if strategy is None:
        return None
    return out_dir / f"{safe_name(workload_id)}{strategy.extension}"


def dump_workload(
    workload: Workload,
    engine: EngineKind,
    out_dir: Path,
    runner=run,
    docker: str = "docker",
    max_attempts: int = DEFAULT_ATTEMPTS,
    initial_delay: float = DEFAULT_DELAY,
    sleep=time.sleep,
) -> DumpArtifact:
    strategy = get_strategy(engine)
    if strategy is None:
        raise DumpError(workload.id, engine.value, "no dump procedure for this engine")
    out = dump_path(out_dir, workload.id, engine)
    cmd = strategy.build(workload, docker)
    log.info("  Dumping %s for %s: %s", engine.value, workload.id, cmd.label)

    def attempt() -> DumpArtifact:
        proc = runner(cmd.argv, env=cmd.env, stdout_path=out)
        if not proc.ok:
            out.unlink(missing_ok=True)
            raise DumpError(workload.id, engine.value, proc.err_text or f"rc={proc.rc}")
        result = validate_dump(out, strategy.min_size, f"{workload.id}/{engine.value}")
        if not result.accepted:
            out.unlink(missing_ok=True)
            raise DumpError(workload.id, engine.value, f"dump validation failed ({result.value})")
        return DumpArtifact(out, out.stat().st_size, result)

    try:
        artifact = with_retry(
            attempt,
            max_attempts=max_attempts,
            initial_delay=initial_delay,
            sleep=sleep,
            retry_on=(DumpError, OSError),
            what=f"{engine.value} dump of {workload.id}",
        )
    except OSError as e:
        raise DumpError(workload.id, engine.value, str(e)) from e
    out.chmod(0o600)
    log.info("  %s dump: %s", engine.value, format_bytes(artifact.size_bytes))
    return artifact


def _last_line(text: str) -> str:
    lines = text.splitlines()
    return lines[-1].strip() if lines else ""


# redis-cli exits 0 on server-side errors when not attached to a tty
REDIS_ERROR_PREFIXES = ("NOAUTH", "WRONGPASS", "ERR", "(error)")


def redis_error(text: str) -> Optional[str]:
    for line in text.splitlines():
        line = line.strip()
        if line.startswith(REDIS_ERROR_PREFIXES):
            return line
    return None


def trigger_redis_save(
    workload: Workload,
    runner=run,
    docker: str = "docker",
    timeout: float = 60,
    poll: float = 1.0,
    sleep=time.sleep,
    clock=time.monotonic,
) -> bool:
    """
    Best-effort: ask Redis to persist when persistence is configured.
    Returns True when a save was requested. Never raises, never writes a file.
    """
    password = _first(workload.env, "REDIS_PASSWORD")
    if password:
        # forwarded by name so the password stays off the process list
        cli = [docker, "exec", "-e", "REDISCLI_AUTH", workload.id, "redis-cli"]
        auth = {"REDISCLI_AUTH": password}
    else:
        cli = [docker, "exec", workload.id, "redis-cli"]
        auth = None

    def redis(*args: str):
        return runner(cli + list(args), capture=True, env=auth, timeout=10)

    log.info("  Checking Redis persistence in %s", workload.id)
    save_proc = redis("CONFIG", "GET", "save")
    aof_proc = redis("CONFIG", "GET", "appendonly")
    err = redis_error(save_proc.text) or redis_error(aof_proc.text)
    if err:
        log.warning("  Redis persistence unknown in %s (%s) - no save requested", workload.id, err)
        return False
    save_cfg = _last_line(save_proc.text)
    aof_cfg = _last_line(aof_proc.text) if aof_proc.ok else "no"
    has_rdb = bool(save_cfg) and save_cfg not in ('""', "''")
    has_aof = aof_cfg == "yes"
    if not has_rdb and not has_aof:
        log.info("  Redis persistence not enabled in %s - skipping (ephemeral cache)", workload.id)
        return False

    if has_rdb:
        log.info("  Triggering BGSAVE in %s", workload.id)
        bgsave = redis("BGSAVE")
        if bgsave.ok and not redis_error(bgsave.text):
            deadline = clock() + timeout
            while True:
                info = redis("INFO", "persistence").text
                if redis_error(info):
                    log.warning("  Cannot read Redis persistence state in %s: %s",
                                workload.id, redis_error(info))
                    break
                if "rdb_bgsave_in_progress:1" not in info:
                    log.info("  Redis BGSAVE completed for %s", workload.id)
                    break
                if clock() >= deadline:
                    log.warning("  Redis BGSAVE timed out after %ss in %s - continuing anyway",
                                timeout, workload.id)
                    break
                sleep(poll)
        else:
            log.warning("  Failed to trigger Redis BGSAVE in %s", workload.id)

    if has_aof:
        log.info("  Triggering BGREWRITEAOF in %s", workload.id)
        rewrite = redis("BGREWRITEAOF")
        if not rewrite.ok or redis_error(rewrite.text):
            log.warning("  Failed to trigger Redis BGREWRITEAOF in %s", workload.id)
    return True
