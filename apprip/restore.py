"""
restore.py
Restore guidance from a catalog plus an extracted archive directory.

Nothing here is executed against workloads: every step is text for an
operator, and every step is paired with the on-disk artifact it refers to
(or flagged as missing when that artifact is absent).
"""

from __future__ import annotations
import logging, tarfile
from pathlib import Path
from typing import Any, Dict, List, Optional
from .types import Config, EngineKind, RestoreStep
from .errors import CatalogError, SinkError
from .catalog import CATALOG_NAME, load_catalog
from .dumper import dump_path, postgres_credentials, mysql_credentials, mongo_credentials
from .archiver import archive_name
from .orchestrator import WORKDIR_PREFIX
from .sink import PBSSink
from .util import run, format_bytes, utc_stamp

log = logging.getLogger(__name__)

RULE = "=" * 46


def locate_extracted_dir(dest: Path) -> Path:
    """The archive may land as an apps-backup-* subdirectory or directly in dest."""
    if (dest / CATALOG_NAME).is_file():
        return dest
    for sub in sorted(dest.glob(f"{WORKDIR_PREFIX}*")):
        if (sub / CATALOG_NAME).is_file():
            return sub
    return dest


def _engine(entry: Dict[str, Any]) -> EngineKind:
    try:
        return EngineKind(entry.get("db_type") or "none")
    except ValueError:
        return EngineKind.NONE


def _database_step(wid: str, engine: EngineKind, env: Dict[str, str], artifact: Path) -> RestoreStep:
    if engine is EngineKind.POSTGRES:
        user, db = postgres_credentials(env)
        title = f"PostgreSQL ({wid})"
        lines = [
            f"cat {artifact} | docker exec -i <container> \\",
            "  pg_restore --verbose --clean --no-acl --no-owner \\",
            f"  -U {user} -d {db}",
            f"Credentials from backup: user={user}, db={db}",
        ]
    elif engine is EngineKind.MYSQL:
        user, password, db = mysql_credentials(env)
        title = f"MySQL/MariaDB ({wid})"
        target = db or ""
        lines = [
            f"cat {artifact} | docker exec -i <container> \\",
            f"  mysql -u {user} -p<password> {target}".rstrip(),
            f"Credentials from backup: user={user}, password={password or '(none recorded)'}, "
            f"db={db or '(all databases)'}",
        ]
    else:
        user, password = mongo_credentials(env)
        title = f"MongoDB ({wid})"
        auth = f" -u {user} -p <password> --authenticationDatabase admin" if user else ""
        lines = [
            f"cat {artifact} | docker exec -i <container> \\",
            f"  mongorestore --archive{auth}",
        ]
        if user:
            lines.append(f"Credentials from backup: user={user}, password={password or '(none recorded)'}")
    return RestoreStep("database", title, lines, workload=wid, identity=wid, artifact=artifact)


def generate(
    catalog: Dict[str, Any],
    extracted_dir: Path,
    only_volume: Optional[str] = None,
    only_bind: Optional[str] = None,
    only_db: Optional[str] = None,
) -> List[RestoreStep]:
    """Ordered steps: databases, volumes, binds, then the environment pointer."""
    selective = any((only_volume, only_bind, only_db))
    db_dir = extracted_dir / "databases"
    steps: List[RestoreStep] = []

    for wid, entry in catalog["containers"].items():
        if not entry.get("is_database"):
            continue
        if selective and wid != only_db:
            continue
        engine = _engine(entry)
        if engine is EngineKind.REDIS:
            steps.append(RestoreStep(
                "info", f"Redis ({wid})",
                ["No dump taken (treated as cache); persisted data, if any, is in its volumes."],
                workload=wid, identity=wid, present=False,
            ))
            continue
        artifact = dump_path(db_dir, wid, engine)
        if artifact is None:
            continue
        if artifact.is_file():
            steps.append(_database_step(wid, engine, entry.get("env") or {}, artifact))
        else:
            log.warning("Dump for %s (%s) not found at %s", wid, engine.value, artifact)
            steps.append(RestoreStep(
                "missing", f"MISSING {engine.value} dump ({wid})",
                [f"Expected {artifact} but it is not in the extracted backup."],
                workload=wid, identity=wid, artifact=artifact, present=False,
            ))

    for vol in catalog["backed_up_volumes"]:
        if selective and vol != only_volume:
            continue
        artifact = extracted_dir / "volumes" / archive_name(vol)
        if not artifact.is_file():
            steps.append(RestoreStep(
                "missing", f"MISSING volume archive ({vol})",
                [f"Expected {artifact} but it is not in the extracted backup."],
                identity=vol, artifact=artifact, present=False,
            ))
            continue
        steps.append(RestoreStep("volume", f"Volume {vol}", [
            f"docker volume create {vol}",
            "docker run --rm \\",
            f"  -v {vol}:/volume \\",
            f"  -v {artifact.parent}:/backup \\",
            f"  busybox sh -c 'cd /volume && tar xzf /backup/{artifact.name}'",
        ], identity=vol, artifact=artifact))

    for bind in catalog["backed_up_binds"]:
        if selective and bind != only_bind:
            continue
        artifact = extracted_dir / "binds" / archive_name(bind)
        if not artifact.is_file():
            steps.append(RestoreStep(
                "missing", f"MISSING bind mount archive ({bind})",
                [f"Expected {artifact} but it is not in the extracted backup."],
                identity=bind, artifact=artifact, present=False,
            ))
            continue
        target = bind_target(bind, artifact)
        steps.append(RestoreStep("bind", f"Bind mount {bind}", [
            f"mkdir -p {target}",
            f"tar xzf {artifact} -C {target}",
        ], identity=bind, artifact=artifact))

    meta = extracted_dir / CATALOG_NAME
    steps.append(RestoreStep("env", "Container environment variables", [
        "All container environment variables (including credentials) are stored in:",
        f"  {meta}",
        f"View with: jq '.containers[\"<container>\"].env' {meta}",
    ], artifact=meta, present=meta.is_file()))
    return steps


def bind_target(bind: str, artifact: Path) -> str:
    """
    Directory binds are archived relative to the directory ('./...'), file
    binds relative to their parent; pick the extraction target accordingly.
    """
    try:
        with tarfile.open(artifact, "r:gz") as tf:
            first = tf.next()
    except (tarfile.TarError, OSError):
        return bind
    if first is None or first.name in (".", "./") or first.name.startswith("./"):
        return bind
    return str(Path(bind).parent)


def metadata_summary(catalog: Dict[str, Any]) -> List[str]:
    lines = [
        f"Generated: {catalog['generated']} on {catalog['hostname']}",
        f"Containers: {len(catalog['containers'])}",
        f"Volumes: {len(catalog['backed_up_volumes'])}",
        f"Bind mounts: {len(catalog['backed_up_binds'])}",
        "Database containers:",
    ]
    dbs = [f"  {wid}: {e['db_type']}" for wid, e in catalog["containers"].items() if e.get("is_database")]
    return lines + (dbs or ["  (none)"])


def list_artifacts(extracted_dir: Path) -> List[str]:
    out = []
    for sub, label in (("volumes", "Volumes"), ("databases", "Database dumps"), ("binds", "Bind mounts")):
        out.append(f"{label}:")
        d = extracted_dir / sub
        files = sorted(p for p in d.iterdir() if p.is_file()) if d.is_dir() else []
        out += [f"  {p.name}  {format_bytes(p.stat().st_size)}" for p in files] or ["  (none)"]
    return out


def render_guide(steps: List[RestoreStep], extracted_dir: Path) -> str:
    out = [RULE, "     APPLICATION RESTORATION GUIDE", RULE, "",
           f"All backup artifacts extracted to: {extracted_dir}", ""]
    for n, step in enumerate(steps, 1):
        out.append(f"{n}. {step.title}")
        out += [f"     {line}" for line in step.lines]
        out.append("")
    missing = [s for s in steps if s.kind == "missing"]
    if missing:
        out.append(f"WARNING: {len(missing)} expected artifact(s) missing from this backup.")
        out.append("")
    out.append(RULE)
    return "\n".join(out)


def run_restore(
    cfg: Config,
    snapshot: Optional[str],
    dest: Optional[Path] = None,
    from_dir: Optional[Path] = None,
    metadata_only: bool = False,
    only_volume: Optional[str] = None,
    only_bind: Optional[str] = None,
    only_db: Optional[str] = None,
    runner=run,
    sink=None,
) -> int:
    if from_dir is not None:
        extracted = locate_extracted_dir(from_dir)
    else:
        dest = dest or cfg.restore_dir / f"apps-restore-{utc_stamp()}"
        sink = sink if sink is not None else PBSSink(cfg, runner=runner)
        try:
            sink.restore(snapshot, cfg.archive_name, dest)
        except SinkError as e:
            log.error("%s", e)
            return 1
        log.info("Backup extracted successfully")
        extracted = locate_extracted_dir(dest)

    try:
        catalog = load_catalog(extracted / CATALOG_NAME)
    except CatalogError as e:
        log.error("Metadata file not usable: %s", e)
        return 1

    print("\n=== Backup Metadata ===")
    print("\n".join(metadata_summary(catalog)))
    print("=======================\n")
    if metadata_only:
        log.info("Metadata-only mode - skipping restore guide")
        log.info("Extracted files available at: %s", extracted)
        return 0

    print("=== Extracted Files ===")
    print("\n".join(list_artifacts(extracted)))
    print("=======================\n")
    steps = generate(catalog, extracted, only_volume, only_bind, only_db)
    print(render_guide(steps, extracted))
    log.info("Extracted files location: %s", extracted)
    return 0
