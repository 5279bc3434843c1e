"""
inspector.py
Workload discovery against the Docker CLI (read-only):
- Enumerate running containers by name
- Inspect one container: image, environment, mounted volumes and binds
- Plan table for `backup --list`
"""

from __future__ import annotations
import json, logging
from typing import Any, Dict, List
from .types import Workload, Resource, ResourceKind, EngineKind
from .errors import InspectionError, RuntimeUnavailableError
from .util import run
from .classify import classify

log = logging.getLogger(__name__)


def list_workloads(runner=run, docker: str = "docker") -> List[str]:
    proc = runner([docker, "ps", "--format", "{{.Names}}"], capture=True)
    if not proc.ok:
        raise RuntimeUnavailableError(
            f"`{docker} ps` failed (rc={proc.rc}): {proc.err_text or 'no output'}"
        )
    seen = []
    for line in proc.text.splitlines():
        name = line.strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def parse_env(entries: List[str] | None) -> Dict[str, str]:
    """KEY=VALUE list -> dict; value keeps any further '='; entries without '=' are dropped."""
    env: Dict[str, str] = {}
    for entry in entries or []:
        if "=" not in entry:
            continue
        k, v = entry.split("=", 1)
        if k:
            env[k] = v
    return env


def parse_mounts(mounts: List[Dict[str, Any]] | None) -> List[Resource]:
    out: List[Resource] = []
    for m in mounts or []:
        t = m.get("Type")
        if t == "volume" and m.get("Name"):
            out.append(Resource(ResourceKind.VOLUME, m["Name"]))
        elif t == "bind" and m.get("Source"):
            out.append(Resource(ResourceKind.BIND, m["Source"]))
    return out


def inspect(workload_id: str, runner=run, docker: str = "docker") -> Workload:
    proc = runner([docker, "inspect", workload_id], capture=True)
    if not proc.ok:
        raise InspectionError(workload_id, proc.err_text or f"rc={proc.rc}")
    try:
        data = json.loads(proc.text)
    except json.JSONDecodeError as e:
        raise InspectionError(workload_id, f"inspect output is not valid JSON: {e}")
    if not isinstance(data, list) or not data:
        raise InspectionError(workload_id, "no such container")
    info = data[0]
    cfg = info.get("Config") or {}
    return Workload(
        id=workload_id,
        image=cfg.get("Image") or "",
        env=parse_env(cfg.get("Env")),
        resources=parse_mounts(info.get("Mounts")),
    )


def print_plan(rows: List[Dict[str, Any]]) -> None:
    """Human-readable summary for `backup --list`."""
    print(f"{'WORKLOAD':<28} {'IMAGE':<32} {'ENGINE':<9} {'VOLS':>4} {'BINDS':>5} {'STATUS':<20}")
    for r in rows:
        print(
            f"{r['id']:<28} {r['image'][:32]:<32} {r['engine']:<9} "
            f"{r['volumes']:>4} {r['binds']:>5} {r['status']:<20}"
        )


def plan_rows(workload_ids: List[str], runner=run, docker: str = "docker") -> List[Dict[str, Any]]:
    rows = []
    for wid in workload_ids:
        try:
            w = inspect(wid, runner=runner, docker=docker)
        except InspectionError as e:
            rows.append({"id": wid, "image": "-", "engine": "-", "volumes": 0, "binds": 0,
                         "status": f"skip:{e.reason[:14]}"})
            continue
        engine = classify(w.image)
        if engine is EngineKind.REDIS:
            status = "archive (no dump)"
        elif engine.is_database:
            status = "dump+archive"
        else:
            status = "archive"
        rows.append({"id": wid, "image": w.image, "engine": engine.value,
                     "volumes": len(w.volumes), "binds": len(w.binds), "status": status})
    return rows
