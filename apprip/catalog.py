"""
catalog.py
In-memory catalog builder, serialized once at finalize():

  {
    "generated": ISO timestamp,
    "hostname": fqdn,
    "containers": {id: {image, volumes[], binds[], env{}, is_database, db_type|null, skipped[]}},
    "backed_up_volumes": [...],
    "backed_up_binds": [...]
  }

finalize() writes an owner-only temp file, parses it back, checks structure,
then renames it into place. The document holds plaintext credentials from
workload environments, hence mode 0600.
"""

from __future__ import annotations
import json, logging, os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .types import EngineKind
from .errors import CatalogError
from .util import host_fqdn, utc_now_iso

log = logging.getLogger(__name__)

CATALOG_NAME = "metadata.json"
CATALOG_MODE = 0o600
TOP_LEVEL_KEYS = ("generated", "hostname", "containers", "backed_up_volumes", "backed_up_binds")
ENTRY_KEYS = ("image", "volumes", "binds", "env", "is_database", "db_type")


class CatalogBuilder:
    def __init__(self, hostname: Optional[str] = None, generated: Optional[str] = None):
        self.hostname = hostname or host_fqdn()
        self.generated = generated or utc_now_iso()
        self._containers: Dict[str, Dict[str, Any]] = {}
        self._volumes: Dict[str, None] = {}
        self._binds: Dict[str, None] = {}

    def __len__(self) -> int:
        return len(self._containers)

    def add_workload(
        self,
        workload_id: str,
        image: str,
        volumes: Iterable[str],
        binds: Iterable[str],
        env: Dict[str, str],
        engine: EngineKind,
        skipped: Optional[List[Dict[str, str]]] = None,
    ) -> None:
        if workload_id in self._containers:
            raise CatalogError(f"workload {workload_id} added twice")
        volumes, binds = list(volumes), list(binds)
        self._containers[workload_id] = {
            "image": image,
            "volumes": volumes,
            "binds": binds,
            "env": dict(env),
            "is_database": engine.is_database,
            "db_type": engine.value if engine.is_database else None,
            "skipped": list(skipped or []),
        }
        for v in volumes:
            self._volumes.setdefault(v)
        for b in binds:
            self._binds.setdefault(b)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated": self.generated,
            "hostname": self.hostname,
            "containers": self._containers,
            "backed_up_volumes": list(self._volumes),
            "backed_up_binds": list(self._binds),
        }

    def finalize(self, path: Path) -> Dict[str, Any]:
        """Serialize, validate, atomically promote to `path` with mode 0600."""
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            text = json.dumps(self.to_dict(), indent=2)
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CATALOG_MODE)
            with os.fdopen(fd, "w") as f:
                f.write(text)
            doc = json.loads(tmp.read_text())
            check_structure(doc)
            os.chmod(tmp, CATALOG_MODE)
            os.replace(tmp, path)
        except (OSError, ValueError, TypeError) as e:
            tmp.unlink(missing_ok=True)
            raise CatalogError(f"catalog finalization failed: {e}") from e
        except CatalogError:
            tmp.unlink(missing_ok=True)
            raise
        log.info("Catalog written: %s (%d workloads)", path, len(self._containers))
        return doc


def begin(hostname: Optional[str] = None) -> CatalogBuilder:
    return CatalogBuilder(hostname=hostname)


def check_structure(doc: Any) -> None:
    """Raise CatalogError unless doc has the catalog shape and summary invariants."""
    if not isinstance(doc, dict):
        raise CatalogError("catalog is not an object")
    missing = [k for k in TOP_LEVEL_KEYS if k not in doc]
    if missing:
        raise CatalogError(f"catalog is missing keys: {', '.join(missing)}")
    containers = doc["containers"]
    if not isinstance(containers, dict):
        raise CatalogError("'containers' is not an object")
    used_volumes, used_binds = set(), set()
    for wid, entry in containers.items():
        if not isinstance(entry, dict) or any(k not in entry for k in ENTRY_KEYS):
            raise CatalogError(f"malformed entry for {wid}")
        used_volumes.update(entry["volumes"])
        used_binds.update(entry["binds"])
    vols, binds = doc["backed_up_volumes"], doc["backed_up_binds"]
    if len(set(vols)) != len(vols) or len(set(binds)) != len(binds):
        raise CatalogError("summary lists contain duplicates")
    if set(vols) != used_volumes or set(binds) != used_binds:
        raise CatalogError("summary lists disagree with per-workload resources")


def load_catalog(path: Path) -> Dict[str, Any]:
    try:
        doc = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise CatalogError(f"cannot read catalog {path}: {e}") from e
    check_structure(doc)
    return doc
