"""
types.py
Dataclasses and enums used across modules: Config, Workload, Resource,
DumpArtifact, RestoreStep, RunResult.

These are intentionally lightweight, serializable, and stable for logging.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict


class EngineKind(str, Enum):
    POSTGRES = "postgres"
    MYSQL = "mysql"
    MONGO = "mongo"
    REDIS = "redis"
    NONE = "none"

    @property
    def is_database(self) -> bool:
        return self is not EngineKind.NONE


class ResourceKind(str, Enum):
    VOLUME = "volume"
    BIND = "bind"


class Validation(str, Enum):
    OK = "ok"
    UNDERSIZED = "undersized"  # accepted with a warning
    EMPTY = "empty"
    MISSING = "missing"

    @property
    def accepted(self) -> bool:
        return self in (Validation.OK, Validation.UNDERSIZED)


class RunState(str, Enum):
    ENUMERATING = "enumerating"
    PROCESSING = "processing"
    FINALIZING = "finalizing"
    HANDING_OFF = "handing_off"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class Config:
    # pbs
    pbs_repository: str
    pbs_password: Optional[str]
    pbs_fingerprint: Optional[str]
    pbs_keyfile: Optional[Path]
    pbs_client: str
    # backup
    work_dir: Path
    archive_name: str
    include_root: bool
    skip_lost_and_found: bool
    exclusions: List[str]
    # docker
    docker: str
    helper_image: str
    skip_bind_prefixes: List[str]
    # databases
    dump_attempts: int
    dump_retry_delay: float
    redis_save: bool
    redis_timeout: int
    # runtime
    log_level: str
    log_dir: Optional[Path]
    lock_file: Path
    # restore
    restore_dir: Path


@dataclass
class Resource:
    kind: ResourceKind
    identity: str  # volume name or absolute host path
    artifact: Optional[Path] = None


@dataclass
class Workload:
    id: str
    image: str
    env: Dict[str, str] = field(default_factory=dict)
    resources: List[Resource] = field(default_factory=list)

    @property
    def volumes(self) -> List[Resource]:
        return [r for r in self.resources if r.kind is ResourceKind.VOLUME]

    @property
    def binds(self) -> List[Resource]:
        return [r for r in self.resources if r.kind is ResourceKind.BIND]


@dataclass
class DumpArtifact:
    path: Path
    size_bytes: int
    validation: Validation


@dataclass
class RestoreStep:
    kind: str  # database | volume | bind | missing | info | env
    title: str
    lines: List[str] = field(default_factory=list)
    workload: Optional[str] = None
    identity: Optional[str] = None
    artifact: Optional[Path] = None
    present: bool = True


@dataclass
class RunResult:
    state: RunState
    snapshot_id: Optional[str] = None
    workloads: int = 0
    volumes: int = 0
    binds: int = 0
    dumps: List[DumpArtifact] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state is RunState.DONE
