"""
errors.py
Exception taxonomy. Lower layers raise; BackupRun decides what is fatal.

Transient:      InspectionError (skip the workload)
Non-critical:   ArchiveError (caught by the archiver, logged, resource omitted)
Critical:       DumpError, CatalogError, SinkError (abort the run)
"""
from __future__ import annotations


class AppripError(Exception):
    """Base class for all apprip failures."""


class ConfigError(AppripError):
    pass


class InspectionError(AppripError):
    """Workload vanished (or became unreadable) between enumeration and inspection."""

    def __init__(self, workload_id: str, reason: str):
        super().__init__(f"cannot inspect {workload_id}: {reason}")
        self.workload_id = workload_id
        self.reason = reason


class RuntimeUnavailableError(AppripError):
    """The container runtime could not be queried at all."""


class DumpError(AppripError):
    def __init__(self, workload_id: str, engine: str, reason: str):
        super().__init__(f"{engine} dump failed for {workload_id}: {reason}")
        self.workload_id = workload_id
        self.engine = engine
        self.reason = reason


class ArchiveError(AppripError):
    def __init__(self, identity: str, reason: str):
        super().__init__(f"archive failed for {identity}: {reason}")
        self.identity = identity
        self.reason = reason


class CatalogError(AppripError):
    pass


class SinkError(AppripError):
    pass


class LockError(AppripError):
    pass


class RunInterrupted(AppripError):
    """Raised from a signal handler so scoped cleanup still runs."""

    def __init__(self, signum: int):
        super().__init__(f"interrupted by signal {signum}")
        self.signum = signum
