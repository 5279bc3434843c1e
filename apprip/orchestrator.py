"""
orchestrator.py
Coordinates one backup run, strictly sequentially:
  - Enumerate running workloads
  - For each (discovery order): inspect -> classify -> dump (if a database)
    -> archive volumes/binds with dedup -> append to the catalog
  - Finalize the catalog (metadata.json, 0600)
  - Hand the working directory to the archival sink as one named archive

State: enumerating -> processing -> finalizing -> handing_off -> done,
or aborted on a dump exhaustion, a catalog failure or a sink failure.
The working directory is removed on every exit path.
"""

from __future__ import annotations
import logging, time
from pathlib import Path
from typing import Dict, List, Optional
from .types import Config, EngineKind, ResourceKind, RunResult, RunState, Workload
from .errors import (
    CatalogError, DumpError, InspectionError, RuntimeUnavailableError, SinkError,
)
from .util import run, scoped_workdir, signals_raise, utc_stamp, format_bytes
from .bundle import prepend_bin_to_path
from .inspector import inspect, list_workloads, plan_rows, print_plan
from .classify import classify
from .dumper import dump_workload, trigger_redis_save
from .archiver import ResourceArchiver
from .catalog import CATALOG_NAME, begin
from .sink import PBSSink

log = logging.getLogger(__name__)

WORKDIR_PREFIX = "apps-backup-"


class BackupRun:
    """One run. Dedup maps and catalog builder live here, never in module state."""

    def __init__(self, cfg: Config, runner=run, sink=None, sleep=time.sleep,
                 dry: bool = False, hostname: Optional[str] = None):
        self.cfg = cfg
        self.runner = runner
        self.sink = sink if sink is not None else PBSSink(cfg, runner=runner)
        self.sleep = sleep
        self.dry = dry
        self.hostname = hostname
        self.state = RunState.ENUMERATING
        self.result = RunResult(state=RunState.ENUMERATING)
        self.workdir: Optional[Path] = None

    def _enter(self, state: RunState) -> None:
        log.debug("state %s -> %s", self.state.value, state.value)
        self.state = state
        self.result.state = state

    def execute(self) -> RunResult:
        try:
            with signals_raise():
                with scoped_workdir(self.cfg.work_dir, f"{WORKDIR_PREFIX}{utc_stamp()}-") as wd:
                    self.workdir = wd
                    self._run(wd)
        except (RuntimeUnavailableError, DumpError, CatalogError, SinkError) as e:
            self._enter(RunState.ABORTED)
            self.result.error = str(e)
            log.error("Run aborted: %s", e)
        except BaseException as e:
            # signals and Ctrl-C still end in a terminal state before propagating
            self._enter(RunState.ABORTED)
            self.result.error = str(e) or type(e).__name__
            log.error("Run aborted: %s", self.result.error)
            raise
        return self.result

    def _run(self, wd: Path) -> None:
        volumes_dir, binds_dir, db_dir = wd / "volumes", wd / "binds", wd / "databases"
        for d in (volumes_dir, binds_dir, db_dir):
            d.mkdir(parents=True, exist_ok=True)

        log.info("Discovering Docker containers and volumes...")
        ids = list_workloads(self.runner, self.cfg.docker)
        log.info("Found %d running containers", len(ids))

        self._enter(RunState.PROCESSING)
        catalog = begin(hostname=self.hostname)
        archiver = ResourceArchiver(
            volumes_dir, binds_dir, runner=self.runner, docker=self.cfg.docker,
            helper_image=self.cfg.helper_image, skip_prefixes=self.cfg.skip_bind_prefixes,
        )
        for wid in ids:
            self._process(wid, catalog, archiver, db_dir)

        self._enter(RunState.FINALIZING)
        catalog.finalize(wd / CATALOG_NAME)
        self.result.workloads = len(catalog)
        self.result.volumes = len(archiver.volumes)
        self.result.binds = len(archiver.binds)
        self._summary()

        self._enter(RunState.HANDING_OFF)
        sources: Dict[str, str] = {}
        if self.cfg.include_root:
            sources["root.pxar"] = "/"
        sources[self.cfg.archive_name] = str(wd)
        for name, path in sources.items():
            log.info("  - %s: %s", name, path)
        self.result.snapshot_id = self.sink.backup(sources, dry=self.dry)
        self._enter(RunState.DONE)

    def _process(self, wid: str, catalog, archiver: ResourceArchiver, db_dir: Path) -> None:
        log.info("Processing container: %s", wid)
        try:
            w: Workload = inspect(wid, runner=self.runner, docker=self.cfg.docker)
        except InspectionError as e:
            log.warning("  Skipping %s: %s", wid, e.reason)
            return

        engine = classify(w.image)
        if engine is EngineKind.REDIS:
            log.info("  Redis detected in %s - skipping dump (ephemeral cache)", wid)
            if self.cfg.redis_save:
                trigger_redis_save(w, runner=self.runner, docker=self.cfg.docker,
                                   timeout=self.cfg.redis_timeout, sleep=self.sleep)
        elif engine.is_database:
            log.info("  Database detected: %s", engine.value)
            artifact = dump_workload(
                w, engine, db_dir, runner=self.runner, docker=self.cfg.docker,
                max_attempts=self.cfg.dump_attempts, initial_delay=self.cfg.dump_retry_delay,
                sleep=self.sleep,
            )
            self.result.dumps.append(artifact)

        volumes: List[str] = []
        binds: List[str] = []
        skipped = []
        for res in w.resources:
            if archiver.archive(res, workload_id=wid) is None:
                skipped.append({
                    "kind": res.kind.value,
                    "identity": res.identity,
                    "reason": archiver.skipped.get(res.identity, "not archived"),
                })
                continue
            target = volumes if res.kind is ResourceKind.VOLUME else binds
            if res.identity not in target:
                target.append(res.identity)

        catalog.add_workload(wid, w.image, volumes, binds, w.env, engine, skipped=skipped)

    def _summary(self) -> None:
        total = sum(a.size_bytes for a in self.result.dumps)
        log.info("Backup summary:")
        log.info("  Containers processed: %d", self.result.workloads)
        log.info("  Volumes backed up: %d", self.result.volumes)
        log.info("  Bind mounts backed up: %d", self.result.binds)
        log.info("  Database dumps: %d (%s)", len(self.result.dumps), format_bytes(total))


def run_plan(cfg: Config, list_only: bool, dry: bool, runner=run, sink=None) -> int:
    prepend_bin_to_path()

    if list_only:
        try:
            ids = list_workloads(runner, cfg.docker)
        except RuntimeUnavailableError as e:
            print(f"[error] {e}")
            return 1
        print_plan(plan_rows(ids, runner=runner, docker=cfg.docker))
        return 0

    sink = sink if sink is not None else PBSSink(cfg, runner=runner)
    if not dry:
        try:
            sink.check_keyfile()
        except SinkError as e:
            log.error("%s", e)
            return 1
        if not sink.check_connection():
            log.error("Cannot connect to PBS server")
            return 1

    log.info("Starting applications backup (repository %s)", cfg.pbs_repository)
    started = time.time()
    result = BackupRun(cfg, runner=runner, sink=sink, dry=dry).execute()
    if not result.ok:
        log.error("Backup failed after %.1fs: %s", time.time() - started, result.error)
        return 1
    log.info(
        "Backup completed in %.1fs: %d volumes, %d bind mounts, %d database dumps%s",
        time.time() - started, result.volumes, result.binds, len(result.dumps),
        f" (snapshot {result.snapshot_id})" if result.snapshot_id else "",
    )
    return 0
