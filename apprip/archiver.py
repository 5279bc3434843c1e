"""
archiver.py
Functions to:
- Build the tar command for a named volume (read-only helper container) or a
  host bind mount (directory contents, or a single file)
- Skip bind mounts under control-plane prefixes (/var/run, /proc, /sys, ...)
- Archive each resource at most once per run (ResourceArchiver dedup maps)
Archive failures are non-fatal: logged, and the resource is left out.
"""

from __future__ import annotations
import hashlib, logging
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional
from .types import Resource, ResourceKind
from .errors import ArchiveError
from .util import run, safe_name, format_bytes

log = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"


def archive_name(identity: str) -> str:
    """
    Artifact file name for a volume or bind identity. safe_name alone is not
    injective ('/srv/app_data' and '/srv/app/data' agree), so a short digest
    of the identity keeps every identity on its own file.
    """
    digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()[:8]
    return f"{safe_name(identity)}-{digest}{ARCHIVE_SUFFIX}"


def is_control_plane(path: str, prefixes: Iterable[str]) -> bool:
    """True when path equals or lies under one of the prefixes (component-wise)."""
    p = PurePosixPath(path)
    for prefix in prefixes:
        pp = PurePosixPath(prefix)
        if p == pp or pp in p.parents:
            return True
    return False


def build_volume_cmd(volume: str, dest_dir: Path, docker: str = "docker",
                     helper_image: str = "busybox") -> List[str]:
    return [
        docker, "run", "--rm",
        "-v", f"{volume}:/volume:ro",
        "-v", f"{dest_dir}:/backup",
        helper_image, "tar", "czf", f"/backup/{archive_name(volume)}", "-C", "/volume", ".",
    ]


def build_bind_cmd(path: Path, out: Path) -> List[str]:
    if path.is_dir():
        return ["tar", "czf", str(out), "-C", str(path), "."]
    return ["tar", "czf", str(out), "-C", str(path.parent), path.name]


def archive_volume(identity: str, dest_dir: Path, runner=run, docker: str = "docker",
                   helper_image: str = "busybox") -> Path:
    out = dest_dir / archive_name(identity)
    proc = runner(build_volume_cmd(identity, dest_dir, docker, helper_image), capture=True)
    if not proc.ok:
        out.unlink(missing_ok=True)
        raise ArchiveError(identity, proc.err_text or f"rc={proc.rc}")
    if not out.is_file():
        raise ArchiveError(identity, "archive was not produced")
    return out


def archive_bind(path: str, dest_dir: Path, runner=run) -> Path:
    src = Path(path)
    if not src.exists():
        raise ArchiveError(path, "source path does not exist")
    out = dest_dir / archive_name(path)
    proc = runner(build_bind_cmd(src, out), capture=True)
    if not proc.ok:
        out.unlink(missing_ok=True)
        raise ArchiveError(path, proc.err_text or f"rc={proc.rc}")
    if not out.is_file():
        raise ArchiveError(path, "archive was not produced")
    return out


class ResourceArchiver:
    """
    Owns the per-run dedup maps (identity -> artifact) for volumes and binds.
    archive() returns the artifact path, or None when the resource was skipped
    or failed. Not safe for concurrent use.
    """

    def __init__(self, volumes_dir: Path, binds_dir: Path, runner=run, docker: str = "docker",
                 helper_image: str = "busybox", skip_prefixes: Iterable[str] = ()):
        self.volumes_dir = volumes_dir
        self.binds_dir = binds_dir
        self.runner = runner
        self.docker = docker
        self.helper_image = helper_image
        self.skip_prefixes = list(skip_prefixes)
        self.volumes: Dict[str, Path] = {}
        self.binds: Dict[str, Path] = {}
        self.skipped: Dict[str, str] = {}

    def archive(self, resource: Resource, workload_id: str = "") -> Optional[Path]:
        if resource.kind is ResourceKind.VOLUME:
            done, what = self.volumes, "volume"
        else:
            done, what = self.binds, "bind mount"
            if is_control_plane(resource.identity, self.skip_prefixes):
                log.info("  Skipping system bind: %s (workload %s)", resource.identity, workload_id)
                self.skipped[resource.identity] = "control-plane path"
                return None

        if resource.identity in done:
            log.info("  %s already backed up: %s", what.capitalize(), resource.identity)
            resource.artifact = done[resource.identity]
            return resource.artifact

        log.info("  Backing up %s: %s", what, resource.identity)
        try:
            if resource.kind is ResourceKind.VOLUME:
                out = archive_volume(resource.identity, self.volumes_dir, self.runner,
                                     self.docker, self.helper_image)
            else:
                out = archive_bind(resource.identity, self.binds_dir, self.runner)
        except ArchiveError as e:
            log.warning("  Failed to backup %s %s (workload %s): %s",
                        what, resource.identity, workload_id, e.reason)
            self.skipped[resource.identity] = f"archive failed: {e.reason}"
            return None
        log.info("  %s archived: %s", what.capitalize(), format_bytes(out.stat().st_size))
        done[resource.identity] = out
        self.skipped.pop(resource.identity, None)
        resource.artifact = out
        return out
