"""
sink.py
Archival sink adapter for Proxmox Backup Server (proxmox-backup-client).
- backup:  named archives ('name.pxar:/path') -> snapshot identifier
- restore: one archive of a snapshot into a destination directory
- snapshot listing and a connection test
Credentials travel as PBS_* environment variables, never on the command line.
"""

from __future__ import annotations
import logging, os, re, stat
from pathlib import Path
from typing import Dict, List, Optional
from .types import Config
from .errors import SinkError
from .util import run, mask

log = logging.getLogger(__name__)

SNAPSHOT_RE = re.compile(r"(host/[^\s/'\"]+/\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z)")


def parse_snapshot_id(output: str) -> Optional[str]:
    m = SNAPSHOT_RE.search(output)
    return m.group(1) if m else None


class PBSSink:
    def __init__(self, cfg: Config, runner=run):
        self.cfg = cfg
        self.runner = runner

    def env(self) -> Dict[str, str]:
        env = {"PBS_REPOSITORY": self.cfg.pbs_repository}
        if self.cfg.pbs_password:
            env["PBS_PASSWORD"] = self.cfg.pbs_password
        if self.cfg.pbs_fingerprint:
            env["PBS_FINGERPRINT"] = self.cfg.pbs_fingerprint
        return env

    def _common_args(self) -> List[str]:
        args = ["--repository", self.cfg.pbs_repository]
        if self.cfg.pbs_keyfile:
            args += ["--keyfile", str(self.cfg.pbs_keyfile)]
        return args

    def check_keyfile(self) -> None:
        """Missing keyfile is an error; loose permissions only warn."""
        kf = self.cfg.pbs_keyfile
        if kf is None:
            return
        if not kf.is_file():
            raise SinkError(f"Encryption keyfile not found: {kf}")
        perms = stat.S_IMODE(os.stat(kf).st_mode)
        if perms not in (0o600, 0o400):
            log.warning("Keyfile permissions should be 600 or 400 (current: %o)", perms)

    def check_connection(self, timeout: float = 30) -> bool:
        log.info("Testing connection to PBS server...")
        proc = self.runner(
            [self.cfg.pbs_client, "snapshot", "list", "--repository", self.cfg.pbs_repository,
             "--output-format", "json"],
            capture=True, env=self.env(), timeout=timeout,
        )
        if proc.ok:
            log.info("Successfully connected to PBS")
            return True
        log.error("Failed to connect to PBS server: %s", proc.err_text or f"rc={proc.rc}")
        return False

    def build_backup_cmd(self, sources: Dict[str, str]) -> List[str]:
        cmd = [self.cfg.pbs_client, "backup"]
        cmd += [f"{name}:{path}" for name, path in sources.items()]
        cmd += self._common_args()
        if "/" in sources.values():
            for ex in self.cfg.exclusions:
                cmd += ["--exclude", ex]
        if self.cfg.skip_lost_and_found:
            cmd.append("--skip-lost-and-found")
        return cmd

    def backup(self, sources: Dict[str, str], dry: bool = False) -> Optional[str]:
        """Submit archives; return the snapshot id (None in dry-run or when not reported)."""
        if not sources:
            raise SinkError("nothing to back up")
        cmd = self.build_backup_cmd(sources)
        log.info("Env: PBS_REPOSITORY=%s PBS_PASSWORD=%s PBS_FINGERPRINT=%s",
                 self.cfg.pbs_repository, mask(self.cfg.pbs_password), self.cfg.pbs_fingerprint or "")
        log.info("Executing: %s", " ".join(cmd))
        proc = self.runner(cmd, capture=True, env=self.env(), dry=dry)
        if dry:
            log.info("DRY RUN: backup command not executed")
            return None
        if not proc.ok:
            raise SinkError(f"PBS backup failed (rc={proc.rc}): {proc.err_text}")
        snapshot = parse_snapshot_id(proc.text + "\n" + proc.stderr.decode("utf-8", "replace"))
        if snapshot:
            log.info("PBS backup completed: %s", snapshot)
        else:
            log.warning("PBS backup completed but no snapshot id was reported")
        return snapshot

    def restore(self, snapshot: str, archive_name: str, dest: Path) -> Path:
        dest.mkdir(parents=True, exist_ok=True)
        cmd = [self.cfg.pbs_client, "restore", snapshot, archive_name, str(dest)] + self._common_args()
        log.info("Extracting %s from %s to %s", archive_name, snapshot, dest)
        proc = self.runner(cmd, capture=True, env=self.env())
        if not proc.ok:
            raise SinkError(f"Failed to extract {archive_name} from {snapshot}: {proc.err_text}")
        return dest

    def list_snapshots(self) -> str:
        proc = self.runner([self.cfg.pbs_client, "snapshot", "list", "--repository",
                            self.cfg.pbs_repository], capture=True, env=self.env())
        if not proc.ok:
            raise SinkError(f"Cannot list snapshots: {proc.err_text or f'rc={proc.rc}'}")
        return proc.text
