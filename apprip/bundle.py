"""
bundle.py
Locations that depend on how apprip was installed (source checkout,
PyInstaller onefile, or pip):
- the bundle root and its optional ./bin directory of pinned helpers
  (proxmox-backup-client in particular)
- the config search paths: adjacent `apprip.toml`, then /etc/apprip.toml
"""
from __future__ import annotations
import os, sys
from pathlib import Path

ROOT_MARKERS = ("main.py", "apprip.toml", "pyproject.toml")


def bundle_root() -> Path:
    """Directory holding the executable (frozen) or the project checkout."""
    if getattr(sys, "_MEIPASS", None):
        return Path(sys.executable).resolve().parent
    pkg_parent = Path(__file__).resolve().parent.parent
    for candidate in (pkg_parent, *pkg_parent.parents):
        if any((candidate / m).exists() for m in ROOT_MARKERS):
            return candidate
    return pkg_parent


BUNDLE_DIR: Path = bundle_root()
BIN_DIR: Path = BUNDLE_DIR / "bin"
DEFAULT_CONFIG_PATH: str = str(BUNDLE_DIR / "apprip.toml")
SYSTEM_CONFIG_PATH: str = "/etc/apprip.toml"


def bundled_tool(name: str, bin_dir: Path | None = None) -> str:
    """Path of ./bin/<name> when shipped and executable, else the bare name for PATH lookup."""
    candidate = (bin_dir or BIN_DIR) / name
    if candidate.is_file() and os.access(candidate, os.X_OK):
        return str(candidate)
    return name


def prepend_bin_to_path() -> None:
    """Let commands run through `run` (docker, tar) prefer bundled helpers too."""
    if BIN_DIR.is_dir() and str(BIN_DIR) not in os.environ.get("PATH", "").split(os.pathsep):
        os.environ["PATH"] = str(BIN_DIR) + os.pathsep + os.environ.get("PATH", "")
