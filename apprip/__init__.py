"""
apprip package
- Application-aware container backup: discover workloads, dump databases,
  archive volumes/binds once, write a catalog, hand off to Proxmox Backup Server.
"""
__all__ = [
    "cli", "config", "orchestrator", "inspector", "classify", "dumper", "retry",
    "archiver", "catalog", "sink", "restore", "lock", "util", "types", "errors", "bundle",
]
__version__ = "0.3.0"
