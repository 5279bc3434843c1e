#!/usr/bin/env python3
"""
main.py - run apprip straight from a checkout or a PyInstaller bundle:

    sudo ./main.py backup --list
    sudo ./main.py restore host/app-server/2025-01-22T15:19:17Z
"""
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from apprip.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
