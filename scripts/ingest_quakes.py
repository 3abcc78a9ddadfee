#!/usr/bin/env python3
"""
Long-running entry point that crawls earthquake news and upserts events.

Usage:
    python3 scripts/ingest_quakes.py --store sqlite --db-path datasets/quakes/events.sqlite
    python3 scripts/ingest_quakes.py --once --log-level DEBUG
"""

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.services.quake_ingestion import main


if __name__ == "__main__":
    raise SystemExit(main())
