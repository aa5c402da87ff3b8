#!/usr/bin/env python3
"""Run the ingestion worker (recurring pulls, daily sweep, metrics flush).

Usage:
    python scripts/run_worker.py
    PROVINCE_SLUGS=all python scripts/run_worker.py

Runs until SIGINT/SIGTERM. Exits 1 if the database is unreachable at startup.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from nobetci.jobs.worker import run_worker

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def main() -> int:
    try:
        asyncio.run(run_worker())
        return 0
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
