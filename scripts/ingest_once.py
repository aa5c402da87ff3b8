#!/usr/bin/env python3
"""One-off ingestion run for one or more provinces.

Usage:
    python scripts/ingest_once.py adana osmaniye
    INGESTION_PROVINCES=istanbul python scripts/ingest_once.py

Provinces come from the command line, else INGESTION_PROVINCES, else
PROVINCE_SLUGS ("all" reads the database). Prints one line per province.
Exits 0 when every pull succeeded, 1 otherwise.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from nobetci.config import get_settings
from nobetci.jobs.worker import resolve_province_slugs
from nobetci.services.metrics import WorkerMetrics
from nobetci.services.pull_province import ProvincePuller

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("ingest_once")


async def _run(provinces: list[str]) -> int:
    metrics = WorkerMetrics()
    puller = ProvincePuller(metrics=metrics)
    failures = 0
    for slug in provinces:
        try:
            result = await puller.pull(slug)
        except Exception as e:
            failures += 1
            print(f"province={slug} status=failed error={e}")
            continue
        print(
            f"province={slug} status=ok "
            f"duty_date={result.duty_date.isoformat()} "
            f"records={result.record_count} "
            f"conflicts={result.conflict_count} "
            f"degraded={result.degraded_count} "
            f"expired={result.expired_count}"
        )
    metrics.flush(logger)
    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    args = [a.strip().lower() for a in (sys.argv[1:] if argv is None else argv) if a.strip()]
    settings = get_settings()
    configured = args or settings.ingestion_provinces or settings.province_slugs
    provinces = resolve_province_slugs(configured)
    if not provinces:
        print("ERROR: no provinces to ingest", file=sys.stderr)
        return 1
    return asyncio.run(_run(provinces))


if __name__ == "__main__":
    sys.exit(main())
