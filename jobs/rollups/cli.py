"""CLI entry point for the rollup job."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import List, Optional

from common.config import get_settings
from common.db import get_engine
from telemetry_ingest.core.domain.resolution import Resolution
from telemetry_ingest.core.rollups.aggregator import RollupAggregator
from telemetry_ingest.core.rollups.scheduler import build_rollup_scheduler
from telemetry_ingest.core.storage.schema import ensure_schema

from .config import RollupJobConfig

logger = logging.getLogger(__name__)

LABELS = [r.label for r in Resolution]


def parse_args(argv: Optional[List[str]] = None) -> RollupJobConfig:
    p = argparse.ArgumentParser(description="Rollup job (1min/5min/10min/1hour buckets)")
    p.add_argument(
        "--resolution",
        action="append",
        choices=LABELS,
        help="resolution to maintain (repeatable, default: all)",
    )
    p.add_argument("--once", action="store_true", help="run a single tick per resolution and exit")
    p.add_argument("--ensure-schema", action="store_true", help="create missing tables first")
    args = p.parse_args(argv)

    labels = args.resolution or LABELS
    return RollupJobConfig(
        resolutions=tuple(Resolution.from_label(label) for label in dict.fromkeys(labels)),
        once=bool(args.once),
        ensure_schema=bool(args.ensure_schema),
    )


def run_once(aggregator: RollupAggregator, cfg: RollupJobConfig) -> int:
    """Un tick por resolución. Devuelve el número de resoluciones fallidas."""
    failures = 0
    for resolution in cfg.resolutions:
        try:
            rows = aggregator.run_tick(resolution)
            logger.info("[ROLLUP] %s rows=%d", resolution.label, rows)
        except Exception as e:
            failures += 1
            logger.error("[ROLLUP] %s failed: %s", resolution.label, e)
    return failures


def main(argv: Optional[List[str]] = None) -> int:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    cfg = parse_args(argv)
    engine = get_engine(settings)
    if cfg.ensure_schema:
        ensure_schema(engine)

    aggregator = RollupAggregator(engine)
    logger.info(
        "Rollup job started resolutions=%s once=%s",
        ",".join(r.label for r in cfg.resolutions), cfg.once,
    )

    if cfg.once:
        return 1 if run_once(aggregator, cfg) else 0

    scheduler = build_rollup_scheduler(aggregator, cfg.resolutions)
    stop = threading.Event()

    def _on_signal(signum, frame):
        logger.info("Signal %s received, stopping...", signum)
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    scheduler.start_all()
    stop.wait()
    scheduler.stop_all()
    logger.info("Rollup job stopped. %s", scheduler.get_stats())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
