"""Run the pipeline once for one configured source.

Usage:
  uv run -- python scripts/run_once.py -s markets
  uv run -- python scripts/run_once.py -s markets --dry-run

Reads configuration from .env via pydantic settings (PIPELINE_SCHEDULES etc.).
``--dry-run`` prints what would be published instead of posting to Telegram
and skips the database.
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from typing import List

from ingestion.settings import get_settings
from ingestion.tasks import run as run_mod
from ingestion.utils.logging import configure_logging
from pipeline.context import RunContext
from pipeline.controller import Pipeline
from pipeline.observer import NullObserver


class _StdoutPublisher:
    channel_id = "dry-run"

    def __init__(self) -> None:
        self.count = 0

    def publish(self, ctx: RunContext, text: str) -> str:
        self.count += 1
        print(f"--- message {self.count} ---\n{text}\n")
        return f"dry-{self.count}"


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run one pipeline pass for a source")
    parser.add_argument("-s", "--source", required=True, help="Source name from PIPELINE_SCHEDULES")
    parser.add_argument("--dry-run", action="store_true", help="Print messages, skip DB writes and Telegram")
    args = parser.parse_args(argv)

    cfg = get_settings()
    configure_logging(cfg.structlog_level, json_enabled=cfg.log_json)

    if not args.dry_run:
        try:
            summary = run_mod.run_core(args.source)
        except KeyError as exc:
            print(f"Unknown source: {exc}")
            return 2
        except Exception as exc:
            print(f"Run failed: {exc}")
            return 3
        print(summary)
        return 0

    try:
        schedule = cfg.get_schedule(args.source)
    except KeyError as exc:
        print(f"Unknown source: {exc}")
        return 2
    schedule = schedule.model_copy(update={"save_to_db": False, "remove_clones": False})
    config = schedule.to_pipeline_config(datetime.now(timezone.utc))
    pipeline = Pipeline(
        config,
        source=run_mod.build_source(schedule, cfg),
        composer=run_mod.build_composer() if config.enable_composition else None,
        repository=None,
        publisher=_StdoutPublisher(),
        observer=NullObserver(),
        timeout_seconds=float(cfg.pipeline_run_timeout_seconds),
    )
    report = pipeline.run()
    print(f"outcome={report.outcome.value} fetched={report.fetched} published={report.published}")
    if report.error is not None:
        print(f"error: {report.error}")
        return 3
    return 0


if __name__ == "__main__":
    sys.exit(main())
