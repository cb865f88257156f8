"""Cron entry point for sweeping expired uploads."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.puushy.blobs.blob_repository import BlobRepository
from src.puushy.config import load_config
from src.puushy.expiry.expiry_sweeper import ExpirySweeper
from src.puushy.metadata.metadata_store import MetadataStore


@dataclass(slots=True)
class SweepSummary:
    expired: int
    vanished: int
    backfilled: int
    stale_parts: int
    dry_run: bool


def perform_sweep(*, dry_run: bool, reference_time: datetime | None = None) -> SweepSummary:
    """Execute one sweep and return summary counters."""
    config = load_config()
    ttl = timedelta(seconds=config.ttl_seconds)
    sweeper = ExpirySweeper(
        blob_repo=BlobRepository(config.uploads_dir),
        metadata_store=MetadataStore(config.metadata_path),
        ttl=ttl,
        stale_part_age=max(ttl, timedelta(seconds=config.upload_timeout_seconds)),
    )
    report = asyncio.run(sweeper.sweep_once(reference_time, dry_run=dry_run))
    return SweepSummary(
        expired=len(report.expired),
        vanished=len(report.vanished),
        backfilled=len(report.backfilled),
        stale_parts=len(report.stale_parts),
        dry_run=dry_run,
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove expired uploads and reconcile metadata.")
    parser.add_argument("--dry-run", action="store_true", help="Only report counts without deleting files.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    try:
        summary = perform_sweep(dry_run=args.dry_run)
    except Exception as exc:
        print(f"sweep failed: {exc}", file=sys.stderr)
        return 2

    counters = (
        f"expired={summary.expired}, vanished={summary.vanished}, "
        f"backfilled={summary.backfilled}, stale_parts={summary.stale_parts}"
    )
    if summary.dry_run:
        print(f"sweep dry-run, {counters}", file=sys.stdout)
    else:
        print(f"sweep done, {counters}", file=sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
