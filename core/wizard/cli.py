"""
Operator CLI for staged media.

Usage:
    python -m core.wizard.cli reap --tenant T [--ttl-hours H] [--dry-run]
    python -m core.wizard.cli stats --tenant T
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import timedelta
from typing import Optional, Sequence

from core.services import get_object_storage, get_record_service
from core.wizard.schema import HORSE_ENTITY_TYPE
from core.wizard.staging import ResourceStager
from utils.config import Config

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="core.wizard.cli",
        description="Maintenance commands for wizard media staging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    reap = sub.add_parser("reap", help="Delete staged media that never became a horse")
    reap.add_argument("--tenant", required=True)
    reap.add_argument("--ttl-hours", type=int, default=None)
    reap.add_argument("--dry-run", action="store_true")

    stats = sub.add_parser("stats", help="Show media storage usage for a tenant")
    stats.add_argument("--tenant", required=True)

    return parser


def run_reap(stager: ResourceStager, ttl: timedelta, dry_run: bool) -> dict:
    result = stager.reap_orphans(ttl=ttl, dry_run=dry_run)
    return result.to_dict()


def run_stats(storage, bucket: str, tenant_id: str) -> dict:
    return storage.get_storage_stats(bucket, prefix=f"{tenant_id}/{HORSE_ENTITY_TYPE}/")


def main(argv: Optional[Sequence[str]] = None, config: Optional[Config] = None) -> int:
    args = build_parser().parse_args(argv)
    config = config or Config.load()
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")

    records = get_record_service(config.records_path)
    storage = get_object_storage(config.storage_root)

    if args.command == "reap":
        ttl = timedelta(hours=args.ttl_hours) if args.ttl_hours is not None else config.orphan_ttl
        stager = ResourceStager(records, storage, args.tenant, bucket=config.media_bucket)
        output = run_reap(stager, ttl, args.dry_run)
    else:
        output = run_stats(storage, config.media_bucket, args.tenant)

    print(json.dumps(output, indent=2))
    return 1 if output.get("failures") else 0


if __name__ == "__main__":
    sys.exit(main())
