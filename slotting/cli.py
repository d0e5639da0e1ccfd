"""Command-line runner for scheduled repartition passes.

Usage:
    python -m slotting                       # all eligible locations
    python -m slotting --dry-run             # plan only, nothing is written
    python -m slotting --location LOC-001    # a single location
    python -m slotting --create-tables       # create missing DynamoDB tables first
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Optional

import boto3

from slotting.config import SlottingSettings
from slotting.errors import SlottingError
from slotting.services.audit import RepartitionAuditLog
from slotting.services.orchestrator import RepartitionOrchestrator
from slotting.store.dynamodb import DynamoDBStore
from slotting.store.schema import create_tables

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slotting-repartition",
        description="Rebalance stock across shelf levels.",
    )
    parser.add_argument("--dry-run", action="store_true", help="plan moves without executing them")
    parser.add_argument("--location", metavar="ID", help="process a single location")
    parser.add_argument("--create-tables", action="store_true", help="create missing tables before running")
    parser.add_argument("--log-level", help="override SLOTTING_LOG_LEVEL")
    return parser


def build_orchestrator(
    settings: SlottingSettings,
    dynamodb_resource: Optional[Any] = None,
    dynamodb_client: Optional[Any] = None,
    s3_client: Optional[Any] = None,
    dry_run: bool = False,
) -> RepartitionOrchestrator:
    region = settings.region_name
    dynamodb_resource = dynamodb_resource or boto3.resource("dynamodb", region_name=region)
    dynamodb_client = dynamodb_client or boto3.client("dynamodb", region_name=region)
    if s3_client is None and settings.audit_bucket:
        s3_client = boto3.client("s3", region_name=region)

    store = DynamoDBStore(settings, dynamodb_resource=dynamodb_resource, dynamodb_client=dynamodb_client)
    audit_log = RepartitionAuditLog(settings, dynamodb_resource=dynamodb_resource, s3_client=s3_client)
    return RepartitionOrchestrator(store, audit_log=audit_log, settings=settings, dry_run=dry_run)


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = SlottingSettings.from_env()
    except SlottingError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(level=(args.log_level or settings.log_level).upper(), format=LOG_FORMAT)

    try:
        if args.create_tables:
            client = boto3.client("dynamodb", region_name=settings.region_name)
            created = create_tables(client, settings)
            logger.info("Created tables: %s", ", ".join(created) or "none")

        orchestrator = build_orchestrator(settings, dry_run=args.dry_run)
        summary = orchestrator.process(args.location)
    except SlottingError as e:
        logger.error("Repartition run failed: %s", e)
        return 1

    print(json.dumps(summary.to_dict(), indent=2, default=str))
    return 1 if summary.errors else 0


if __name__ == "__main__":
    sys.exit(main())
