"""CLI entry point: sync, status, scheduler."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import uuid
from typing import Optional

from scripts.refsync.client import QRadarClient
from scripts.refsync.config import SyncConfig, load_config
from scripts.refsync.errors import (
    EXIT_CONFIG,
    EXIT_EXTRACT,
    EXIT_LIST_SETS,
    EXIT_OK,
    EXIT_PARTIAL_FAILURE,
    ConfigError,
    ExtractionError,
    QRadarAPIError,
)
from scripts.refsync.extractor import extract_server_groups
from scripts.refsync.logging_config import configure_logging
from scripts.refsync.reconciler import Reconciler, plan
from scripts.refsync.remote_state import fetch_managed_sets

logger = logging.getLogger("refsync.cli")


def build_client(config: SyncConfig) -> QRadarClient:
    return QRadarClient(config.qradar, pool_size=config.max_workers)


def run_sync(config: SyncConfig, dry_run: bool = False) -> int:
    """One full reconciliation pass. Returns the process exit code."""
    run_id = str(uuid.uuid4())

    try:
        desired = extract_server_groups(config.server_file, config.prefix, config.separator)
    except ExtractionError as exc:
        logger.error("error extracting server groups: %s", exc, extra={"run_id": run_id})
        return EXIT_EXTRACT

    client = build_client(config)
    try:
        try:
            remote = fetch_managed_sets(client, config.prefix)
        except QRadarAPIError as exc:
            logger.error("error retrieving reference sets: %s", exc, extra={"run_id": run_id})
            return EXIT_LIST_SETS

        if dry_run:
            sync_plan = plan(desired, remote)
            for action, names in (
                ("refresh", sync_plan.refresh),
                ("create", sync_plan.create),
                ("delete", sync_plan.delete),
            ):
                for name in names:
                    logger.info(
                        "[dry-run] would %s reference set %r", action, name,
                        extra={"reference_set": name, "operation": action, "run_id": run_id},
                    )
            logger.info("Dry run plan: %s", sync_plan.summary(), extra={"run_id": run_id})
            return EXIT_OK

        reconciler = Reconciler(
            client,
            poll_policy=config.poll,
            max_workers=config.max_workers,
            fail_fast=config.fail_fast,
        )
        report = reconciler.run(desired, remote, run_id=run_id)
    finally:
        client.close()

    if not report.ok:
        for result in report.failed:
            logger.error(
                "%s of %r failed: %s", result.action, result.name, result.error,
                extra={"reference_set": result.name, "operation": result.action, "run_id": run_id},
            )
        logger.error("Sync finished with failures: %s", report.counts(), extra={"run_id": run_id})
        return EXIT_PARTIAL_FAILURE

    logger.info("Sync complete: %s", report.counts(), extra={"run_id": run_id})
    return EXIT_OK


def cmd_sync(args: argparse.Namespace, config: SyncConfig) -> int:
    """Run one-shot reconciliation."""
    return run_sync(config, dry_run=args.dry_run)


def cmd_status(args: argparse.Namespace, config: SyncConfig) -> int:
    """Show managed reference sets and, when the inventory is readable, desired sizes."""
    desired: dict[str, list[str]] = {}
    if os.path.exists(config.server_file):
        try:
            desired = extract_server_groups(config.server_file, config.prefix, config.separator)
        except ExtractionError as exc:
            logger.error("error extracting server groups: %s", exc)
            return EXIT_EXTRACT

    client = build_client(config)
    try:
        remote = fetch_managed_sets(client, config.prefix)
    except QRadarAPIError as exc:
        logger.error("error retrieving reference sets: %s", exc)
        return EXIT_LIST_SETS
    finally:
        client.close()

    names = sorted(set(remote) | set(desired))
    if not names:
        print("No managed reference sets found.")
        return EXIT_OK

    fmt = "{:<60}  {:>8}  {:>8}  {}"
    print(fmt.format("REFERENCE SET", "REMOTE", "DESIRED", "ACTION"))
    print("-" * 90)
    for name in names:
        ref_set = remote.get(name)
        members = desired.get(name)
        if ref_set is None:
            action = "create"
        elif members is None:
            action = "delete"
        else:
            action = "refresh"
        print(fmt.format(
            name[:60],
            ref_set.number_of_elements if ref_set else "-",
            len(members) if members is not None else "-",
            action,
        ))
    return EXIT_OK


def cmd_scheduler(args: argparse.Namespace, config: SyncConfig) -> int:
    """Start the APScheduler-based sync loop."""
    from scripts.refsync.scheduler import start_scheduler

    start_scheduler(config)
    return EXIT_OK


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--url", help="Base URL of the QRadar Console (env QRADAR_BASE_URL)")
    parser.add_argument("--token", help="Security Token of QRadar Authorized Service (env QRADAR_SEC_TOKEN)")
    parser.add_argument("--file", help="UNIX Server List CSV (env QRADAR_SERVER_FILE)")
    parser.add_argument("--api-version", help="QRadar API version header (default: 9.1)")
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Disable TLS certificate verification",
    )
    parser.add_argument("--ca-bundle", help="PEM bundle used to verify the QRadar certificate")
    parser.add_argument("--connect-timeout", type=float, help="Connect timeout in seconds (default: 3)")
    parser.add_argument("--read-timeout", type=float, help="Read timeout in seconds (default: 30)")
    parser.add_argument("--poll-attempts", type=int, help="Delete task status lookups (default: 5)")
    parser.add_argument("--poll-interval", type=float, help="Seconds between lookups (default: 1)")
    parser.add_argument("--max-workers", type=int, help="Concurrent units (default: 16)")
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Cancel remaining units after the first failure",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="refsync",
        description="Sync QRadar reference sets with the UNIX server inventory",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        default=os.environ.get("LOG_FORMAT", "json"),
        help="Log line format (env LOG_FORMAT, default: json)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Run one-shot reconciliation")
    _add_common_args(sync_parser)
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the planned changes without touching QRadar",
    )
    sync_parser.set_defaults(func=cmd_sync)

    # status command
    status_parser = subparsers.add_parser("status", help="Show managed reference sets")
    _add_common_args(status_parser)
    status_parser.set_defaults(func=cmd_status)

    # scheduler command
    sched_parser = subparsers.add_parser("scheduler", help="Start scheduled sync loop")
    _add_common_args(sched_parser)
    sched_parser.add_argument(
        "--interval-min",
        type=int,
        help="Minutes between syncs (env QRADAR_SYNC_INTERVAL_MIN, default: 60)",
    )
    sched_parser.set_defaults(func=cmd_scheduler)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    overrides = {
        key: getattr(args, key, None)
        for key in (
            "url", "token", "file", "api_version", "insecure", "ca_bundle",
            "connect_timeout", "read_timeout", "poll_attempts", "poll_interval",
            "max_workers", "fail_fast", "interval_min",
        )
    }
    try:
        config = load_config(overrides)
    except ConfigError as exc:
        logger.error("%s", exc)
        parser.print_usage(sys.stderr)
        return EXIT_CONFIG

    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
