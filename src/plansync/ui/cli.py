from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from plansync.app import recent_runs, run_sync, show_item
from plansync.config import configure_logging, get_sync_config
from plansync.domain.model import ItemKey, ItemType, RunStatus, SourceSystem

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

_SYSTEMS = [system.value for system in SourceSystem]
_TYPES = [item_type.value for item_type in ItemType]


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mirror planning and tracking data locally")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log at debug level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Incrementally sync one source system")
    sync.add_argument("system", choices=_SYSTEMS, help="Source system to sync")
    sync.add_argument(
        "--type",
        dest="types",
        action="append",
        choices=_TYPES,
        help="Entity type to sync (repeatable, defaults to every type of the system)",
    )
    sync.add_argument(
        "--full",
        action="store_true",
        help="Ignore the stored watermark and re-read everything",
    )
    sync.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Number of records per batch (defaults to config)",
    )

    show = subparsers.add_parser("show", help="Show a cached item and its relations")
    show.add_argument("system", choices=_SYSTEMS)
    show.add_argument("type", choices=_TYPES)
    show.add_argument("external_id")

    runs = subparsers.add_parser("runs", help="List recent sync runs")
    runs.add_argument("--system", choices=_SYSTEMS, default=None)
    runs.add_argument("--limit", type=int, default=20)

    return parser.parse_args(list(argv))


def _sync(args: argparse.Namespace) -> int:
    config = get_sync_config()
    if args.batch_size is not None:
        if args.batch_size < 1:
            raise ValueError("--batch-size must be positive")
        config = replace(config, batch_size=args.batch_size)
    entity_types = [ItemType(value) for value in args.types] if args.types else None
    runs = run_sync(
        SourceSystem(args.system),
        entity_types=entity_types,
        full_resync=args.full,
        config=config,
    )
    for run in runs:
        for issue in run.issues:
            log.warning(f"{run.entity_type}: [{issue.kind}] {issue.message}")
    return 0 if all(run.status is RunStatus.SUCCESS for run in runs) else 1


def _show(args: argparse.Namespace) -> int:
    key = ItemKey(SourceSystem(args.system), ItemType(args.type), args.external_id)
    resolved = show_item(key)
    if resolved is None:
        log.error(f"{key} is not cached")
        return 1
    item = resolved.item
    log.info(f"{key}: {item.title!r} status={item.status} version={item.version}")
    for relation in resolved.outgoing:
        log.info(f"  {relation.kind} -> {relation.target}")
    for relation in resolved.incoming:
        log.info(f"  {relation.kind} <- {relation.source}")
    return 0


def _runs(args: argparse.Namespace) -> int:
    source_system = SourceSystem(args.system) if args.system else None
    for run in recent_runs(limit=args.limit, source_system=source_system):
        log.info(
            f"{run.started_at:%Y-%m-%d %H:%M:%S} {run.source_system}/{run.entity_type} "
            f"{run.status}: processed={run.processed} created={run.created} "
            f"updated={run.updated} failed={run.failed} issues={len(run.issues)}"
        )
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        if parsed_args.command == "sync":
            exit_code = _sync(parsed_args)
        elif parsed_args.command == "show":
            exit_code = _show(parsed_args)
        elif parsed_args.command == "runs":
            exit_code = _runs(parsed_args)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during sync")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
