"""Command line interface.

    shopsync start [--demo | --production]
    shopsync sync <kind>
    shopsync status
    shopsync reset-mappings [--kind KIND]
"""

import argparse
import asyncio
import logging
import os
import sys

logger = logging.getLogger("shopsync.cli")

KINDS = [
    "products",
    "inventory",
    "orders",
    "fulfillments",
    "catalogs",
    "metaobjects",
    "discounts",
    "gift_cards",
    "customers",
]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def cmd_start(args: argparse.Namespace) -> int:
    """Run the webhook server, scheduler and initial syncs until interrupted."""
    import uvicorn

    from shopsync.core.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "shopsync.main:app",
        host=settings.host,
        port=args.port or settings.port,
        log_level=settings.effective_log_level.lower(),
    )
    return 0


async def _run_sync(kind: str) -> int:
    from shopsync.core.config import get_settings
    from shopsync.core.database import init_db
    from shopsync.core.engine import build_engine
    from shopsync.core.queue import JobStatus

    settings = get_settings()
    init_db()
    engine = build_engine(settings)

    handle = engine.scheduler.trigger_immediate_sync(kind)
    if handle is None:
        print(f"{kind} is disabled", file=sys.stderr)
        return 1

    idle = await engine.queue.wait_for_idle(settings.manual_sync_timeout_seconds)
    await engine.shutdown(timeout=0)
    if not idle:
        print(f"{kind} sync timed out after {settings.manual_sync_timeout_seconds:.0f}s", file=sys.stderr)
        return 1

    job = handle.job
    if job.status != JobStatus.COMPLETED:
        print(f"{kind} sync {job.status.value}: {job.error}", file=sys.stderr)
        return 1

    stats = job.stats.to_dict() if job.stats else {}
    print(f"{kind} sync completed: " + ", ".join(f"{k}={v}" for k, v in stats.items()))
    return 1 if stats.get("failed") else 0


def cmd_sync(args: argparse.Namespace) -> int:
    """Run one immediate sync and wait for it."""
    return asyncio.run(_run_sync(args.kind))


def cmd_status(args: argparse.Namespace) -> int:
    """Print configuration and the last known sync state of each kind."""
    from shopsync.api.services.sync_state_store import SyncStateStore
    from shopsync.core.config import get_settings
    from shopsync.core.data_objects import active_schedule, enabled_kinds, load_data_objects
    from shopsync.core.database import init_db

    settings = get_settings()
    data_objects = load_data_objects(path=settings.data_objects_file)
    init_db()
    states = SyncStateStore()

    print(f"Mode: {settings.run_mode}")
    print(f"Shopify: {settings.shopify_store_domain or 'not configured'}")
    print(f"Spreadsheet: {settings.google_sheets_spreadsheet_id or 'not configured'}")
    print(f"Sync order: {', '.join(k.value for k in enabled_kinds(data_objects))}")
    print()
    for kind, cfg in data_objects.items():
        state = states.get(kind)
        if cfg.trigger.value == "cron":
            trigger = f"cron {active_schedule(data_objects, kind, settings.run_mode)}"
        else:
            trigger = f"webhook {', '.join(cfg.webhook_topics)}"
        deps = ", ".join(d.value for d in cfg.dependencies) or "-"
        last = state.last_success_at.isoformat() if state.last_success_at else "never"
        print(
            f"{kind.value:<12} {'on' if cfg.enabled else 'off':<4} {cfg.direction.value:<12} "
            f"{trigger:<40} deps={deps:<10} state={state.status:<8} last_success={last}"
        )
    return 0


def cmd_reset_mappings(args: argparse.Namespace) -> int:
    """Forget id mappings so the next sync re-matches records from scratch."""
    from shopsync.api.services.mapping_store import IdMappingStore
    from shopsync.core.database import init_db

    init_db()
    removed = IdMappingStore().reset(args.kind)
    print(f"Removed {removed} id mappings" + (f" for {args.kind}" if args.kind else ""))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shopsync", description="Shopify <-> Google Sheets sync engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    start = subparsers.add_parser("start", help="run the webhook server and scheduler")
    mode = start.add_mutually_exclusive_group()
    mode.add_argument("--demo", dest="mode", action="store_const", const="demo")
    mode.add_argument("--production", dest="mode", action="store_const", const="production")
    start.add_argument("--port", type=int, default=None)
    start.set_defaults(func=cmd_start)

    sync = subparsers.add_parser("sync", help="run one sync immediately")
    sync.add_argument("kind", choices=KINDS)
    sync.set_defaults(func=cmd_sync)

    status = subparsers.add_parser("status", help="show configuration and sync state")
    status.set_defaults(func=cmd_status)

    reset = subparsers.add_parser("reset-mappings", help="forget stored id mappings")
    reset.add_argument("--kind", choices=KINDS, default=None, help="only this kind")
    reset.set_defaults(func=cmd_reset_mappings)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # must happen before settings are first loaded
    if getattr(args, "mode", None):
        os.environ["SYNC_MODE"] = args.mode

    from shopsync.core.config import get_settings

    _configure_logging(get_settings().effective_log_level)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
