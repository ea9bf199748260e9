"""
Operator command line for the farm ledger.

Usage:
    farm-ledger [--config PATH] [--database-url URL] <command> [options]

Commands:
    init-db                               create all tables
    seed-tenant TENANT [--name N] [--capitalize-feed] [--auto-reorder]
    post-pending TENANT [--limit N] [--locker-id ID]
    post-event TENANT EVENT_ID [--locker-id ID]
    reverse TENANT TRANSACTION_ID --reason TEXT [--actor ID]
    stuck TENANT [--older-than-minutes N] [--release]

Configuration comes from ``--config`` (YAML) when given, otherwise from
``FARM_LEDGER_*`` environment variables.  ``--database-url`` overrides both.

Exit codes: 0 success, 1 a posting or reversal failed, 2 bad configuration
or arguments (including malformed event or transaction ids).
"""

import argparse
import sys
from dataclasses import replace
from datetime import timedelta
from uuid import UUID

from farm_ledger.config import FarmLedgerConfig
from farm_ledger.db.engine import create_tables, init_engine_from_url, session_scope
from farm_ledger.domain.clock import SystemClock
from farm_ledger.domain.settings import LivestockCostingMode
from farm_ledger.exceptions import ConfigurationError, FarmLedgerError
from farm_ledger.logging_config import configure_logging, get_logger
from farm_ledger.services.account_service import AccountService
from farm_ledger.services.event_store import EventStore
from farm_ledger.services.posting_engine import PostingEngine
from farm_ledger.services.tenant_service import TenantService

logger = get_logger("cli")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="farm-ledger",
        description="Post farm operational events to the general ledger.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", help="YAML configuration file.")
    parser.add_argument("--database-url", help="Override the configured database URL.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables.")

    seed = sub.add_parser("seed-tenant", help="Create a tenant and its default chart of accounts.")
    seed.add_argument("tenant_id")
    seed.add_argument("--name", default="")
    seed.add_argument(
        "--capitalize-feed",
        action="store_true",
        help="Add feed cost to livestock cost basis instead of expensing it.",
    )
    seed.add_argument("--auto-reorder", action="store_true", help="Enable automatic requisitions.")

    pending = sub.add_parser("post-pending", help="Post every PENDING event of a tenant.")
    pending.add_argument("tenant_id")
    pending.add_argument("--limit", type=int, default=None)
    pending.add_argument("--locker-id", default=None)

    one = sub.add_parser("post-event", help="Post (or retry) one event.")
    one.add_argument("tenant_id")
    one.add_argument("event_id", type=UUID)
    one.add_argument("--locker-id", default=None)

    reverse = sub.add_parser("reverse", help="Reverse a posted ledger transaction.")
    reverse.add_argument("tenant_id")
    reverse.add_argument("transaction_id", type=UUID)
    reverse.add_argument("--reason", required=True)
    reverse.add_argument("--actor", default="operator")

    stuck = sub.add_parser("stuck", help="List (and optionally release) stale PROCESSING events.")
    stuck.add_argument("tenant_id")
    stuck.add_argument("--older-than-minutes", type=int, default=30)
    stuck.add_argument("--release", action="store_true")

    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> FarmLedgerConfig:
    config = FarmLedgerConfig.from_yaml(args.config) if args.config else FarmLedgerConfig.from_env()
    if args.database_url:
        config = replace(config, database=replace(config.database, url=args.database_url))
    return config


def _seed_tenant(args: argparse.Namespace) -> int:
    settings = {
        "livestockCostingMode": (
            LivestockCostingMode.CAPITALIZE if args.capitalize_feed else LivestockCostingMode.EXPENSE
        ).value,
        "autoReorderEnabled": args.auto_reorder,
    }
    with session_scope() as session:
        tenants = TenantService(session)
        if tenants.get_tenant(args.tenant_id) is None:
            tenants.create_tenant(args.tenant_id, name=args.name, settings=settings)
        created = AccountService(session).seed_chart_of_accounts(args.tenant_id)
    print(f"Tenant {args.tenant_id}: {created} accounts created")
    return 0


def _post_pending(args: argparse.Namespace, config: FarmLedgerConfig) -> int:
    with session_scope() as session:
        summary = PostingEngine(session, config=config.posting).process_pending(
            args.tenant_id, locker_id=args.locker_id, limit=args.limit
        )
    print(
        f"Processed {summary.processed}: {summary.posted} posted, "
        f"{summary.already_posted} already posted, {summary.failed} failed"
    )
    for event_id, error in summary.failures:
        print(f"  {event_id}  {error}")
    return 1 if summary.failed else 0


def _post_event(args: argparse.Namespace, config: FarmLedgerConfig) -> int:
    with session_scope() as session:
        result = PostingEngine(session, config=config.posting).process_event(
            args.tenant_id, args.event_id, locker_id=args.locker_id
        )
    state = "already posted" if result.already_posted else "posted"
    print(f"Event {result.event_id} {state}: transaction {result.transaction_id}")
    return 0


def _reverse(args: argparse.Namespace, config: FarmLedgerConfig) -> int:
    with session_scope() as session:
        result = PostingEngine(session, config=config.posting).reverse_transaction(
            args.tenant_id, args.transaction_id, reason=args.reason, actor=args.actor
        )
    print(
        f"Transaction {result.original_transaction_id} reversed by "
        f"{result.reversal_transaction_id} ({result.entries_count} entries)"
    )
    return 0


def _stuck(args: argparse.Namespace) -> int:
    clock = SystemClock()
    cutoff = clock.now() - timedelta(minutes=args.older_than_minutes)
    with session_scope() as session:
        store = EventStore(session, clock)
        events = store.list_stuck_events(args.tenant_id, cutoff)
        for event in events:
            print(f"{event.id}  {event.event_type}  locked_by={event.locked_by}  since={event.locked_at}")
            if args.release:
                store.release_lock(args.tenant_id, event.id)
    if args.release:
        print(f"Released {len(events)} event(s)")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = _load_config(args)
    except (ConfigurationError, OSError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    configure_logging(level=config.log_level.upper())
    db = config.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        isolation_level=db.isolation_level,
    )

    if args.command == "init-db":
        create_tables()
        print("Tables created")
        return 0
    if args.command == "seed-tenant":
        return _seed_tenant(args)
    if args.command == "stuck":
        return _stuck(args)

    handlers = {"post-pending": _post_pending, "post-event": _post_event, "reverse": _reverse}
    try:
        return handlers[args.command](args, config)
    except FarmLedgerError as exc:
        logger.error("cli_command_failed", extra={"command": args.command, "error_code": exc.code})
        print(f"{exc.code}: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
