"""Crew platform management commands.

Usage:
  # Provision a crew (customer_support crews also get their two tables)
  python manage.py provision --name "Support Bot" --client ACME-001 \
      --type customer_support --webhook-url https://hooks.example.com/acme

  # Delete a crew and drop its tables
  python manage.py deprovision --crew-id 6f1c...

  # List orphaned crew tables; drop them with --execute
  python manage.py orphans [--execute]
  python manage.py table-stats

  # Reconcile metadata with crew tables
  python manage.py discover-conversations --client ACME-001 [--full]
  python manage.py discover-documents --client ACME-001
  python manage.py discovery-job

Results are printed to stdout as JSON; logs go to stderr.
"""
import argparse
import asyncio
import json
import logging
import sys

from config import configure_logging
from crews import (
    cleanup_orphaned_tables,
    deprovision_crew,
    find_orphaned_tables,
    get_crew_table_stats,
    provision_crew,
)
from db.connection import dispose_engine, get_db
from discovery import (
    discover_conversations,
    discover_conversations_optimized,
    discover_documents,
    run_conversation_discovery_job,
)
from errors import PlatformError, classify_error, describe

logger = logging.getLogger(__name__)


def _emit(payload) -> None:
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump(mode="json")
    elif isinstance(payload, list):
        payload = [p.model_dump(mode="json") if hasattr(p, "model_dump") else p for p in payload]
    print(json.dumps(payload, indent=2, default=str))


async def run_provision(args: argparse.Namespace):
    async with get_db() as session:
        return await provision_crew(session, {
            "name": args.name,
            "client_id": args.client,
            "type": args.type,
            "webhook_url": args.webhook_url,
            "status": args.status,
        })


async def run_deprovision(args: argparse.Namespace):
    async with get_db() as session:
        return await deprovision_crew(session, args.crew_id)


async def run_orphans(args: argparse.Namespace):
    async with get_db() as session:
        if args.execute:
            dropped = await cleanup_orphaned_tables(session, dry_run=False)
            return {"dry_run": False, "dropped_tables": dropped}
        orphans = await find_orphaned_tables(session)
    return {"dry_run": True, "orphaned_tables": [o.model_dump() for o in orphans]}


async def run_table_stats(args: argparse.Namespace):
    async with get_db() as session:
        return await get_crew_table_stats(session)


async def run_discover_conversations(args: argparse.Namespace):
    async with get_db() as session:
        if args.full:
            return await discover_conversations(session, args.client)
        return await discover_conversations_optimized(session, args.client, args.batch_size)


async def run_discover_documents(args: argparse.Namespace):
    async with get_db() as session:
        return await discover_documents(session, args.client)


async def run_discovery_job(args: argparse.Namespace):
    async with get_db() as session:
        return await run_conversation_discovery_job(session, args.batch_size)


COMMANDS = {
    "provision": run_provision,
    "deprovision": run_deprovision,
    "orphans": run_orphans,
    "table-stats": run_table_stats,
    "discover-conversations": run_discover_conversations,
    "discover-documents": run_discover_documents,
    "discovery-job": run_discovery_job,
}


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crew platform management")
    sub = parser.add_subparsers(dest="command")

    provision = sub.add_parser("provision", help="Provision a new crew")
    provision.add_argument("--name", required=True)
    provision.add_argument("--client", required=True, help="Client code, e.g. ACME-001")
    provision.add_argument(
        "--type", required=True, choices=["customer_support", "lead_generation"]
    )
    provision.add_argument("--webhook-url", required=True)
    provision.add_argument(
        "--status", default="inactive", choices=["active", "inactive", "error"]
    )

    deprovision = sub.add_parser("deprovision", help="Delete a crew and drop its tables")
    deprovision.add_argument("--crew-id", required=True)

    orphans = sub.add_parser("orphans", help="Find crew tables no crew config references")
    orphans.add_argument(
        "--execute",
        action="store_true",
        default=False,
        help="Drop the orphaned tables instead of only listing them",
    )

    sub.add_parser("table-stats", help="Count registered and orphaned crew tables")

    conversations = sub.add_parser(
        "discover-conversations", help="Record sessions missing from conversations"
    )
    conversations.add_argument("--client", required=True)
    conversations.add_argument(
        "--full",
        action="store_true",
        default=False,
        help="Scan whole histories tables instead of using the watermark",
    )
    conversations.add_argument("--batch-size", type=int, default=None)

    documents = sub.add_parser(
        "discover-documents", help="Record documents missing from knowledge_base_documents"
    )
    documents.add_argument("--client", required=True)

    job = sub.add_parser("discovery-job", help="Incremental conversation discovery for all clients")
    job.add_argument("--batch-size", type=int, default=None)

    return parser


async def main(args: argparse.Namespace) -> int:
    try:
        _emit(await COMMANDS[args.command](args))
        return 0
    except PlatformError as e:
        logger.error("%s failed: %s", args.command, e.message)
        _emit({"error": e.message, "code": e.code.value, "status": e.status})
        return 1
    except Exception as e:
        logger.error("%s failed", args.command, exc_info=True)
        code = classify_error(e)
        _emit({"error": describe(e), "code": code.value, "status": code.status})
        return 1
    finally:
        await dispose_engine()


if __name__ == "__main__":
    parser = _build_arg_parser()
    args = parser.parse_args()

    if args.command not in COMMANDS:
        parser.print_help()
        sys.exit(1)

    configure_logging()
    sys.exit(asyncio.run(main(args)))
