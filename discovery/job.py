"""Conversation discovery across every client.

Meant to be run on a schedule (cron, systemd timer, or `manage.py
discovery-job`). Clients are processed one after another; a client that
fails is counted and the job moves on.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import clients as clients_repo
from discovery.incremental import discover_conversations_optimized
from schemas.discovery import DiscoveryJobResult

logger = logging.getLogger(__name__)


def _finish(result: DiscoveryJobResult) -> DiscoveryJobResult:
    result.completed_at = datetime.now(timezone.utc)
    result.duration_ms = int((result.completed_at - result.started_at).total_seconds() * 1000)
    return result


async def run_conversation_discovery_job(
    session: AsyncSession,
    batch_size: Optional[int] = None,
    *,
    log: logging.Logger = logger,
) -> DiscoveryJobResult:
    """Run incremental conversation discovery for all clients. Never raises."""
    started_at = datetime.now(timezone.utc)
    result = DiscoveryJobResult(started_at=started_at, completed_at=started_at, duration_ms=0)
    log.info("Discovery job started at %s", started_at.isoformat())

    try:
        client_codes = await clients_repo.get_all_codes(session)
    except Exception:
        log.error("Discovery job could not list clients", exc_info=True)
        return _finish(result)

    log.info("Discovery job found %d clients", len(client_codes))

    for client_code in client_codes:
        try:
            client_result = await discover_conversations_optimized(
                session, client_code, batch_size, log=log
            )
        except Exception:
            result.clients_failed += 1
            log.error("Discovery failed for client %s", client_code, exc_info=True)
            try:
                await session.rollback()
            except Exception:
                log.error("Rollback after client failure also failed", exc_info=True)
            continue

        result.clients_processed += 1
        result.total_new += client_result.new_count
        result.total_skipped += client_result.skipped_count
        result.total_errors += client_result.error_count
        log.info(
            "Client %s done new=%d skipped=%d errors=%d",
            client_code,
            client_result.new_count,
            client_result.skipped_count,
            client_result.error_count,
        )

    _finish(result)
    log.info(
        "Discovery job completed duration_ms=%d clients=%d failed=%d new=%d skipped=%d errors=%d",
        result.duration_ms,
        result.clients_processed,
        result.clients_failed,
        result.total_new,
        result.total_skipped,
        result.total_errors,
    )
    return result
