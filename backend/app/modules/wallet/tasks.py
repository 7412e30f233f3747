"""Celery tasks for wallet maintenance.

The beat schedule in ``app.core.celery_app`` runs the balance release
hourly; it can also be triggered by hand from ``scripts/run_release_job.py``.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from app.core.celery_app import celery_app
from app.core.database import async_session_maker, engine
from app.modules.wallet.service import WalletService

logger = logging.getLogger(__name__)


async def run_balance_release(now: Optional[datetime] = None) -> dict[str, int]:
    """Release every sale whose anti-fraud hold has elapsed.

    Each Celery run gets its own event loop, so pooled connections are
    dropped before the loop closes.
    """
    try:
        async with async_session_maker() as session:
            service = WalletService(session)
            return await service.release_frozen_balances(now)
    finally:
        await engine.dispose()


@celery_app.task(
    name="wallet.release_frozen_balances",
    bind=True,
    max_retries=3,
    default_retry_delay=300,
)
def release_frozen_balances(self) -> dict:
    """Move matured creator earnings from frozen to available.

    Per-payment failures are logged and counted, not retried; the next run
    picks those payments up again.

    Returns:
        dict: released/skipped/failed counts and the amount moved in cents
    """
    started_at = datetime.utcnow()
    try:
        stats = asyncio.run(run_balance_release(started_at))
    except Exception as exc:
        logger.error(f"Balance release run failed: {exc}")
        raise self.retry(exc=exc)

    return {**stats, "started_at": started_at.isoformat()}
