"""ExpiryScheduler — drives deadline-based transitions.

Each tick:
  1. finalize every RESOLVED market whose dispute window has passed
  2. resolve every ACTIVE dispute whose voting period has passed

Each item runs in its own session and transaction, so one failure never
blocks the others; failures are logged and retried on the next tick.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from config.settings import settings
from src.amm_common.database import async_session_factory
from src.amm_common.datetime_utils import utc_now
from src.amm_dispute.application.service import DisputeService
from src.amm_dispute.domain.repository import DisputeRepositoryProtocol
from src.amm_dispute.infrastructure.persistence import DisputeRepository
from src.amm_ledger.domain.service import SettlementLedger
from src.amm_market.domain.repository import MarketRepositoryProtocol
from src.amm_market.infrastructure.persistence import MarketRepository

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    finalized: list[str] = field(default_factory=list)
    disputes_resolved: list[str] = field(default_factory=list)
    failures: int = 0


class ExpiryScheduler:
    def __init__(
        self,
        ledger: SettlementLedger | None = None,
        disputes: DisputeService | None = None,
        market_repo: MarketRepositoryProtocol | None = None,
        dispute_repo: DisputeRepositoryProtocol | None = None,
        session_factory: Callable[[], Any] = async_session_factory,
        interval_seconds: int | None = None,
    ) -> None:
        self._ledger = ledger or SettlementLedger()
        self._disputes = disputes or DisputeService()
        self._market_repo: MarketRepositoryProtocol = market_repo or MarketRepository()
        self._dispute_repo: DisputeRepositoryProtocol = dispute_repo or DisputeRepository()
        self._session_factory = session_factory
        self._interval = interval_seconds or settings.SCHEDULER_INTERVAL_SECONDS
        self._task: asyncio.Task[None] | None = None
        self._should_run = False

    async def run_once(self, now: datetime | None = None) -> TickReport:
        now = now or utc_now()
        report = TickReport()

        async with self._session_factory() as db:
            market_ids = await self._market_repo.list_expired_resolved(db, now)
        for market_id in market_ids:
            try:
                async with self._session_factory() as db:
                    result = await self._ledger.finalize(db, market_id, now)
                if not result.already_finalized:
                    report.finalized.append(market_id)
            except Exception:
                report.failures += 1
                logger.exception("Finalize failed for market %s", market_id)

        cutoff = now - timedelta(hours=settings.DISPUTE_VOTING_HOURS)
        async with self._session_factory() as db:
            dispute_ids = await self._dispute_repo.list_expired_active(db, cutoff)
        for dispute_id in dispute_ids:
            try:
                async with self._session_factory() as db:
                    await self._disputes.resolve(db, dispute_id, now)
                report.disputes_resolved.append(dispute_id)
            except Exception:
                report.failures += 1
                logger.exception("Dispute resolution failed for %s", dispute_id)

        if report.finalized or report.disputes_resolved or report.failures:
            logger.info(
                "Expiry tick: %d finalized, %d disputes resolved, %d failures",
                len(report.finalized), len(report.disputes_resolved), report.failures,
            )
        return report

    def start(self) -> None:
        if self._task is not None:
            return
        self._should_run = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Expiry scheduler started (every %ds)", self._interval)

    async def stop(self) -> None:
        self._should_run = False
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiry scheduler stopped")

    async def _loop(self) -> None:
        while self._should_run:
            try:
                await self.run_once()
            except Exception:
                # Listing queries failed (DB down); try again next tick
                logger.exception("Expiry tick failed")
            await asyncio.sleep(self._interval)
