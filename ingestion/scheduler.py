import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker
from core.config import settings
from core.database import async_session_maker
from reconciliation.unsold import UnsoldItemReconciler
from schemas.api import ReconcileResult

logger = logging.getLogger(__name__)


class ReconciliationScheduler:
    """Run the Unsold-Item Reconciler on a fixed interval"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        interval_minutes: Optional[int] = None
    ):
        self.scheduler = AsyncIOScheduler()
        self.SessionLocal = session_factory or async_session_maker
        self.interval_minutes = interval_minutes or settings.RECONCILE_INTERVAL_MINUTES

    async def run_reconcile_job(self) -> Optional[ReconcileResult]:
        """Job to run one reconciliation pass"""
        logger.info("Scheduler: Starting reconciliation job")
        async with self.SessionLocal() as session:
            try:
                result = await UnsoldItemReconciler(session).reconcile()
                logger.info(
                    f"Scheduler: Reconciliation matched {result.new_matches} "
                    f"of {result.items_processed} items"
                )
                return result
            except Exception as e:
                logger.error(f"Scheduler: Reconciliation job failed - {e}")
                return None

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_reconcile_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="reconcile_job",
            replace_existing=True
        )
        self.scheduler.start()
        logger.info(f"Reconciliation scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Reconciliation scheduler stopped")
