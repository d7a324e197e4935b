"""
Run one unsold-item reconciliation pass and print the unsold report
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine
from core.exceptions import ReconciliationError
from core.logging import setup_logging
from reconciliation.unsold import UnsoldItemReconciler

setup_logging()
logger = logging.getLogger(__name__)


async def run_reconcile(days: int) -> int:
    try:
        async with async_session_maker() as session:
            reconciler = UnsoldItemReconciler(session)
            result = await reconciler.reconcile()
            report = await reconciler.unsold_report(days_threshold=days)
    except ReconciliationError as e:
        logger.error(f"Reconciliation failed: {e}")
        return 1
    finally:
        await engine.dispose()

    logger.info(f"Matched {result.new_matches} of {result.items_processed} posted items")
    logger.info(
        f"Unsold after {days} days: {report.summary.total_unsold}/{report.summary.total_posted} "
        f"({report.summary.unsold_rate}%)"
    )
    for item in report.items:
        logger.info(f"  [{item.days_since_posted}d] {item.product_name} ({item.category or 'uncategorized'})")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Match posted items to sales")
    parser.add_argument("--days", type=int, default=settings.UNSOLD_DAYS_THRESHOLD,
                        help="Age in days after which an unmatched item counts as unsold")
    args = parser.parse_args()

    sys.exit(asyncio.run(run_reconcile(args.days)))


if __name__ == "__main__":
    main()
