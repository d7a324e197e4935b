"""
Unsold-Item Reconciler.

Links posted items to the sale that cleared them:

1. exact: earliest sale of the same product identity synced at or after
   the posting time
2. fuzzy: earliest sale whose lower-cased raw name contains the first three
   tokens of the posted name, in order, synced at or after the posting time

Items without a match are left untouched and stay candidates for the next
pass. The unsold report is a read-only view and never mutates anything.
"""

from typing import List, Optional
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
import logging

from core.config import settings
from core.exceptions import ReconciliationError
from models.posted_item import PostedItem
from models.sale import Sale
from schemas.api import (
    CategoryCount,
    ReconcileMatch,
    ReconcileResult,
    UnsoldItem,
    UnsoldReport,
    UnsoldSummary,
)

logger = logging.getLogger(__name__)

FUZZY_TOKEN_COUNT = 3


def fuzzy_pattern(product_name: str) -> Optional[str]:
    """
    LIKE pattern for the fuzzy tier, or None when the name has no tokens.

    "Vitamin C 1000mg Tablets" -> "%vitamin%c%1000mg%"
    """
    tokens = product_name.lower().split()[:FUZZY_TOKEN_COUNT]
    if not tokens:
        return None
    escaped = [
        token.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        for token in tokens
    ]
    return f"%{'%'.join(escaped)}%"


class UnsoldItemReconciler:
    """Match posted items against sales and report stale inventory"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def reconcile(self) -> ReconcileResult:
        """
        Run one reconciliation pass over every unmatched posted item.

        Each match is committed as soon as it is made.
        """
        result = await self.db.execute(
            select(PostedItem)
            .where(PostedItem.sold.is_(False), PostedItem.matched_sale_id.is_(None))
            .order_by(PostedItem.posted_at, PostedItem.id)
        )
        candidates: List[PostedItem] = list(result.scalars().all())

        outcome = ReconcileResult(items_processed=len(candidates))
        logger.info(f"Reconciling {len(candidates)} unmatched posted items")

        for item in candidates:
            item_id = item.id
            try:
                tier = "exact"
                sale_id = await self._exact_match(item)
                if sale_id is None:
                    tier = "fuzzy"
                    sale_id = await self._fuzzy_match(item)

                if sale_id is None:
                    continue

                item.sold = True
                item.matched_sale_id = sale_id
                item.matched_at = datetime.utcnow()
                await self.db.commit()

            except SQLAlchemyError as e:
                await self.db.rollback()
                raise ReconciliationError(
                    "Failed to reconcile posted item",
                    context={"posted_item_id": item_id, "matched": outcome.new_matches},
                    original_exception=e
                )

            outcome.new_matches += 1
            outcome.matches.append(ReconcileMatch(posted_item_id=item_id, sale_id=sale_id, tier=tier))
            logger.debug(f"Posted item {item_id} matched sale {sale_id} ({tier})")

        logger.info(
            f"Reconciliation completed - Processed: {outcome.items_processed}, "
            f"New matches: {outcome.new_matches}"
        )
        return outcome

    async def _exact_match(self, item: PostedItem) -> Optional[int]:
        if item.product_id is None:
            return None
        result = await self.db.execute(
            select(Sale.id)
            .where(Sale.product_id == item.product_id, Sale.synced_at >= item.posted_at)
            .order_by(Sale.synced_at, Sale.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _fuzzy_match(self, item: PostedItem) -> Optional[int]:
        pattern = fuzzy_pattern(item.product_name)
        if pattern is None:
            return None
        result = await self.db.execute(
            select(Sale.id)
            .where(
                func.lower(Sale.product_name_raw).like(pattern, escape="\\"),
                Sale.synced_at >= item.posted_at,
            )
            .order_by(Sale.synced_at, Sale.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def unsold_report(
        self,
        days_threshold: Optional[int] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> UnsoldReport:
        """
        Posted items older than the threshold that still have no sale link.

        Args:
            days_threshold: Minimum age in days (default from settings)
            limit: Maximum items listed, oldest first (default from settings)
            now: Reference time for ages (default: current UTC time)
        """
        days_threshold = settings.UNSOLD_DAYS_THRESHOLD if days_threshold is None else days_threshold
        limit = settings.UNSOLD_REPORT_LIMIT if limit is None else limit
        now = now or datetime.utcnow()
        cutoff = now - timedelta(days=days_threshold)

        unsold_filter = (
            PostedItem.sold.is_(False),
            PostedItem.matched_sale_id.is_(None),
            PostedItem.posted_at < cutoff,
        )

        result = await self.db.execute(
            select(PostedItem)
            .where(*unsold_filter)
            .order_by(PostedItem.posted_at, PostedItem.id)
            .limit(limit)
        )
        items = [
            UnsoldItem(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product_name,
                category=item.category,
                brand=item.brand,
                source_store=item.source_store,
                posted_at=item.posted_at,
                cost_usd=item.cost_usd,
                listed_price_vnd=item.listed_price_vnd,
                days_since_posted=(now - item.posted_at).days,
            )
            for item in result.scalars().all()
        ]

        category = func.coalesce(PostedItem.category, "uncategorized")
        breakdown_result = await self.db.execute(
            select(category, func.count(PostedItem.id))
            .where(*unsold_filter)
            .group_by(category)
            .order_by(func.count(PostedItem.id).desc(), category)
        )
        breakdown = [
            CategoryCount(category=name, count=int(count))
            for name, count in breakdown_result.all()
        ]

        total_posted = (await self.db.execute(select(func.count(PostedItem.id)))).scalar() or 0
        total_unsold = sum(entry.count for entry in breakdown)
        unsold_rate = (total_unsold / total_posted) * 100 if total_posted else 0.0

        return UnsoldReport(
            items=items,
            category_breakdown=breakdown,
            summary=UnsoldSummary(
                total_posted=total_posted,
                total_unsold=total_unsold,
                unsold_rate=round(unsold_rate, 2),
                days_threshold=days_threshold,
            ),
        )
