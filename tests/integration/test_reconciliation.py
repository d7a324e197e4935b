"""
Integration tests for posted-item reconciliation and the unsold report
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import OperationalError
from core.exceptions import ReconciliationError
from models.base import PaymentStatus
from models.batch import Batch
from models.normalized_product import NormalizedProduct
from models.posted_item import PostedItem
from models.sale import Sale
from reconciliation.posted_items import PostedItemService
from reconciliation.unsold import UnsoldItemReconciler, fuzzy_pattern
from schemas.api import PostedItemCreate, PostedItemUpdate

NOW = datetime(2025, 11, 20, 12, 0, 0)


async def add_product(session, key):
    product = NormalizedProduct(name=key.title(), name_normalized=key)
    session.add(product)
    await session.commit()
    return product.id


async def add_sale(session, raw_name, synced_at, product_id=None, row_number=1, sheet_name="Đợt 1"):
    batch = Batch(sheet_name=f"{sheet_name} #{row_number}")
    session.add(batch)
    await session.flush()
    sale = Sale(
        batch_id=batch.id,
        row_number=row_number,
        product_name_raw=raw_name,
        product_id=product_id,
        sale_price_vnd=500000,
        payment_status=PaymentStatus.PAID,
        synced_at=synced_at,
    )
    session.add(sale)
    await session.commit()
    return sale.id


async def add_posted(session, name, posted_at, product_id=None, category=None, sold=False):
    item = PostedItem(
        product_name=name,
        product_id=product_id,
        category=category,
        posted_at=posted_at,
        sold=sold,
    )
    session.add(item)
    await session.commit()
    return item.id


class TestFuzzyPattern:
    """LIKE pattern from a posted name"""

    def test_first_three_tokens(self):
        assert fuzzy_pattern("Vitamin C 1000mg Tablets") == "%vitamin%c%1000mg%"

    def test_short_name(self):
        assert fuzzy_pattern("Glucosamine") == "%glucosamine%"

    def test_wildcards_escaped(self):
        assert fuzzy_pattern("50% off_sale") == "%50\\%%off\\_sale%"

    def test_blank_name(self):
        assert fuzzy_pattern("   ") is None


class TestReconcile:
    """Linking posted items to sales"""

    @pytest.mark.asyncio
    async def test_fuzzy_match(self, db_session, session_factory):
        posted_at = datetime.utcnow() - timedelta(days=1)
        item_id = await add_posted(db_session, "Vitamin C 1000mg Tablets", posted_at)
        sale_id = await add_sale(db_session, "Vitamin C 1000mg Tablets 90ct - customer Mai", datetime.utcnow())

        result = await UnsoldItemReconciler(db_session).reconcile()

        assert result.items_processed == 1
        assert result.new_matches == 1
        assert result.matches[0].tier == "fuzzy"
        assert result.matches[0].sale_id == sale_id

        async with session_factory() as session:
            item = await session.get(PostedItem, item_id)
        assert item.sold is True
        assert item.matched_sale_id == sale_id
        assert item.matched_at is not None

    @pytest.mark.asyncio
    async def test_exact_match_on_identity(self, db_session):
        product_id = await add_product(db_session, "kirkland glucosamine")
        await add_posted(db_session, "Glucosamine Costco hàng mới", NOW - timedelta(days=2), product_id=product_id)
        early = await add_sale(db_session, "glucosamine kirland", NOW - timedelta(days=1), product_id, row_number=1)
        await add_sale(db_session, "glucosamine kirland", NOW, product_id, row_number=2)

        result = await UnsoldItemReconciler(db_session).reconcile()

        assert result.new_matches == 1
        assert result.matches[0].tier == "exact"
        assert result.matches[0].sale_id == early

    @pytest.mark.asyncio
    async def test_sale_before_posting_not_matched(self, db_session, session_factory):
        product_id = await add_product(db_session, "vitamin c 1000mg tablets")
        item_id = await add_posted(db_session, "Vitamin C 1000mg Tablets", NOW - timedelta(days=1), product_id=product_id)
        await add_sale(db_session, "Vitamin C 1000mg Tablets", NOW - timedelta(days=3), product_id)

        result = await UnsoldItemReconciler(db_session).reconcile()

        assert result.items_processed == 1
        assert result.new_matches == 0

        async with session_factory() as session:
            item = await session.get(PostedItem, item_id)
        assert item.sold is False
        assert item.matched_sale_id is None

    @pytest.mark.asyncio
    async def test_matched_items_are_not_candidates(self, db_session):
        await add_posted(db_session, "Vitamin C 1000mg Tablets", NOW - timedelta(days=1))
        await add_sale(db_session, "vitamin c 1000mg tablets", NOW)

        first = await UnsoldItemReconciler(db_session).reconcile()
        second = await UnsoldItemReconciler(db_session).reconcile()

        assert first.new_matches == 1
        assert second.items_processed == 0
        assert second.new_matches == 0

    @pytest.mark.asyncio
    async def test_database_failure_raises(self):
        item = PostedItem(id=7, product_name="Vitamin C", product_id=None, posted_at=NOW, sold=False)
        candidates = MagicMock()
        candidates.scalars.return_value.all.return_value = [item]

        session = MagicMock()
        session.execute = AsyncMock(side_effect=[candidates, OperationalError("SELECT", {}, Exception("locked"))])
        session.rollback = AsyncMock()

        with pytest.raises(ReconciliationError) as exc_info:
            await UnsoldItemReconciler(session).reconcile()

        assert exc_info.value.context["posted_item_id"] == 7
        assert session.rollback.called


class TestUnsoldReport:
    """Read-only stale inventory view"""

    @pytest.mark.asyncio
    async def test_threshold(self, db_session):
        item_id = await add_posted(db_session, "Son Dior 999", NOW - timedelta(days=20), category="cosmetics")

        stale = await UnsoldItemReconciler(db_session).unsold_report(days_threshold=14, now=NOW)
        fresh = await UnsoldItemReconciler(db_session).unsold_report(days_threshold=30, now=NOW)

        assert [item.id for item in stale.items] == [item_id]
        assert stale.items[0].days_since_posted == 20
        assert stale.summary.total_unsold == 1
        assert stale.summary.unsold_rate == 100.0
        assert stale.summary.days_threshold == 14

        assert fresh.items == []
        assert fresh.summary.total_posted == 1
        assert fresh.summary.total_unsold == 0
        assert fresh.summary.unsold_rate == 0.0

    @pytest.mark.asyncio
    async def test_breakdown_and_exclusions(self, db_session):
        await add_posted(db_session, "Sữa rửa mặt Kiehl's", NOW - timedelta(days=40), category="skincare")
        await add_posted(db_session, "Kem dưỡng Kiehl's", NOW - timedelta(days=30), category="skincare")
        await add_posted(db_session, "Túi Kate Spade", NOW - timedelta(days=25))
        await add_posted(db_session, "Son Dior 999", NOW - timedelta(days=60), category="cosmetics", sold=True)
        await add_posted(db_session, "Bỉm Huggies", NOW - timedelta(days=1), category="baby")

        report = await UnsoldItemReconciler(db_session).unsold_report(days_threshold=14, now=NOW)

        assert [item.product_name for item in report.items] == [
            "Sữa rửa mặt Kiehl's", "Kem dưỡng Kiehl's", "Túi Kate Spade"
        ]
        breakdown = {entry.category: entry.count for entry in report.category_breakdown}
        assert breakdown == {"skincare": 2, "uncategorized": 1}
        assert report.summary.total_posted == 5
        assert report.summary.total_unsold == 3
        assert report.summary.unsold_rate == 60.0

    @pytest.mark.asyncio
    async def test_limit_keeps_oldest(self, db_session):
        for days in (15, 45, 30):
            await add_posted(db_session, f"Item {days}", NOW - timedelta(days=days))

        report = await UnsoldItemReconciler(db_session).unsold_report(days_threshold=14, limit=2, now=NOW)

        assert [item.days_since_posted for item in report.items] == [45, 30]
        assert report.summary.total_unsold == 3


class TestPostedItemService:
    """Logging and manual updates"""

    @pytest.mark.asyncio
    async def test_log_item_links_identity(self, db_session, normalizer, fake_oracle):
        fake_oracle.responses["glucosamine kirland costco"] = {
            "name": "Kirkland Glucosamine", "category": "supplements", "brand": "Kirkland"
        }
        service = PostedItemService(db_session, normalizer)

        item = await service.log_item(PostedItemCreate(productName="glucosamine kirland costco", costUsd=20))

        assert item.id is not None
        assert item.product_id is not None
        assert item.category == "supplements"
        assert item.brand == "Kirkland"
        assert item.sold is False
        assert item.posted_at is not None

    @pytest.mark.asyncio
    async def test_caller_category_wins(self, db_session, normalizer):
        service = PostedItemService(db_session, normalizer)

        item = await service.log_item(PostedItemCreate(product_name="Túi Kate Spade", category="bags"))

        assert item.category == "bags"

    @pytest.mark.asyncio
    async def test_linking_a_sale_implies_sold(self, db_session, normalizer):
        service = PostedItemService(db_session, normalizer)
        item = await service.log_item(PostedItemCreate(product_name="Vitamin C 1000mg"))
        sale_id = await add_sale(db_session, "Vitamin C 1000mg", NOW)

        updated = await service.update(item.id, PostedItemUpdate(matchedSaleId=sale_id))

        assert updated.sold is True
        assert updated.matched_sale_id == sale_id
        assert updated.matched_at is not None

    @pytest.mark.asyncio
    async def test_linking_unknown_sale_rejected(self, db_session, normalizer):
        service = PostedItemService(db_session, normalizer)
        item = await service.log_item(PostedItemCreate(product_name="Vitamin C 1000mg"))

        with pytest.raises(ValueError):
            await service.update(item.id, PostedItemUpdate(matched_sale_id=999))

    @pytest.mark.asyncio
    async def test_list_and_delete(self, db_session, normalizer):
        service = PostedItemService(db_session, normalizer)
        first = await service.log_item(PostedItemCreate(product_name="A item", postedAt=NOW - timedelta(days=2)))
        second = await service.log_item(PostedItemCreate(product_name="B item", postedAt=NOW))
        await service.update(first.id, PostedItemUpdate(sold=True))

        assert [i.id for i in await service.list_items()] == [second.id, first.id]
        assert [i.id for i in await service.list_items(sold=False)] == [second.id]

        assert await service.delete(second.id) is True
        assert await service.delete(second.id) is False
        assert await service.update(second.id, PostedItemUpdate(sold=True)) is None
