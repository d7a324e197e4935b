"""
Write batches, sales and product aggregates (idempotency building blocks)
"""

from typing import Dict, List, Optional, Tuple
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from core.database import dialect_insert
from core.exceptions import UpsertError
from models.batch import Batch
from models.sale import Sale
from models.normalized_product import NormalizedProduct
from schemas.sheets import ParsedSheet, SaleRecord
import logging

logger = logging.getLogger(__name__)


class SalesLoader:
    """
    Storage operations used by the batch synchronizer.

    Ensures:
    - One Batch per sheet name, one Sale per (batch_id, row_number)
    - Product aggregates only move through atomic increments
    - Batch totals are recomputed from stored sales, never tracked incrementally

    Callers own the transaction; nothing here commits.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def get_batch(self, sheet_name: str) -> Optional[Batch]:
        result = await self.db.execute(
            select(Batch).where(Batch.sheet_name == sheet_name)
        )
        return result.scalar_one_or_none()

    async def get_or_create_batch(self, parsed: ParsedSheet) -> Tuple[Batch, bool]:
        """
        Insert-or-fetch the batch for a sheet.

        Returns:
            (batch, created)
        """
        batch = await self.get_batch(parsed.sheet_name)
        if batch is not None:
            return batch, False

        stmt = dialect_insert(self.db, Batch).values(
            sheet_name=parsed.sheet_name,
            batch_number=parsed.batch_number,
            batch_date=parsed.batch_date,
            exchange_rate=parsed.exchange_rate,
        ).on_conflict_do_nothing(index_elements=["sheet_name"])
        result = await self.db.execute(stmt)
        created = result.rowcount == 1

        batch = await self.get_batch(parsed.sheet_name)
        if batch is None:
            raise UpsertError(
                "Batch vanished after insert-or-fetch",
                context={"table_name": "batches", "conflict_fields": ["sheet_name"],
                         "key": parsed.sheet_name}
            )

        logger.info(f"{'Created' if created else 'Reused'} batch {batch.id} for sheet '{parsed.sheet_name}'")
        return batch, created

    async def refresh_batch_totals(self, batch: Batch) -> Batch:
        """Recompute item count, revenue and profit from the batch's stored sales"""
        result = await self.db.execute(
            select(
                func.count(Sale.id),
                func.coalesce(func.sum(Sale.sale_price_vnd), 0),
                func.coalesce(func.sum(Sale.profit_vnd), 0),
            ).where(Sale.batch_id == batch.id)
        )
        total_items, total_revenue, total_profit = result.one()

        batch.total_items = int(total_items or 0)
        batch.total_revenue_vnd = float(total_revenue or 0)
        batch.total_profit_vnd = float(total_profit or 0)
        batch.synced_at = datetime.utcnow()
        await self.db.flush()
        return batch

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    async def get_sales_by_row(self, batch_id: int) -> Dict[int, Sale]:
        result = await self.db.execute(
            select(Sale).where(Sale.batch_id == batch_id)
        )
        return {sale.row_number: sale for sale in result.scalars().all()}

    async def insert_sale(
        self,
        batch_id: int,
        record: SaleRecord,
        product_id: Optional[int],
        synced_at: Optional[datetime] = None
    ) -> Sale:
        sale = Sale(
            batch_id=batch_id,
            row_number=record.row_number,
            product_id=product_id,
            synced_at=synced_at or datetime.utcnow(),
            **_sale_values(record),
        )
        self.db.add(sale)
        await self.db.flush()
        return sale

    async def update_sale(
        self,
        sale: Sale,
        record: SaleRecord,
        product_id: Optional[int],
        synced_at: Optional[datetime] = None
    ) -> Sale:
        for column, value in _sale_values(record).items():
            setattr(sale, column, value)
        sale.product_id = product_id
        sale.synced_at = synced_at or datetime.utcnow()
        await self.db.flush()
        return sale

    async def clear_batch_sales(self, batch_id: int) -> int:
        """
        Delete every sale of a batch, first withdrawing each one's
        contribution from its product aggregates.

        Returns:
            Number of sales deleted
        """
        result = await self.db.execute(
            select(
                Sale.product_id,
                func.count(Sale.id),
                func.coalesce(func.sum(Sale.sale_price_vnd), 0),
                func.coalesce(func.sum(Sale.profit_vnd), 0),
            )
            .where(Sale.batch_id == batch_id, Sale.product_id.is_not(None))
            .group_by(Sale.product_id)
        )
        for product_id, count, revenue, profit in result.all():
            await self.apply_product_delta(
                product_id, sales=-int(count), revenue=-float(revenue), profit=-float(profit)
            )

        deleted = await self.db.execute(delete(Sale).where(Sale.batch_id == batch_id))
        logger.info(f"Cleared {deleted.rowcount} sales from batch {batch_id}")
        return deleted.rowcount

    # ------------------------------------------------------------------
    # Product aggregates
    # ------------------------------------------------------------------

    async def apply_product_delta(
        self,
        product_id: int,
        sales: int = 0,
        revenue: float = 0.0,
        profit: float = 0.0,
        sold_at: Optional[datetime] = None
    ) -> None:
        """Atomic increment (UPDATE ... SET x = x + delta); safe across concurrent batches"""
        if not sales and not revenue and not profit and sold_at is None:
            return

        values = {
            "total_sales": NormalizedProduct.total_sales + sales,
            "total_revenue_vnd": NormalizedProduct.total_revenue_vnd + revenue,
            "total_profit_vnd": NormalizedProduct.total_profit_vnd + profit,
            "updated_at": datetime.utcnow(),
        }
        if sold_at is not None:
            values["last_sold_at"] = sold_at

        await self.db.execute(
            update(NormalizedProduct)
            .where(NormalizedProduct.id == product_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def rebuild_product_stats(self) -> int:
        """
        Recompute every product's aggregates from the sales table.

        Returns:
            Number of products with at least one sale
        """
        await self.db.execute(
            update(NormalizedProduct)
            .values(
                total_sales=0,
                total_revenue_vnd=0,
                total_profit_vnd=0,
                last_sold_at=None,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        result = await self.db.execute(
            select(
                Sale.product_id,
                func.count(Sale.id),
                func.coalesce(func.sum(Sale.sale_price_vnd), 0),
                func.coalesce(func.sum(Sale.profit_vnd), 0),
                func.max(Sale.synced_at),
            )
            .where(Sale.product_id.is_not(None))
            .group_by(Sale.product_id)
        )
        rows: List = result.all()

        for product_id, count, revenue, profit, last_sold in rows:
            await self.db.execute(
                update(NormalizedProduct)
                .where(NormalizedProduct.id == product_id)
                .values(
                    total_sales=int(count),
                    total_revenue_vnd=float(revenue),
                    total_profit_vnd=float(profit),
                    last_sold_at=last_sold,
                )
                .execution_options(synchronize_session=False)
            )

        logger.info(f"Rebuilt aggregates for {len(rows)} products")
        return len(rows)


def _sale_values(record: SaleRecord) -> Dict:
    """Column values of a Sale taken from a parsed row"""
    return {
        "customer_name": record.customer_name,
        "product_name_raw": record.product_name,
        "cost_usd": record.cost_usd,
        "cost_vnd": record.cost_vnd,
        "shipping_cost_vnd": record.shipping_cost,
        "weight_kg": record.weight,
        "sale_price_vnd": record.sale_price,
        "profit_vnd": record.profit,
        "quantity": record.quantity,
        "payment_status": record.payment_status,
    }
