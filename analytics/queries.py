"""
Analytics queries (read-only).

Figures are aggregated from the sales table joined to normalized_products,
not from the running aggregates on products, so they always reflect the
current rows.
"""

from typing import Optional
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
import logging

from models.base import PaymentStatus, ProductCategory
from models.batch import Batch
from models.normalized_product import NormalizedProduct
from models.sale import Sale
from schemas.api import (
    CategoryBreakdownResponse,
    CategoryStats,
    PaymentBreakdown,
    SalesSummary,
    TopProduct,
    TopProductsResponse,
)

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "volume": "total_sales",
    "revenue": "total_revenue",
    "profit": "total_profit",
}


class SalesAnalytics:
    """Reporting queries over batches, sales and products"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def summary(self, days: Optional[int] = None) -> SalesSummary:
        """
        Overall totals; with days set, also the totals of sales from batches
        synced within that window.
        """
        totals = (await self.db.execute(
            select(
                func.count(Sale.id),
                func.coalesce(func.sum(Sale.sale_price_vnd), 0),
                func.coalesce(func.sum(Sale.profit_vnd), 0),
            )
        )).one()
        total_sales, total_revenue, total_profit = int(totals[0]), float(totals[1]), float(totals[2])

        total_customers = (await self.db.execute(
            select(func.count(func.distinct(Sale.customer_name))).where(Sale.customer_name.is_not(None))
        )).scalar() or 0

        total_batches = (await self.db.execute(select(func.count(Batch.id)))).scalar() or 0

        payment_rows = await self.db.execute(
            select(Sale.payment_status, func.count(Sale.id)).group_by(Sale.payment_status)
        )
        payments = {status.value: 0 for status in PaymentStatus}
        for status, count in payment_rows.all():
            payments[PaymentStatus(status).value] = int(count)

        revenue = func.coalesce(func.sum(Sale.sale_price_vnd), 0)
        category_rows = await self.db.execute(
            select(NormalizedProduct.category, revenue)
            .join(Sale, Sale.product_id == NormalizedProduct.id)
            .group_by(NormalizedProduct.category)
            .order_by(revenue.desc())
        )
        revenue_by_category = {
            ProductCategory(category).value: float(amount)
            for category, amount in category_rows.all()
        }

        summary = SalesSummary(
            total_sales=total_sales,
            total_revenue_vnd=total_revenue,
            total_profit_vnd=total_profit,
            average_profit_vnd=total_profit / total_sales if total_sales else 0.0,
            total_customers=total_customers,
            total_batches=total_batches,
            payment_breakdown=PaymentBreakdown(**payments),
            revenue_by_category=revenue_by_category,
            top_category=next(iter(revenue_by_category), None),
        )

        if days is not None:
            since = datetime.utcnow() - timedelta(days=days)
            recent = (await self.db.execute(
                select(
                    func.count(Sale.id),
                    func.coalesce(func.sum(Sale.sale_price_vnd), 0),
                    func.coalesce(func.sum(Sale.profit_vnd), 0),
                )
                .join(Batch, Sale.batch_id == Batch.id)
                .where(Batch.synced_at >= since)
            )).one()
            summary.period_days = days
            summary.recent_sales = int(recent[0])
            summary.recent_revenue_vnd = float(recent[1])
            summary.recent_profit_vnd = float(recent[2])

        return summary

    async def top_products(
        self,
        limit: int = 20,
        category: Optional[ProductCategory] = None,
        sort_by: str = "volume"
    ) -> TopProductsResponse:
        """
        Best sellers.

        Args:
            sort_by: "volume", "revenue" or "profit"; anything else means volume
        """
        sort_by = sort_by if sort_by in SORT_COLUMNS else "volume"

        total_sales = func.count(Sale.id).label("total_sales")
        total_revenue = func.coalesce(func.sum(Sale.sale_price_vnd), 0).label("total_revenue")
        total_profit = func.coalesce(func.sum(Sale.profit_vnd), 0).label("total_profit")
        columns = {"total_sales": total_sales, "total_revenue": total_revenue, "total_profit": total_profit}

        query = (
            select(
                NormalizedProduct.id,
                NormalizedProduct.name,
                NormalizedProduct.category,
                NormalizedProduct.brand,
                total_sales,
                total_revenue,
                total_profit,
                func.coalesce(func.avg(Sale.sale_price_vnd), 0),
                func.coalesce(func.avg(Sale.profit_vnd), 0),
                func.max(Sale.synced_at),
            )
            .join(Sale, Sale.product_id == NormalizedProduct.id)
            .group_by(
                NormalizedProduct.id,
                NormalizedProduct.name,
                NormalizedProduct.category,
                NormalizedProduct.brand,
            )
            .order_by(columns[SORT_COLUMNS[sort_by]].desc(), NormalizedProduct.id)
            .limit(limit)
        )
        if category is not None:
            query = query.where(NormalizedProduct.category == ProductCategory.coerce(category))

        result = await self.db.execute(query)
        products = [
            TopProduct(
                id=row[0],
                name=row[1],
                category=ProductCategory(row[2]).value,
                brand=row[3],
                total_sales=int(row[4]),
                total_revenue_vnd=float(row[5]),
                total_profit_vnd=float(row[6]),
                average_price_vnd=float(row[7]),
                average_profit_vnd=float(row[8]),
                last_sold_at=row[9],
            )
            for row in result.all()
        ]
        return TopProductsResponse(products=products, sort_by=sort_by, total=len(products))

    async def category_breakdown(self) -> CategoryBreakdownResponse:
        """Sales, revenue and profit per product category, highest revenue first"""
        revenue = func.coalesce(func.sum(Sale.sale_price_vnd), 0)
        result = await self.db.execute(
            select(
                NormalizedProduct.category,
                func.count(Sale.id),
                revenue,
                func.coalesce(func.sum(Sale.profit_vnd), 0),
                func.coalesce(func.avg(Sale.profit_vnd), 0),
                func.count(func.distinct(NormalizedProduct.id)),
            )
            .join(Sale, Sale.product_id == NormalizedProduct.id)
            .group_by(NormalizedProduct.category)
            .order_by(revenue.desc())
        )

        categories = []
        for category, count, total_revenue, total_profit, avg_profit, unique_products in result.all():
            total_revenue = float(total_revenue)
            total_profit = float(total_profit)
            categories.append(CategoryStats(
                category=ProductCategory(category).value,
                total_sales=int(count),
                total_revenue_vnd=total_revenue,
                total_profit_vnd=total_profit,
                average_profit_vnd=float(avg_profit),
                profit_margin=round(total_profit / total_revenue * 100, 2) if total_revenue else 0.0,
                unique_products=int(unique_products),
            ))

        return CategoryBreakdownResponse(
            categories=categories,
            total_sales=sum(c.total_sales for c in categories),
            total_revenue_vnd=sum(c.total_revenue_vnd for c in categories),
            total_profit_vnd=sum(c.total_profit_vnd for c in categories),
        )
