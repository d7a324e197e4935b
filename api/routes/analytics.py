"""
Analytics and reconciliation endpoints
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Literal, Optional
from api.dependencies import get_db
from analytics.queries import SalesAnalytics
from core.config import settings
from ingestion.synchronizer import BatchSynchronizer
from models.base import ProductCategory
from reconciliation.unsold import UnsoldItemReconciler
from schemas.api import (
    CategoryBreakdownResponse,
    RebuildResult,
    ReconcileResult,
    SalesSummary,
    TopProductsResponse,
    UnsoldReport,
)
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/unsold", response_model=UnsoldReport)
async def get_unsold_items(
    days: int = Query(settings.UNSOLD_DAYS_THRESHOLD, ge=0, description="Minimum age in days"),
    limit: int = Query(settings.UNSOLD_REPORT_LIMIT, ge=1, le=1000, description="Maximum items listed"),
    db: AsyncSession = Depends(get_db)
):
    """Posted items older than the threshold with no matching sale"""
    return await UnsoldItemReconciler(db).unsold_report(days_threshold=days, limit=limit)


@router.post("/unsold", response_model=ReconcileResult)
async def run_reconciliation(request: Request, db: AsyncSession = Depends(get_db)):
    """Match unmatched posted items against sales"""
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(f"[{request_id}] POST /analytics/unsold - running reconciliation")
    return await UnsoldItemReconciler(db).reconcile()


@router.get("/summary", response_model=SalesSummary)
async def get_summary(
    days: Optional[int] = Query(None, ge=1, description="Recent window, by batch sync time"),
    db: AsyncSession = Depends(get_db)
):
    return await SalesAnalytics(db).summary(days=days)


@router.get("/top-products", response_model=TopProductsResponse)
async def get_top_products(
    limit: int = Query(20, ge=1, le=100),
    category: Optional[ProductCategory] = Query(None),
    sort_by: Literal["volume", "revenue", "profit"] = Query("volume"),
    db: AsyncSession = Depends(get_db)
):
    return await SalesAnalytics(db).top_products(limit=limit, category=category, sort_by=sort_by)


@router.get("/categories", response_model=CategoryBreakdownResponse)
async def get_categories(db: AsyncSession = Depends(get_db)):
    return await SalesAnalytics(db).category_breakdown()


@router.post("/rebuild-product-stats", response_model=RebuildResult)
async def rebuild_product_stats(request: Request, db: AsyncSession = Depends(get_db)):
    """Recompute every product's aggregates from stored sales"""
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(f"[{request_id}] POST /analytics/rebuild-product-stats")
    count = await BatchSynchronizer(db).rebuild_product_stats()
    return RebuildResult(products_rebuilt=count)
