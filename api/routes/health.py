"""
Health check endpoint with database and sync status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text
from api.dependencies import get_db
from ingestion.transformers.oracle import NormalizationOracle
from models.batch import Batch
from models.sale import Sale
from schemas.api import HealthCheckResponse
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Batch/sale counts and the last sync time
    - Whether the normalization oracle is configured
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    total_batches = 0
    total_sales = 0
    last_sync_at = None

    if db_connected:
        try:
            batch_row = (await db.execute(
                select(func.count(Batch.id), func.max(Batch.synced_at))
            )).one()
            total_batches, last_sync_at = int(batch_row[0]), batch_row[1]
            total_sales = (await db.execute(select(func.count(Sale.id)))).scalar() or 0
        except Exception as e:
            logger.error(f"Failed to fetch sync status: {str(e)}")

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        oracle_configured=NormalizationOracle().enabled,
        total_batches=total_batches,
        total_sales=total_sales,
        last_sync_at=last_sync_at,
    )
