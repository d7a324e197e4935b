"""
Spreadsheet synchronization endpoints
"""

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict
from api.dependencies import get_db
from ingestion.runner import BulkImporter
from ingestion.synchronizer import BatchSynchronizer
from schemas.sheets import BulkImportResult, SyncResult
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sheets", tags=["Sheets"])


@router.post("/sync", response_model=SyncResult)
async def sync_sheet(
    request: Request,
    payload: Dict[str, Any] = Body(..., description="sheetName, headers, rows and optional exchangeRate"),
    db: AsyncSession = Depends(get_db)
):
    """
    Incrementally sync one sheet.

    Safe to call repeatedly with the same sheet: rows are upserted by
    (batch, row number).
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(f"[{request_id}] POST /sheets/sync - sheet={payload.get('sheetName')!r}")

    return await BatchSynchronizer(db).sync(payload)


@router.post("/bulk-import", response_model=BulkImportResult)
async def bulk_import(
    request: Request,
    payload: Dict[str, Any] = Body(..., description="sheets list and optional exchangeRate"),
    db: AsyncSession = Depends(get_db)
):
    """
    Full reload of many sheets.

    A failing sheet is reported in its result entry; the remaining sheets
    are still imported.
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    sheets = payload.get("sheets")
    logger.info(
        f"[{request_id}] POST /sheets/bulk-import - "
        f"sheets={len(sheets) if isinstance(sheets, list) else 'missing'}"
    )

    return await BulkImporter(db).run(payload)
