# ============================================================================
# File: ingestion/runner.py
# Description: Bulk importer driving the batch synchronizer across many sheets
# ============================================================================
"""
Bulk Importer - full-reload import of many sheets in one call.

This module provides:
- Per-sheet payload validation (a bad sheet is an error entry, not a crash)
- Skip rules for non-sales, inventory and empty sheets
- Rollback of a failed sheet's session work before moving on
- Aggregate run counts plus a per-sheet detail list
"""

from typing import Any, Dict, Optional, Set, Union
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from core.config import settings
from core.exceptions import PipelineException, SchemaValidationError
from ingestion.parsers.sheet_parser import parse_sheet
from ingestion.synchronizer import BatchSynchronizer, skip_reason, validate_sheet_payload
from ingestion.transformers.normalizer import ProductNormalizer
from models.base import SyncStatus
from schemas.sheets import BulkImportPayload, BulkImportResult, SheetResult

logger = logging.getLogger(__name__)


class BulkImporter:
    """
    Bulk import orchestrator

    Responsibilities:
    - Drive BatchSynchronizer.import_parsed for every sheet
    - Never let one sheet's failure stop the remaining sheets
    - Count distinct products across the whole run
    """

    def __init__(self, db_session: AsyncSession, normalizer: Optional[ProductNormalizer] = None):
        self.db = db_session
        self.synchronizer = BatchSynchronizer(db_session, normalizer)

    async def run(self, payload: Union[BulkImportPayload, Dict[str, Any]]) -> BulkImportResult:
        """
        Import every sheet of a bulk payload.

        Returns:
            BulkImportResult with processed/skipped/failed counts

        Raises:
            SchemaValidationError: When the top-level payload is malformed
                (for example, no "sheets" list)
        """
        payload = _validate_bulk_payload(payload)
        default_rate = payload.exchange_rate or settings.DEFAULT_EXCHANGE_RATE

        result = BulkImportResult(total_sheets=len(payload.sheets))
        product_ids: Set[int] = set()

        logger.info(f"Starting bulk import of {result.total_sheets} sheets")

        for index, raw_sheet in enumerate(payload.sheets):
            sheet_name = _sheet_label(raw_sheet, index)

            try:
                sheet = validate_sheet_payload(raw_sheet)
            except SchemaValidationError as e:
                self._record_error(result, sheet_name, f"{e.message}: {e.context.get('field_errors')}")
                continue

            sheet_name = sheet.sheet_name
            reason = skip_reason(sheet_name)
            if reason:
                logger.info(f"Skipping sheet '{sheet_name}': {reason}")
                self._record_skip(result, sheet_name, reason)
                continue

            try:
                parsed = parse_sheet(
                    sheet_name, sheet.headers, sheet.rows, sheet.exchange_rate or default_rate
                )
                if not parsed.rows:
                    self._record_skip(result, sheet_name, "No valid rows")
                    continue

                sync_result = await self.synchronizer.import_parsed(parsed)

            except PipelineException as e:
                await self.db.rollback()
                logger.error(
                    f"Sheet '{sheet_name}' failed: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                self._record_error(result, sheet_name, e.message)
                continue

            except Exception as e:
                await self.db.rollback()
                logger.exception(f"Unexpected error importing sheet '{sheet_name}'")
                self._record_error(result, sheet_name, str(e))
                continue

            result.processed_sheets += 1
            result.total_rows += sync_result.rows_processed
            product_ids.update(sync_result.product_ids)
            result.sheet_results.append(SheetResult(
                sheet_name=sheet_name,
                status=SyncStatus.SUCCESS,
                batch_id=sync_result.batch_id,
                rows_processed=sync_result.rows_processed,
            ))

        result.total_products = len(product_ids)

        logger.info(
            f"Bulk import completed - Processed: {result.processed_sheets}, "
            f"Skipped: {result.skipped_sheets}, Failed: {result.failed_sheets}, "
            f"Rows: {result.total_rows}, Products: {result.total_products}"
        )
        return result

    @staticmethod
    def _record_skip(result: BulkImportResult, sheet_name: str, reason: str) -> None:
        result.skipped_sheets += 1
        result.sheet_results.append(
            SheetResult(sheet_name=sheet_name, status=SyncStatus.SKIPPED, message=reason)
        )

    @staticmethod
    def _record_error(result: BulkImportResult, sheet_name: str, message: str) -> None:
        result.failed_sheets += 1
        result.errors.append(f"{sheet_name}: {message}")
        result.sheet_results.append(
            SheetResult(sheet_name=sheet_name, status=SyncStatus.ERROR, message=message)
        )


def _validate_bulk_payload(payload: Union[BulkImportPayload, Dict[str, Any]]) -> BulkImportPayload:
    if isinstance(payload, BulkImportPayload):
        return payload
    try:
        return BulkImportPayload.model_validate(payload)
    except ValidationError as e:
        raise SchemaValidationError(
            "Invalid bulk import payload",
            context={
                "field_errors": [
                    f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                ],
            },
            original_exception=e
        )


def _sheet_label(raw_sheet: Any, index: int) -> str:
    if isinstance(raw_sheet, dict):
        name = raw_sheet.get("sheetName") or raw_sheet.get("sheet_name")
        if isinstance(name, str) and name.strip():
            return name.strip()
    return f"sheet #{index + 1}"
