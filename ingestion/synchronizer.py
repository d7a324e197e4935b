"""
Batch Synchronizer - idempotent sync of one sheet into batches/sales.

Two write paths share the parsing front end:

- sync / sync_parsed: incremental upsert keyed by (batch, row_number).
  Re-running it on the same sheet converges to the same state; edited rows
  move product aggregates by the difference only.
- import_parsed: full reload used for historical imports. Existing sales of
  the batch are withdrawn from product aggregates, deleted, and re-inserted
  in one transaction.
"""

from typing import Any, Dict, Iterable, Optional, Union
from datetime import datetime
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from core.exceptions import SchemaValidationError
from ingestion.loaders.sales_loader import SalesLoader
from ingestion.parsers.sheet_parser import is_inventory_sheet, parse_sheet, should_skip_sheet
from ingestion.transformers.normalizer import ProductNormalizer
from models.base import SyncStatus
from schemas.sheets import ParsedSheet, SheetPayload, SyncResult

logger = logging.getLogger(__name__)


def validate_sheet_payload(payload: Union[SheetPayload, Dict[str, Any]]) -> SheetPayload:
    """
    Enforce the inbound contract for one sheet.

    Raises:
        SchemaValidationError: When required fields are missing or malformed
    """
    if isinstance(payload, SheetPayload):
        return payload
    try:
        return SheetPayload.model_validate(payload)
    except ValidationError as e:
        sheet_name = payload.get("sheetName", payload.get("sheet_name")) if isinstance(payload, dict) else None
        raise SchemaValidationError(
            "Invalid sheet payload",
            context={
                "sheet_name": sheet_name,
                "field_errors": [
                    f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                ],
            },
            original_exception=e
        )


def skip_reason(sheet_name: str) -> Optional[str]:
    """Why a sheet holds no sales, or None when it should be processed"""
    if should_skip_sheet(sheet_name):
        return "Non-sales sheet"
    if is_inventory_sheet(sheet_name):
        return "Inventory sheet"
    return None


class BatchSynchronizer:
    """
    Synchronize one sheet at a time.

    Attributes:
        db: Session shared with the normalizer and loader
        normalizer: Product Identity Resolver
        loader: Batch/Sale/aggregate writes
    """

    def __init__(self, db_session: AsyncSession, normalizer: Optional[ProductNormalizer] = None):
        self.db = db_session
        self.normalizer = normalizer or ProductNormalizer(db_session)
        self.loader = SalesLoader(db_session)

    async def sync(self, payload: Union[SheetPayload, Dict[str, Any]]) -> SyncResult:
        """
        Incremental sync entry point for a raw sheet payload.

        The exchange rate comes from the payload, else from the batch's
        stored rate.
        """
        sheet = validate_sheet_payload(payload)

        reason = skip_reason(sheet.sheet_name)
        if reason:
            logger.info(f"Skipping sheet '{sheet.sheet_name}': {reason}")
            return SyncResult(sheet_name=sheet.sheet_name, status=SyncStatus.SKIPPED, message=reason)

        exchange_rate = sheet.exchange_rate
        if exchange_rate is None:
            batch = await self.loader.get_batch(sheet.sheet_name)
            if batch is not None:
                exchange_rate = batch.exchange_rate

        parsed = parse_sheet(sheet.sheet_name, sheet.headers, sheet.rows, exchange_rate)
        if not parsed.rows:
            return SyncResult(
                sheet_name=sheet.sheet_name,
                status=SyncStatus.SKIPPED,
                message="No valid rows"
            )

        return await self.sync_parsed(parsed)

    async def sync_parsed(self, parsed: ParsedSheet) -> SyncResult:
        """
        Upsert every parsed row, committing after each one.

        New rows add their full contribution to product aggregates. Existing
        rows apply the change in sale price and profit against the stored
        values, so re-syncing unchanged data moves nothing.
        """
        batch, created = await self.loader.get_or_create_batch(parsed)
        _apply_sheet_metadata(batch, parsed)
        await self.db.commit()

        existing = {} if created else await self.loader.get_sales_by_row(batch.id)

        # Identities are resolved up front so the oracle sees one batched request
        needs_identity = [
            record.product_name for record in parsed.rows
            if existing.get(record.row_number) is None
            or existing[record.row_number].product_id is None
        ]
        product_ids = await self._resolve_product_ids(needs_identity)

        result = SyncResult(sheet_name=parsed.sheet_name, batch_id=batch.id)
        touched = set()

        for record in parsed.rows:
            now = datetime.utcnow()
            price = record.sale_price or 0.0
            profit = record.profit or 0.0
            sale = existing.get(record.row_number)

            if sale is None:
                product_id = product_ids[record.product_name]
                await self.loader.insert_sale(batch.id, record, product_id, now)
                await self.loader.apply_product_delta(
                    product_id, sales=1, revenue=price, profit=profit, sold_at=now
                )
                result.rows_created += 1

            elif sale.product_id is None:
                product_id = product_ids[record.product_name]
                await self.loader.update_sale(sale, record, product_id, now)
                await self.loader.apply_product_delta(
                    product_id, sales=1, revenue=price, profit=profit, sold_at=now
                )
                result.rows_updated += 1

            else:
                product_id = sale.product_id
                revenue_delta = price - (sale.sale_price_vnd or 0.0)
                profit_delta = profit - (sale.profit_vnd or 0.0)
                await self.loader.update_sale(sale, record, product_id, now)
                await self.loader.apply_product_delta(
                    product_id, revenue=revenue_delta, profit=profit_delta
                )
                result.rows_updated += 1

            touched.add(product_id)
            result.rows_processed += 1
            await self.db.commit()

        await self.loader.refresh_batch_totals(batch)
        await self.db.commit()

        result.product_ids = sorted(touched)
        result.products_normalized = len(touched)
        logger.info(
            f"Synced sheet '{parsed.sheet_name}' into batch {batch.id}: "
            f"{result.rows_created} created, {result.rows_updated} updated"
        )
        return result

    async def import_parsed(self, parsed: ParsedSheet) -> SyncResult:
        """
        Full reload of a batch from a parsed sheet.

        Product identities are resolved first (their cache and product rows
        commit independently); the delete and re-insert of sales then happen
        in a single transaction that the caller may roll back.
        """
        product_ids = await self._resolve_product_ids(record.product_name for record in parsed.rows)

        batch, _ = await self.loader.get_or_create_batch(parsed)
        _apply_sheet_metadata(batch, parsed)

        removed = await self.loader.clear_batch_sales(batch.id)

        now = datetime.utcnow()
        contributions: Dict[int, list] = {}
        for record in parsed.rows:
            product_id = product_ids[record.product_name]
            await self.loader.insert_sale(batch.id, record, product_id, now)
            totals = contributions.setdefault(product_id, [0, 0.0, 0.0])
            totals[0] += 1
            totals[1] += record.sale_price or 0.0
            totals[2] += record.profit or 0.0

        for product_id, (count, revenue, profit) in contributions.items():
            await self.loader.apply_product_delta(
                product_id, sales=count, revenue=revenue, profit=profit, sold_at=now
            )

        await self.loader.refresh_batch_totals(batch)
        await self.db.commit()

        logger.info(
            f"Reloaded batch {batch.id} from '{parsed.sheet_name}': "
            f"{removed} removed, {len(parsed.rows)} inserted"
        )
        return SyncResult(
            sheet_name=parsed.sheet_name,
            batch_id=batch.id,
            rows_processed=len(parsed.rows),
            rows_created=len(parsed.rows),
            products_normalized=len(contributions),
            product_ids=sorted(contributions),
        )

    async def rebuild_product_stats(self) -> int:
        """Recompute all product aggregates from stored sales"""
        count = await self.loader.rebuild_product_stats()
        await self.db.commit()
        return count

    async def _resolve_product_ids(self, raw_names: Iterable[str]) -> Dict[str, int]:
        """raw product name -> NormalizedProduct id"""
        identities = await self.normalizer.normalize_many(raw_names)

        ids_by_key: Dict[str, int] = {}
        product_ids: Dict[str, int] = {}
        for raw_name, identity in identities.items():
            key = identity.name_normalized
            if key not in ids_by_key:
                ids_by_key[key] = await self.normalizer.find_or_create_product(identity)
            product_ids[raw_name] = ids_by_key[key]
        return product_ids


def _apply_sheet_metadata(batch, parsed: ParsedSheet) -> None:
    if parsed.batch_number is not None:
        batch.batch_number = parsed.batch_number
    if parsed.batch_date is not None:
        batch.batch_date = parsed.batch_date
    if parsed.exchange_rate is not None:
        batch.exchange_rate = parsed.exchange_rate
