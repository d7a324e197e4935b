"""
Integration tests for the bulk importer (full reload per sheet)
"""

import pytest
from sqlalchemy import select, func
from core.exceptions import SchemaValidationError
from ingestion.runner import BulkImporter
from ingestion.transformers.normalizer import ProductNormalizer
from models.base import SyncStatus
from models.batch import Batch
from models.normalized_product import NormalizedProduct
from models.sale import Sale


def make_importer(session, oracle):
    return BulkImporter(session, ProductNormalizer(session, oracle=oracle))


async def run_import(session_factory, oracle, payload):
    async with session_factory() as session:
        return await make_importer(session, oracle).run(payload)


class TestBulkImport:
    """Many sheets, one call"""

    @pytest.mark.asyncio
    async def test_mixed_workbook(self, session_factory, fake_oracle, sample_sheet, sample_headers):
        payload = {
            "sheets": [
                sample_sheet,
                {"sheetName": "Cách tính giá", "headers": ["a"], "rows": [["b"]]},
                {"sheetName": "Hàng tồn", "headers": sample_headers, "rows": [[1, "Kem chống nắng"]]},
                {"sheetName": "Đợt 5", "headers": sample_headers, "rows": []},
                {"sheetName": "Đợt 6"},
            ]
        }

        result = await run_import(session_factory, fake_oracle, payload)

        assert result.total_sheets == 5
        assert result.processed_sheets == 1
        assert result.skipped_sheets == 3
        assert result.failed_sheets == 1
        assert result.total_rows == 3
        assert result.total_products == 3
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Đợt 6:")

        statuses = {r.sheet_name: r.status for r in result.sheet_results}
        assert statuses["Đợt hàng 11 - 1125"] == SyncStatus.SUCCESS
        assert statuses["Cách tính giá"] == SyncStatus.SKIPPED
        assert statuses["Hàng tồn"] == SyncStatus.SKIPPED
        assert statuses["Đợt 5"] == SyncStatus.SKIPPED
        assert statuses["Đợt 6"] == SyncStatus.ERROR

        async with session_factory() as session:
            batches = (await session.execute(select(Batch))).scalars().all()

        assert len(batches) == 1
        assert batches[0].batch_number == 11
        assert batches[0].batch_date == "1125"
        assert batches[0].total_items == 3

    @pytest.mark.asyncio
    async def test_missing_sheets_list(self, session_factory, fake_oracle):
        with pytest.raises(SchemaValidationError):
            await run_import(session_factory, fake_oracle, {"exchangeRate": 25000})

    @pytest.mark.asyncio
    async def test_unnamed_sheet_is_labelled_by_position(self, session_factory, fake_oracle, sample_sheet):
        result = await run_import(session_factory, fake_oracle, {"sheets": [sample_sheet, {"rows": []}]})

        assert result.failed_sheets == 1
        assert result.errors[0].startswith("sheet #2:")

    @pytest.mark.asyncio
    async def test_reimport_does_not_double_count(self, session_factory, fake_oracle, sample_sheet):
        payload = {"sheets": [sample_sheet]}

        await run_import(session_factory, fake_oracle, payload)
        await run_import(session_factory, fake_oracle, payload)

        async with session_factory() as session:
            sale_count = (await session.execute(select(func.count(Sale.id)))).scalar()
            kirkland = (await session.execute(
                select(NormalizedProduct).where(NormalizedProduct.name_normalized == "kirkland glucosamine")
            )).scalar_one()
            batch = (await session.execute(select(Batch))).scalar_one()

        assert sale_count == 3
        assert kirkland.total_sales == 1
        assert kirkland.total_revenue_vnd == 850000
        assert kirkland.total_profit_vnd == 120000
        assert batch.total_revenue_vnd == 2950000

    @pytest.mark.asyncio
    async def test_default_exchange_rate(self, session_factory, fake_oracle, sample_sheet):
        await run_import(session_factory, fake_oracle, {"sheets": [sample_sheet]})

        async with session_factory() as session:
            batch = (await session.execute(select(Batch))).scalar_one()
            sale = (await session.execute(select(Sale).where(Sale.row_number == 1))).scalar_one()

        assert batch.exchange_rate == 25000
        assert sale.cost_vnd == 500000

    @pytest.mark.asyncio
    async def test_sheet_rate_overrides_payload_rate(self, session_factory, fake_oracle, sample_sheet):
        payload = {"sheets": [dict(sample_sheet, exchangeRate=24000)], "exchangeRate": 26000}

        await run_import(session_factory, fake_oracle, payload)

        async with session_factory() as session:
            batch = (await session.execute(select(Batch))).scalar_one()

        assert batch.exchange_rate == 24000

    @pytest.mark.asyncio
    async def test_failed_sheet_does_not_stop_the_run(self, session_factory, fake_oracle, sample_headers):
        def sheet(name, product):
            return {"sheetName": name, "headers": sample_headers, "rows": [[1, product, "Mai", 20, 500000, 50000, "ok"]]}

        async with session_factory() as session:
            importer = make_importer(session, fake_oracle)
            real_import = importer.synchronizer.import_parsed

            async def flaky_import(parsed):
                if parsed.sheet_name == "Đợt 2":
                    raise RuntimeError("disk full")
                return await real_import(parsed)

            importer.synchronizer.import_parsed = flaky_import

            result = await importer.run({"sheets": [
                sheet("Đợt 1", "Kirkland Glucosamine"),
                sheet("Đợt 2", "Bỉm Huggies size 3"),
                sheet("Đợt 3", "Sữa rửa mặt Kiehl's"),
            ]})

        assert result.processed_sheets == 2
        assert result.failed_sheets == 1
        assert result.errors == ["Đợt 2: disk full"]

        async with session_factory() as session:
            names = (await session.execute(select(Batch.sheet_name).order_by(Batch.sheet_name))).scalars().all()

        assert names == ["Đợt 1", "Đợt 3"]
