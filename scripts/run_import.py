"""
Bulk import every sheet of a workbook (.xlsx/.xls) or a .csv file.

Usage:
    python scripts/run_import.py path/to/workbook.xlsx [--exchange-rate 25000]
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine
from core.exceptions import PipelineException
from core.logging import setup_logging
from ingestion.extractors.workbook_extractor import WorkbookExtractor
from ingestion.runner import BulkImporter

setup_logging()
logger = logging.getLogger(__name__)


async def run_import(file_path: str, exchange_rate: float) -> int:
    """Returns the process exit code"""
    try:
        payload = WorkbookExtractor(file_path, exchange_rate=exchange_rate).to_bulk_payload()
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Cannot read workbook: {e}")
        return 1

    try:
        async with async_session_maker() as session:
            result = await BulkImporter(session).run(payload)
    except PipelineException as e:
        logger.error(f"Bulk import aborted: {e}")
        return 1
    finally:
        await engine.dispose()

    for sheet in result.sheet_results:
        logger.info(
            f"  {sheet.sheet_name}: {sheet.status.value}"
            + (f" ({sheet.rows_processed} rows)" if sheet.rows_processed else "")
            + (f" - {sheet.message}" if sheet.message else "")
        )

    logger.info(
        f"Imported {result.processed_sheets}/{result.total_sheets} sheets, "
        f"{result.total_rows} rows, {result.total_products} products"
    )
    return 1 if result.failed_sheets else 0


def main():
    parser = argparse.ArgumentParser(description="Bulk import sales sheets from a workbook")
    parser.add_argument("file", help="Workbook (.xlsx/.xls) or .csv file")
    parser.add_argument(
        "--exchange-rate",
        type=float,
        default=settings.DEFAULT_EXCHANGE_RATE,
        help="Local units per foreign unit used when a row has no local cost",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(run_import(args.file, args.exchange_rate)))


if __name__ == "__main__":
    main()
