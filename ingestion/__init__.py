"""
Sales ingestion pipeline components.

Modules:
    synchronizer: Batch Synchronizer (incremental upsert and full reload)
    runner: Bulk Importer driving the synchronizer across many sheets
    scheduler: APScheduler integration for periodic reconciliation

Subpackages:
    parsers: Column Resolver and Row Parser
    transformers: Product Identity Resolver and the normalization oracle client
    loaders: Batch, sale and product-aggregate writes
    extractors: Workbook/CSV file reader producing sheet payloads

Architecture:
    payload -> column resolver -> row parser -> identity resolver
            -> synchronizer (batches, sales, product aggregates)

    Re-running a sync on the same sheet is always safe: sales are keyed by
    (batch, row number) and product aggregates move by differences only.

Usage:
    from ingestion.synchronizer import BatchSynchronizer
    from ingestion.runner import BulkImporter

Example:
    synchronizer = BatchSynchronizer(session)
    result = await synchronizer.sync({
        "sheetName": "Đợt hàng 11 - 1125",
        "headers": ["STT", "Mặt hàng", "Khách hàng", "Giá bán", "Lãi"],
        "rows": [[1, "Kirkland Glucosamine", "Mai", 850000, 120000]],
    })

    print(f"Created {result.rows_created} sales")

Error Handling:
    Only payload contract violations raise (SchemaValidationError). Dirty
    cells degrade to None, and oracle failures degrade to a fallback
    identity. The bulk importer records per-sheet errors and continues.
"""

__all__ = [
    "BatchSynchronizer",
    "BulkImporter",
    "ReconciliationScheduler",
    "ProductNormalizer",
    "NormalizationOracle",
    "SalesLoader",
    "WorkbookExtractor",
]
