"""
Pydantic schemas for data validation and serialization.

Schemas:
    sheets: Inbound sheet payloads, parsed rows and sync/bulk results
    normalized: Canonical product identity resolved from raw names
    api: HTTP request/response models (posted items, reports, analytics)

Validation:
    Payload schemas are forgiving about cell types but strict about the
    top-level contract; ProductIdentity never admits a category outside
    the closed enum.
"""

__all__ = [
    "SheetPayload",
    "BulkImportPayload",
    "SaleRecord",
    "ParsedSheet",
    "SyncResult",
    "BulkImportResult",
    "ProductIdentity",
    "PostedItemCreate",
    "UnsoldReport",
    "ReconcileResult",
]
