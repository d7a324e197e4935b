"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (PaymentStatus, ProductCategory, SyncStatus)
    batch: One imported spreadsheet with recomputed totals
    sale: One transaction row, keyed by (batch_id, row_number)
    normalized_product: Canonical product identity with running aggregates
    product_name_cache: Memoized oracle results keyed by raw lower-cased name
    posted_item: Listing events reconciled against sales

Usage:
    from models.batch import Batch
    from models.sale import Sale
    from models.base import PaymentStatus, ProductCategory

Relationships:
    - Batch → Sale (one-to-many, owned)
    - NormalizedProduct → Sale / PostedItem (one-to-many, shared)
    - PostedItem → Sale (optional match link)
"""

from models.base import Base, PaymentStatus, ProductCategory, SyncStatus
from models.batch import Batch
from models.sale import Sale
from models.normalized_product import NormalizedProduct
from models.product_name_cache import ProductNameCache
from models.posted_item import PostedItem

__all__ = [
    "Base",
    "PaymentStatus",
    "ProductCategory",
    "SyncStatus",
    "Batch",
    "Sale",
    "NormalizedProduct",
    "ProductNameCache",
    "PostedItem",
]
