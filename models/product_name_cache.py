from sqlalchemy import Column, Integer, String, Enum, DateTime, Index
from datetime import datetime
from models.base import Base, ProductCategory


class ProductNameCache(Base):
    """
    Memoized oracle results keyed by the raw, lower-cased product name.

    Purely derived state: it can be dropped and rebuilt at any time.
    Many raw names may point at the same canonical name.
    """
    __tablename__ = "product_name_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)

    raw_name = Column(String(500), nullable=False)
    normalized_name = Column(String(500), nullable=False)
    category = Column(Enum(ProductCategory), nullable=False, default=ProductCategory.OTHER)
    brand = Column(String(200), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_cache_raw_name", "raw_name", unique=True),
    )
