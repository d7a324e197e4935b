from sqlalchemy import Column, Integer, String, Enum, DateTime, Float, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, ProductCategory


class NormalizedProduct(Base):
    """
    Canonical product identity shared by many sales and posted items.

    Design:
    - name_normalized is the dedup key (unique); creation is insert-or-fetch
    - Aggregates change only through atomic increments, or an explicit rebuild
    """
    __tablename__ = "normalized_products"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(500), nullable=False)
    name_normalized = Column(String(500), nullable=False)
    category = Column(Enum(ProductCategory), nullable=False, default=ProductCategory.OTHER, index=True)
    brand = Column(String(200), nullable=True)

    # Running aggregates
    total_sales = Column(Integer, nullable=False, default=0)
    total_revenue_vnd = Column(Float, nullable=False, default=0)
    total_profit_vnd = Column(Float, nullable=False, default=0)
    last_sold_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    sales = relationship("Sale", back_populates="product")

    __table_args__ = (
        Index("idx_product_name_normalized", "name_normalized", unique=True),
    )
