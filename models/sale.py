from sqlalchemy import Column, Integer, String, Enum, DateTime, Float, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, PaymentStatus


class Sale(Base):
    """
    One transaction row inside a batch.

    Identity:
    - (batch_id, row_number) is the natural key used for idempotent upsert
    - row_number is the 1-based position in the sheet's data region

    Rows are updated in place on re-sync, never duplicated.
    """
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, autoincrement=True)

    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False)
    row_number = Column(Integer, nullable=False)

    customer_name = Column(String(255), nullable=True)
    product_name_raw = Column(String(500), nullable=False)
    product_id = Column(Integer, ForeignKey("normalized_products.id"), nullable=True, index=True)

    # Money and measures
    cost_usd = Column(Float, nullable=True)
    cost_vnd = Column(Float, nullable=True)
    shipping_cost_vnd = Column(Float, nullable=True)
    weight_kg = Column(Float, nullable=True)
    sale_price_vnd = Column(Float, nullable=True)
    profit_vnd = Column(Float, nullable=True)
    quantity = Column(Float, nullable=True)

    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.UNKNOWN)

    # Timestamps
    synced_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    batch = relationship("Batch", back_populates="sales")
    product = relationship("NormalizedProduct", back_populates="sales")

    __table_args__ = (
        Index("idx_sale_batch_row", "batch_id", "row_number", unique=True),
        Index("idx_sale_product_synced", "product_id", "synced_at"),
    )
