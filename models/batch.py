from sqlalchemy import Column, Integer, String, DateTime, Float, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base


class Batch(Base):
    """
    One imported spreadsheet (sheet) describing a shipment/sales cycle.

    Lifecycle:
    - Created on first sync of a sheet name
    - Totals and synced_at refreshed on every later sync
    - Never deleted by the pipeline
    """
    __tablename__ = "batches"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Natural key
    sheet_name = Column(String(255), nullable=False)

    # Parsed from the sheet name ("Đợt hàng 11 - 1125")
    batch_number = Column(Integer, nullable=True)
    batch_date = Column(String(20), nullable=True)

    exchange_rate = Column(Float, nullable=True)  # Local units per foreign unit

    # Aggregates, recomputed from sales after every sync
    total_items = Column(Integer, nullable=False, default=0)
    total_revenue_vnd = Column(Float, nullable=False, default=0)
    total_profit_vnd = Column(Float, nullable=False, default=0)

    # Timestamps
    synced_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    sales = relationship("Sale", back_populates="batch", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_batch_sheet_name", "sheet_name", unique=True),
    )
