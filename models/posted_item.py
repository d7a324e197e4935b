from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, ForeignKey, Index
from datetime import datetime
from models.base import Base


class PostedItem(Base):
    """
    An item that was listed/posted for sale.

    Mutated only by reconciliation (sold flag + matched sale) or by an
    explicit manual update; read-only otherwise.
    """
    __tablename__ = "posted_items"

    id = Column(Integer, primary_key=True, autoincrement=True)

    product_id = Column(Integer, ForeignKey("normalized_products.id"), nullable=True, index=True)
    generated_post_id = Column(Integer, nullable=True)  # Post that produced this listing

    product_name = Column(String(500), nullable=False)
    category = Column(String(50), nullable=True)
    brand = Column(String(200), nullable=True)
    source_store = Column(String(200), nullable=True)
    cost_usd = Column(Float, nullable=True)
    listed_price_vnd = Column(Float, nullable=True)

    posted_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Reconciliation state
    sold = Column(Boolean, nullable=False, default=False)
    matched_sale_id = Column(Integer, ForeignKey("sales.id", ondelete="SET NULL"), nullable=True)
    matched_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_posted_unsold", "sold", "matched_sale_id", "posted_at"),
    )
