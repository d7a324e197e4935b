"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Dict, Literal
from datetime import datetime


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    oracle_configured: bool = False
    total_batches: int = 0
    total_sales: int = 0
    last_sync_at: Optional[datetime] = None

    @model_validator(mode="after")
    def determine_status(self):
        """Database down is unhealthy; no oracle only degrades normalization"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif not self.oracle_configured:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "oracle_configured": True,
                "total_batches": 12,
                "total_sales": 480,
                "last_sync_at": "2024-01-15T10:29:00Z",
            }
        }
    )


# ============================================================================
# Posted Item Schemas
# ============================================================================

class PostedItemCreate(BaseModel):
    """Request body for logging a posted item"""
    product_name: str = Field(..., min_length=1, max_length=500, alias="productName")
    category: Optional[str] = Field(None, max_length=50)
    brand: Optional[str] = Field(None, max_length=200)
    source_store: Optional[str] = Field(None, max_length=200, alias="sourceStore")
    cost_usd: Optional[float] = Field(None, ge=0, alias="costUsd")
    listed_price_vnd: Optional[float] = Field(None, ge=0, alias="listedPriceVnd")
    generated_post_id: Optional[int] = Field(None, alias="generatedPostId")
    posted_at: Optional[datetime] = Field(None, alias="postedAt")

    @field_validator("product_name")
    @classmethod
    def clean_product_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Product name cannot be empty after stripping")
        return v

    model_config = ConfigDict(populate_by_name=True)


class PostedItemUpdate(BaseModel):
    """Manual update; only fields that are set are applied"""
    sold: Optional[bool] = None
    matched_sale_id: Optional[int] = Field(None, alias="matchedSaleId")

    model_config = ConfigDict(populate_by_name=True)


class PostedItemResponse(BaseModel):
    """Posted item as stored"""
    id: int
    product_id: Optional[int] = None
    generated_post_id: Optional[int] = None
    product_name: str
    category: Optional[str] = None
    brand: Optional[str] = None
    source_store: Optional[str] = None
    cost_usd: Optional[float] = None
    listed_price_vnd: Optional[float] = None
    posted_at: datetime
    sold: bool
    matched_sale_id: Optional[int] = None
    matched_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PostedItemListResponse(BaseModel):
    items: List[PostedItemResponse]
    total: int


# ============================================================================
# Reconciliation Schemas
# ============================================================================

class UnsoldItem(BaseModel):
    """A posted item older than the threshold with no sale link"""
    id: int
    product_id: Optional[int] = None
    product_name: str
    category: Optional[str] = None
    brand: Optional[str] = None
    source_store: Optional[str] = None
    posted_at: datetime
    cost_usd: Optional[float] = None
    listed_price_vnd: Optional[float] = None
    days_since_posted: int


class CategoryCount(BaseModel):
    category: str
    count: int


class UnsoldSummary(BaseModel):
    total_posted: int
    total_unsold: int
    unsold_rate: float = Field(..., description="Percentage of posted items that are unsold")
    days_threshold: int


class UnsoldReport(BaseModel):
    """Read-only unsold inventory view"""
    items: List[UnsoldItem]
    category_breakdown: List[CategoryCount]
    summary: UnsoldSummary


class ReconcileMatch(BaseModel):
    posted_item_id: int
    sale_id: int
    tier: Literal["exact", "fuzzy"]


class ReconcileResult(BaseModel):
    """Outcome of one reconciliation pass"""
    items_processed: int = 0
    new_matches: int = 0
    matches: List[ReconcileMatch] = Field(default_factory=list)


# ============================================================================
# Analytics Schemas
# ============================================================================

class PaymentBreakdown(BaseModel):
    paid: int = 0
    unpaid: int = 0
    deposit: int = 0
    unknown: int = 0


class SalesSummary(BaseModel):
    """Overall business stats, with an optional recent window"""
    total_sales: int
    total_revenue_vnd: float
    total_profit_vnd: float
    average_profit_vnd: float
    total_customers: int
    total_batches: int
    payment_breakdown: PaymentBreakdown
    revenue_by_category: Dict[str, float] = Field(default_factory=dict)
    top_category: Optional[str] = None
    period_days: Optional[int] = None
    recent_sales: Optional[int] = None
    recent_revenue_vnd: Optional[float] = None
    recent_profit_vnd: Optional[float] = None


class TopProduct(BaseModel):
    id: int
    name: str
    category: str
    brand: Optional[str] = None
    total_sales: int
    total_revenue_vnd: float
    total_profit_vnd: float
    average_price_vnd: float
    average_profit_vnd: float
    last_sold_at: Optional[datetime] = None


class TopProductsResponse(BaseModel):
    products: List[TopProduct]
    sort_by: str
    total: int


class CategoryStats(BaseModel):
    category: str
    total_sales: int
    total_revenue_vnd: float
    total_profit_vnd: float
    average_profit_vnd: float
    profit_margin: float = Field(..., description="Profit as a percentage of revenue")
    unique_products: int


class CategoryBreakdownResponse(BaseModel):
    categories: List[CategoryStats]
    total_sales: int
    total_revenue_vnd: float
    total_profit_vnd: float


class RebuildResult(BaseModel):
    products_rebuilt: int
