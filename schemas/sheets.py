"""
Pydantic schemas for spreadsheet payloads, parsed rows and sync results
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from models.base import PaymentStatus, SyncStatus


class SheetPayload(BaseModel):
    """
    Inbound contract for one sheet.

    headers and rows are deliberately loose: spreadsheet software mixes
    strings, numbers and empty cells freely.
    """
    sheet_name: str = Field(..., min_length=1, max_length=255, alias="sheetName")
    headers: List[Any]
    rows: List[List[Any]]
    exchange_rate: Optional[float] = Field(None, gt=0, alias="exchangeRate")

    @field_validator("sheet_name")
    @classmethod
    def clean_sheet_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Sheet name cannot be empty after stripping")
        return v

    @field_validator("headers", mode="before")
    @classmethod
    def stringify_headers(cls, v):
        """Header cells may be numbers or empty; keep positions, coerce to str"""
        if isinstance(v, list):
            return ["" if h is None else str(h) for h in v]
        return v

    model_config = ConfigDict(populate_by_name=True)


class BulkImportPayload(BaseModel):
    """Inbound contract for a bulk import: sheets are validated one by one"""
    sheets: List[Dict[str, Any]]
    exchange_rate: Optional[float] = Field(None, gt=0, alias="exchangeRate")

    model_config = ConfigDict(populate_by_name=True)


class SaleRecord(BaseModel):
    """One validated sale row parsed from a sheet"""
    row_number: int = Field(..., ge=1)
    customer_name: Optional[str] = None
    product_name: str = Field(..., min_length=1)
    cost_usd: Optional[float] = None
    cost_vnd: Optional[float] = None
    sale_price: Optional[float] = None
    profit: Optional[float] = None
    weight: Optional[float] = None
    shipping_cost: Optional[float] = None
    payment_status: PaymentStatus = PaymentStatus.UNKNOWN
    quantity: Optional[float] = None


class ParsedSheet(BaseModel):
    """Result of parsing a whole sheet"""
    sheet_name: str
    batch_number: Optional[int] = None
    batch_date: Optional[str] = None
    exchange_rate: Optional[float] = None
    rows: List[SaleRecord] = Field(default_factory=list)
    column_mapping: Dict[str, int] = Field(default_factory=dict)


class SyncResult(BaseModel):
    """Outcome of synchronizing one sheet"""
    sheet_name: str
    status: SyncStatus = SyncStatus.SUCCESS
    batch_id: Optional[int] = None
    rows_processed: int = 0
    rows_created: int = 0
    rows_updated: int = 0
    products_normalized: int = 0
    product_ids: List[int] = Field(default_factory=list)
    message: Optional[str] = None


class SheetResult(BaseModel):
    """Per-sheet entry of a bulk import"""
    sheet_name: str
    status: SyncStatus
    batch_id: Optional[int] = None
    rows_processed: int = 0
    message: Optional[str] = None


class BulkImportResult(BaseModel):
    """Aggregate outcome of a bulk import"""
    total_sheets: int = 0
    processed_sheets: int = 0
    skipped_sheets: int = 0
    failed_sheets: int = 0
    total_rows: int = 0
    total_products: int = 0
    errors: List[str] = Field(default_factory=list)
    sheet_results: List[SheetResult] = Field(default_factory=list)
