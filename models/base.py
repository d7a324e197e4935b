from typing import Any, Optional
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class PaymentStatus(str, enum.Enum):
    """Payment state of a sale row"""
    PAID = "paid"
    UNPAID = "unpaid"
    DEPOSIT = "deposit"
    UNKNOWN = "unknown"


class ProductCategory(str, enum.Enum):
    """Closed set of product categories"""
    SUPPLEMENTS = "supplements"
    SKINCARE = "skincare"
    COSMETICS = "cosmetics"
    FRAGRANCE = "fragrance"
    BABY = "baby"
    FOOD = "food"
    BAGS = "bags"
    CLOTHING = "clothing"
    SHOES = "shoes"
    ELECTRONICS = "electronics"
    HOUSEHOLD = "household"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Optional[Any]) -> "ProductCategory":
        """Map an untrusted value onto the enum; anything unknown becomes OTHER."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.OTHER


class SyncStatus(str, enum.Enum):
    """Outcome of processing one sheet"""
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"
