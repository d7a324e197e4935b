"""
Pydantic schema for canonical product identities with validation
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from models.base import ProductCategory

# Width of the name columns on normalized_products and sales
NAME_MAX_LENGTH = 500


class ProductIdentity(BaseModel):
    """
    Canonical product resolved from a raw name.

    Ensures:
    - category is always a member of the closed enum
    - name_normalized is derived from name when not given
    - blank brands collapse to None
    """
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    name_normalized: str = Field("", max_length=NAME_MAX_LENGTH, validate_default=True)
    category: ProductCategory = ProductCategory.OTHER
    brand: Optional[str] = Field(None, max_length=200)

    @field_validator("name")
    @classmethod
    def clean_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty after stripping")
        return v

    @field_validator("name_normalized")
    @classmethod
    def clean_name_normalized(cls, v, info):
        v = (v or "").strip().lower()
        if not v:
            v = info.data.get("name", "").strip().lower()
        return v

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v):
        """Oracle output is untrusted: unknown categories become OTHER"""
        return ProductCategory.coerce(v)

    @field_validator("brand", mode="before")
    @classmethod
    def clean_brand(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        if not v or v.lower() in ("null", "none"):
            return None
        return v

    @classmethod
    def fallback(cls, raw_name: str) -> "ProductIdentity":
        """Deterministic identity used when the oracle cannot answer"""
        name = raw_name.strip()[:NAME_MAX_LENGTH].strip() or "Unknown Product"
        return cls(name=name, category=ProductCategory.OTHER, brand=None)
