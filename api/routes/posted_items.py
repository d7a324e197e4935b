"""
Posted item endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from api.dependencies import get_db
from reconciliation.posted_items import PostedItemService
from schemas.api import (
    PostedItemCreate,
    PostedItemListResponse,
    PostedItemResponse,
    PostedItemUpdate,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/posted-items", tags=["Posted Items"])


@router.get("", response_model=PostedItemListResponse)
async def list_posted_items(
    sold: Optional[bool] = Query(None, description="true: sold only, false: unsold only"),
    limit: int = Query(50, ge=1, le=500, description="Maximum items returned"),
    db: AsyncSession = Depends(get_db)
):
    items = await PostedItemService(db).list_items(sold=sold, limit=limit)
    return PostedItemListResponse(
        items=[PostedItemResponse.model_validate(item) for item in items],
        total=len(items),
    )


@router.post("", response_model=PostedItemResponse, status_code=status.HTTP_201_CREATED)
async def create_posted_item(
    payload: PostedItemCreate,
    db: AsyncSession = Depends(get_db)
):
    """Log a posted item; its name is normalized and linked to a product identity"""
    item = await PostedItemService(db).log_item(payload)
    return PostedItemResponse.model_validate(item)


@router.get("/{item_id}", response_model=PostedItemResponse)
async def get_posted_item(item_id: int, db: AsyncSession = Depends(get_db)):
    item = await PostedItemService(db).get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Posted item {item_id} not found")
    return PostedItemResponse.model_validate(item)


@router.patch("/{item_id}", response_model=PostedItemResponse)
async def update_posted_item(
    item_id: int,
    payload: PostedItemUpdate,
    db: AsyncSession = Depends(get_db)
):
    """Mark sold and/or link a sale manually"""
    if not payload.model_fields_set:
        raise HTTPException(status_code=400, detail="No fields to update")

    try:
        item = await PostedItemService(db).update(item_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if item is None:
        raise HTTPException(status_code=404, detail=f"Posted item {item_id} not found")
    return PostedItemResponse.model_validate(item)


@router.delete("/{item_id}")
async def delete_posted_item(item_id: int, db: AsyncSession = Depends(get_db)):
    deleted = await PostedItemService(db).delete(item_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Posted item {item_id} not found")
    return {"success": True, "id": item_id}
