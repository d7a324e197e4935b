"""
Posted item bookkeeping: log, list, manual update, delete
"""

from typing import List, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from core.exceptions import NormalizationError
from ingestion.transformers.normalizer import ProductNormalizer
from models.posted_item import PostedItem
from models.sale import Sale
from schemas.api import PostedItemCreate, PostedItemUpdate

logger = logging.getLogger(__name__)


class PostedItemService:
    """
    CRUD over posted_items.

    Logging an item resolves its name through the Product Identity Resolver
    and links the identity; categories and brands given by the caller take
    precedence over the resolved ones.
    """

    def __init__(self, db_session: AsyncSession, normalizer: Optional[ProductNormalizer] = None):
        self.db = db_session
        self.normalizer = normalizer or ProductNormalizer(db_session)

    async def log_item(self, data: PostedItemCreate) -> PostedItem:
        product_id = None
        category = data.category
        brand = data.brand

        try:
            identity, product_id = await self.normalizer.resolve_product_id(data.product_name)
            category = category or identity.category.value
            brand = brand or identity.brand
        except NormalizationError as e:
            logger.warning(f"Could not normalize posted item '{data.product_name}': {e.message}")

        item = PostedItem(
            product_id=product_id,
            generated_post_id=data.generated_post_id,
            product_name=data.product_name,
            category=category,
            brand=brand,
            source_store=data.source_store,
            cost_usd=data.cost_usd,
            listed_price_vnd=data.listed_price_vnd,
            posted_at=data.posted_at or datetime.utcnow(),
            sold=False,
        )
        self.db.add(item)
        await self.db.commit()

        logger.info(f"Logged posted item {item.id} ('{item.product_name}', product {product_id})")
        return item

    async def get(self, item_id: int) -> Optional[PostedItem]:
        return await self.db.get(PostedItem, item_id)

    async def list_items(self, sold: Optional[bool] = None, limit: int = 50) -> List[PostedItem]:
        """Newest first; sold=None returns both sold and unsold items"""
        query = select(PostedItem)
        if sold is not None:
            query = query.where(PostedItem.sold.is_(sold))
        result = await self.db.execute(
            query.order_by(PostedItem.posted_at.desc(), PostedItem.id.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def update(self, item_id: int, changes: PostedItemUpdate) -> Optional[PostedItem]:
        """
        Apply a manual update.

        Linking a sale stamps matched_at and implies sold unless sold is
        given explicitly.

        Returns:
            The updated item, or None when it does not exist

        Raises:
            ValueError: When the linked sale does not exist
        """
        item = await self.get(item_id)
        if item is None:
            return None

        fields = changes.model_fields_set

        if "matched_sale_id" in fields:
            if changes.matched_sale_id is not None and await self.db.get(Sale, changes.matched_sale_id) is None:
                raise ValueError(f"Sale {changes.matched_sale_id} does not exist")
            item.matched_sale_id = changes.matched_sale_id
            item.matched_at = datetime.utcnow() if changes.matched_sale_id is not None else None
            if "sold" not in fields:
                item.sold = changes.matched_sale_id is not None

        if "sold" in fields and changes.sold is not None:
            item.sold = changes.sold

        await self.db.commit()
        return item

    async def delete(self, item_id: int) -> bool:
        item = await self.get(item_id)
        if item is None:
            return False
        await self.db.delete(item)
        await self.db.commit()
        return True
