"""
Resolve raw product names into canonical product identities.

Lookup order per name:
1. product_name_cache keyed by the trimmed, lower-cased raw name
2. the normalization oracle (one call for a single name, one call per
   chunk for a batch of misses)
3. a deterministic fallback (raw name, category "other", no brand)

Every resolved or fallback result is written back to the cache, so the
oracle is asked about each distinct raw name at most once.
"""

from typing import Dict, Iterable, List, Optional, Tuple
from datetime import datetime
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from core.config import settings
from core.database import dialect_insert
from core.exceptions import OracleError, OracleUnavailableError, UpsertError
from ingestion.transformers.oracle import NormalizationOracle
from models.normalized_product import NormalizedProduct
from models.product_name_cache import ProductNameCache
from schemas.normalized import NAME_MAX_LENGTH, ProductIdentity
import logging

logger = logging.getLogger(__name__)


class ProductNormalizer:
    """
    Product Identity Resolver backed by the persistent name cache.

    Handles:
    - Cache short-circuit
    - Chunked oracle calls for batches of misses
    - Category validation against the closed enum
    - Race-tolerant insert-or-fetch of NormalizedProduct rows
    """

    def __init__(
        self,
        db_session: AsyncSession,
        oracle: Optional[NormalizationOracle] = None,
        batch_size: Optional[int] = None
    ):
        self.db = db_session
        self.oracle = oracle if oracle is not None else NormalizationOracle()
        self.batch_size = max(1, batch_size or settings.NORMALIZER_BATCH_SIZE)

    @staticmethod
    def lookup_key(raw_name: str) -> str:
        return (raw_name or "").strip().lower()[:NAME_MAX_LENGTH]

    async def normalize(self, raw_name: str) -> ProductIdentity:
        """Resolve one raw name"""
        key = self.lookup_key(raw_name)
        if not key:
            return ProductIdentity.fallback("")

        cached = await self._get_cached([key])
        if key in cached:
            return cached[key]

        identity = await self._ask_oracle_one(raw_name.strip())
        await self._store_cache(key, identity)
        await self.db.commit()
        return identity

    async def normalize_many(self, raw_names: Iterable[str]) -> Dict[str, ProductIdentity]:
        """
        Resolve many raw names with at most one oracle call per chunk of misses.

        Returns:
            Mapping from each non-empty input string (as given) to its identity
        """
        names_by_key: Dict[str, List[str]] = {}
        for raw_name in raw_names:
            key = self.lookup_key(raw_name)
            if key:
                names_by_key.setdefault(key, []).append(raw_name)

        if not names_by_key:
            return {}

        resolved = await self._get_cached(list(names_by_key))
        misses = [key for key in names_by_key if key not in resolved]

        logger.info(
            f"Normalizing {len(names_by_key)} distinct names: "
            f"{len(resolved)} cached, {len(misses)} to resolve"
        )

        for start in range(0, len(misses), self.batch_size):
            chunk_keys = misses[start:start + self.batch_size]
            chunk_names = [names_by_key[key][0].strip() for key in chunk_keys]
            chunk_results = await self._ask_oracle_batch(chunk_names)

            for key, raw_name in zip(chunk_keys, chunk_names):
                identity = chunk_results.get(key) or ProductIdentity.fallback(raw_name)
                await self._store_cache(key, identity)
                resolved[key] = identity

        if misses:
            await self.db.commit()

        return {
            raw_name: resolved[key]
            for key, raw_list in names_by_key.items()
            for raw_name in raw_list
        }

    async def find_or_create_product(self, identity: ProductIdentity) -> int:
        """
        Return the NormalizedProduct id for an identity, creating it with zero
        aggregates when absent.

        Concurrent callers racing on the same name_normalized end up with the
        same row: the insert is ON CONFLICT DO NOTHING against the unique key,
        and every caller re-reads the surviving row.
        """
        key = identity.name_normalized

        product_id = await self._get_product_id(key)
        if product_id is not None:
            return product_id

        stmt = dialect_insert(self.db, NormalizedProduct).values(
            name=identity.name,
            name_normalized=key,
            category=identity.category,
            brand=identity.brand,
            total_sales=0,
            total_revenue_vnd=0,
            total_profit_vnd=0,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        ).on_conflict_do_nothing(index_elements=["name_normalized"])
        await self.db.execute(stmt)

        product_id = await self._get_product_id(key)
        if product_id is None:
            raise UpsertError(
                "Product vanished after insert-or-fetch",
                context={"table_name": "normalized_products",
                         "conflict_fields": ["name_normalized"], "key": key}
            )

        await self.db.commit()
        logger.debug(f"Resolved product '{key}' -> {product_id}")
        return product_id

    async def resolve_product_id(self, raw_name: str) -> Tuple[ProductIdentity, int]:
        """Normalize a raw name and return its identity with the product row id"""
        identity = await self.normalize(raw_name)
        product_id = await self.find_or_create_product(identity)
        return identity, product_id

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def _get_cached(self, keys: List[str]) -> Dict[str, ProductIdentity]:
        result = await self.db.execute(
            select(ProductNameCache).where(ProductNameCache.raw_name.in_(keys))
        )
        return {
            entry.raw_name: ProductIdentity(
                name=entry.normalized_name,
                category=entry.category,
                brand=entry.brand,
            )
            for entry in result.scalars().all()
        }

    async def _store_cache(self, key: str, identity: ProductIdentity) -> None:
        """Idempotent write-back: the last resolution for a raw name wins"""
        stmt = dialect_insert(self.db, ProductNameCache).values(
            raw_name=key,
            normalized_name=identity.name,
            category=identity.category,
            brand=identity.brand,
            created_at=datetime.utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["raw_name"],
            set_={
                "normalized_name": stmt.excluded.normalized_name,
                "category": stmt.excluded.category,
                "brand": stmt.excluded.brand,
            }
        )
        await self.db.execute(stmt)

    async def _get_product_id(self, name_normalized: str) -> Optional[int]:
        result = await self.db.execute(
            select(NormalizedProduct.id).where(NormalizedProduct.name_normalized == name_normalized)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Oracle
    # ------------------------------------------------------------------

    async def _ask_oracle_one(self, raw_name: str) -> ProductIdentity:
        try:
            data = await self.oracle.normalize_one(raw_name)
        except OracleUnavailableError:
            return ProductIdentity.fallback(raw_name)
        except OracleError as e:
            logger.warning(f"Oracle failed for '{raw_name}', using fallback: {e.message}")
            return ProductIdentity.fallback(raw_name)
        except Exception as e:
            logger.warning(f"Unexpected oracle error for '{raw_name}', using fallback: {e}")
            return ProductIdentity.fallback(raw_name)

        return _identity_from_oracle(raw_name, data)

    async def _ask_oracle_batch(self, raw_names: List[str]) -> Dict[str, ProductIdentity]:
        """Resolve a chunk; names missing from the reply are simply absent"""
        try:
            entries = await self.oracle.normalize_batch(raw_names)
        except OracleUnavailableError:
            return {}
        except OracleError as e:
            logger.warning(f"Batch oracle call failed for {len(raw_names)} names, using fallback: {e.message}")
            return {}
        except Exception as e:
            logger.warning(f"Unexpected batch oracle error for {len(raw_names)} names, using fallback: {e}")
            return {}

        wanted = {self.lookup_key(name): name for name in raw_names}
        results: Dict[str, ProductIdentity] = {}
        for entry in entries:
            original = entry.get("original")
            if not isinstance(original, str):
                continue
            key = self.lookup_key(original)
            if key in wanted and key not in results:
                results[key] = _identity_from_oracle(wanted[key], entry)

        unmatched = len(wanted) - len(results)
        if unmatched:
            logger.warning(f"Oracle returned no match for {unmatched} of {len(wanted)} names")
        return results


def _identity_from_oracle(raw_name: str, data: Dict) -> ProductIdentity:
    """Validate one oracle entry; invalid entries degrade to the fallback"""
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        name = raw_name
    try:
        return ProductIdentity(
            name=name,
            category=data.get("category"),
            brand=data.get("brand"),
        )
    except ValidationError as e:
        logger.warning(f"Invalid oracle entry for '{raw_name}', using fallback: {e}")
        return ProductIdentity.fallback(raw_name)
