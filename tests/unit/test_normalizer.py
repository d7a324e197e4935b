"""
Unit tests for the Product Identity Resolver
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import select, func
from ingestion.transformers.normalizer import ProductNormalizer
from models.base import ProductCategory
from models.normalized_product import NormalizedProduct
from models.product_name_cache import ProductNameCache


class TestNormalize:
    """Single-name resolution"""

    @pytest.mark.asyncio
    async def test_cache_short_circuit(self, normalizer, fake_oracle):
        """Normalizing the same raw name twice asks the oracle at most once"""
        fake_oracle.responses["glucosamine kirland costco"] = {
            "name": "Kirkland Glucosamine", "category": "supplements", "brand": "Kirkland"
        }

        first = await normalizer.normalize("glucosamine kirland costco")
        second = await normalizer.normalize("  Glucosamine Kirland Costco ")

        assert fake_oracle.calls == 1
        assert first == second
        assert second.name == "Kirkland Glucosamine"
        assert second.category == ProductCategory.SUPPLEMENTS
        assert second.brand == "Kirkland"

    @pytest.mark.asyncio
    async def test_unknown_category_coerced_to_other(self, normalizer, fake_oracle, session_factory):
        fake_oracle.responses["chảo chống dính"] = {
            "name": "Nonstick Frying Pan", "category": "kitchenware", "brand": None
        }

        identity = await normalizer.normalize("chảo chống dính")
        product_id = await normalizer.find_or_create_product(identity)

        assert identity.category == ProductCategory.OTHER

        async with session_factory() as session:
            cached = (await session.execute(
                select(ProductNameCache).where(ProductNameCache.raw_name == "chảo chống dính")
            )).scalar_one()
            product = await session.get(NormalizedProduct, product_id)

        assert cached.category == ProductCategory.OTHER
        assert product.category == ProductCategory.OTHER

    @pytest.mark.asyncio
    async def test_oracle_failure_falls_back(self, normalizer, fake_oracle):
        fake_oracle.fail = True

        identity = await normalizer.normalize("Bỉm Huggies size 3")

        assert identity.name == "Bỉm Huggies size 3"
        assert identity.category == ProductCategory.OTHER
        assert identity.brand is None

        # The fallback is cached too
        await normalizer.normalize("bỉm huggies size 3")
        assert fake_oracle.calls == 1

    @pytest.mark.asyncio
    async def test_overlong_name_falls_back_truncated(self, normalizer, fake_oracle):
        fake_oracle.fail = True

        identity = await normalizer.normalize("x" * 501)

        assert identity.name == "x" * 500
        assert identity.name_normalized == "x" * 500
        assert identity.category == ProductCategory.OTHER

    @pytest.mark.asyncio
    async def test_overlong_oracle_name_falls_back(self, normalizer, fake_oracle):
        fake_oracle.responses["son dior 999"] = {"name": "Son " * 200, "category": "cosmetics"}

        identity = await normalizer.normalize("son dior 999")

        assert identity.name == "son dior 999"
        assert identity.category == ProductCategory.OTHER

    @pytest.mark.asyncio
    async def test_disabled_oracle_falls_back(self, db_session):
        normalizer = ProductNormalizer(db_session)  # no API key configured in tests

        identity = await normalizer.normalize("túi katespade new york")

        assert identity.name == "túi katespade new york"
        assert identity.category == ProductCategory.OTHER

    @pytest.mark.asyncio
    async def test_empty_name(self, normalizer, fake_oracle):
        identity = await normalizer.normalize("   ")

        assert identity.name == "Unknown Product"
        assert fake_oracle.calls == 0

    @pytest.mark.asyncio
    async def test_blank_brand_and_name_from_oracle(self, normalizer, fake_oracle):
        fake_oracle.responses["son dior 999"] = {"name": "", "category": "COSMETICS", "brand": "null"}

        identity = await normalizer.normalize("son dior 999")

        assert identity.name == "son dior 999"
        assert identity.category == ProductCategory.COSMETICS
        assert identity.brand is None


class TestNormalizeMany:
    """Batched resolution"""

    @pytest.mark.asyncio
    async def test_dedupes_and_skips_cached(self, normalizer, fake_oracle):
        await normalizer.normalize("Kirkland Glucosamine")
        assert fake_oracle.calls == 1

        result = await normalizer.normalize_many([
            "Kirkland Glucosamine",
            "Bỉm Huggies size 3",
            "bỉm huggies size 3",
            "Sữa rửa mặt Kiehl's",
            "",
        ])

        assert set(result) == {"Kirkland Glucosamine", "Bỉm Huggies size 3", "bỉm huggies size 3", "Sữa rửa mặt Kiehl's"}
        assert result["Bỉm Huggies size 3"] == result["bỉm huggies size 3"]
        assert len(fake_oracle.batch_calls) == 1
        assert sorted(fake_oracle.batch_calls[0]) == sorted(["Bỉm Huggies size 3", "Sữa rửa mặt Kiehl's"])

    @pytest.mark.asyncio
    async def test_chunks_oracle_calls(self, db_session, fake_oracle):
        normalizer = ProductNormalizer(db_session, oracle=fake_oracle, batch_size=2)

        await normalizer.normalize_many(["a1", "b2", "c3", "d4", "e5"])

        assert [len(chunk) for chunk in fake_oracle.batch_calls] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_missing_entries_fall_back(self, normalizer, fake_oracle):
        fake_oracle.responses["kirkland glucosamine"] = {
            "name": "Kirkland Glucosamine", "category": "supplements", "brand": "Kirkland"
        }
        fake_oracle.omit.add("mystery item")

        result = await normalizer.normalize_many(["Kirkland Glucosamine", "Mystery Item"])

        assert result["Kirkland Glucosamine"].category == ProductCategory.SUPPLEMENTS
        assert result["Mystery Item"].name == "Mystery Item"
        assert result["Mystery Item"].category == ProductCategory.OTHER

    @pytest.mark.asyncio
    async def test_matches_originals_case_insensitively(self, db_session):
        oracle = MagicMock()
        oracle.normalize_batch = AsyncMock(return_value=[
            {"original": "VITAMIN C 1000MG", "name": "Vitamin C 1000mg", "category": "supplements", "brand": None},
        ])
        normalizer = ProductNormalizer(db_session, oracle=oracle)

        result = await normalizer.normalize_many(["vitamin c 1000mg"])

        assert result["vitamin c 1000mg"].name == "Vitamin C 1000mg"
        assert result["vitamin c 1000mg"].category == ProductCategory.SUPPLEMENTS

    @pytest.mark.asyncio
    async def test_batch_failure_falls_back(self, normalizer, fake_oracle):
        fake_oracle.fail = True

        result = await normalizer.normalize_many(["Kirkland Glucosamine", "Bỉm Huggies size 3"])

        assert {identity.category for identity in result.values()} == {ProductCategory.OTHER}
        assert result["Kirkland Glucosamine"].name == "Kirkland Glucosamine"


class TestFindOrCreateProduct:
    """Identity rows"""

    @pytest.mark.asyncio
    async def test_same_identity_same_row(self, normalizer, session_factory):
        _, first_id = await normalizer.resolve_product_id("Kirkland Glucosamine")
        _, second_id = await normalizer.resolve_product_id("kirkland glucosamine")

        assert first_id == second_id

        async with session_factory() as session:
            count = (await session.execute(select(func.count(NormalizedProduct.id)))).scalar()
            product = await session.get(NormalizedProduct, first_id)

        assert count == 1
        assert product.total_sales == 0
        assert product.total_revenue_vnd == 0

    @pytest.mark.asyncio
    async def test_many_raw_names_one_identity(self, normalizer, fake_oracle, session_factory):
        for raw in ("glucosamine kirland costco", "kirkland glucosamine 1500mg"):
            fake_oracle.responses[raw] = {"name": "Kirkland Glucosamine", "category": "supplements", "brand": "Kirkland"}

        _, first_id = await normalizer.resolve_product_id("glucosamine kirland costco")
        _, second_id = await normalizer.resolve_product_id("kirkland glucosamine 1500mg")

        assert first_id == second_id

        async with session_factory() as session:
            cache_rows = (await session.execute(select(func.count(ProductNameCache.id)))).scalar()
        assert cache_rows == 2
