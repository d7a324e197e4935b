"""
Pytest configuration and fixtures
"""

import os

# Settings are read at import time; point them at throwaway values first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_unused.db"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["ENVIRONMENT"] = "test"
os.environ["RECONCILE_SCHEDULER_ENABLED"] = "false"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator, Dict, List
from core.exceptions import NetworkError
from ingestion.transformers.normalizer import ProductNormalizer
from models import Base


class FakeOracle:
    """
    In-memory stand-in for NormalizationOracle.

    responses: lower-cased raw name -> {"name", "category", "brand"}
    omit: lower-cased names left out of batch replies
    fail: raise NetworkError on every call
    """

    def __init__(self):
        self.responses: Dict[str, Dict] = {}
        self.omit = set()
        self.fail = False
        self.single_calls: List[str] = []
        self.batch_calls: List[List[str]] = []

    @property
    def calls(self) -> int:
        return len(self.single_calls) + len(self.batch_calls)

    async def normalize_one(self, raw_name: str) -> Dict:
        self.single_calls.append(raw_name)
        if self.fail:
            raise NetworkError("Oracle unreachable", context={"names": [raw_name]})
        return self._answer(raw_name)

    async def normalize_batch(self, raw_names: List[str]) -> List[Dict]:
        self.batch_calls.append(list(raw_names))
        if self.fail:
            raise NetworkError("Oracle unreachable", context={"names": list(raw_names)})
        return [
            {"original": name, **self._answer(name)}
            for name in raw_names
            if name.strip().lower() not in self.omit
        ]

    def _answer(self, raw_name: str) -> Dict:
        key = raw_name.strip().lower()
        if key in self.responses:
            return dict(self.responses[key])
        return {"name": raw_name.strip().title(), "category": "other", "brand": None}


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite database per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Factory for independent sessions (fresh reads, concurrent callers)"""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def fake_oracle():
    return FakeOracle()


@pytest.fixture
def normalizer(db_session, fake_oracle):
    return ProductNormalizer(db_session, oracle=fake_oracle, batch_size=10)


@pytest.fixture
def sample_headers():
    return ["STT", "Mặt hàng", "Khách hàng", "Giá nhập (USD)", "Giá bán", "Lãi", "Thanh toán"]


@pytest.fixture
def sample_rows():
    """Three sales, a blank row and a shipping-fee footer"""
    return [
        [1, "Kirkland Glucosamine", "Mai", 20, 850000, 120000, "Đã thanh toán"],
        [2, "Sữa rửa mặt Kiehl's", "Lan", 25, "1.200.000", "250,000", "chưa"],
        [3, "Bỉm Huggies size 3", "Hoa", 30, 900000, 100000, "cọc"],
        [None, None, None, None, None, None, None],
        [None, "Tổng tiền ship", None, None, 300000, None, None],
    ]


@pytest.fixture
def sample_sheet(sample_headers, sample_rows):
    """Raw inbound payload for one batch sheet"""
    return {
        "sheetName": "Đợt hàng 11 - 1125",
        "headers": sample_headers,
        "rows": sample_rows,
    }
