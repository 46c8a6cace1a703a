"""Shared fixtures: in-memory database and fake collaborators."""

import asyncio
from typing import Dict, Iterable, List, Optional, Set

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from correlator.db.models import Base
from correlator.errors import UpstreamUnavailable
from correlator.ingest.base import ProductDataGateway, ProductRecord

TEST_DATABASE_URL = "sqlite+aiosqlite://"

PRIMARY = "B0TESTPRM1"
VARIANT_1 = "B0TESTVAR1"
VARIANT_2 = "B0TESTVAR2"
SIMILAR_1 = "B0TESTSIM1"
SIMILAR_2 = "B0TESTSIM2"


def make_record(
    asin: str,
    title: Optional[str] = None,
    brand: Optional[str] = "Acme",
    root_category: Optional[int] = 42,
    variations: Iterable[str] = (),
) -> ProductRecord:
    return ProductRecord(
        asin=asin,
        title=title or f"Acme product {asin}",
        brand=brand,
        root_category=root_category,
        image_url=f"https://m.media-amazon.com/images/I/{asin}.jpg",
        url=f"https://www.amazon.com/dp/{asin}",
        variation_asins=list(variations),
    )


class FakeGateway(ProductDataGateway):
    """In-memory catalog that records every call."""

    def __init__(
        self,
        products: Optional[Dict[str, ProductRecord]] = None,
        search_results: Optional[List[str]] = None,
        failing_domains: Optional[Set[int]] = None,
        missing_domains: Optional[Set[int]] = None,
        fail_search: bool = False,
    ):
        self.products = products or {}
        self.search_results = search_results or []
        self.failing_domains = failing_domains or set()
        self.missing_domains = missing_domains or set()
        self.fail_search = fail_search
        self.lookup_calls: List[tuple] = []
        self.search_calls: List[tuple] = []
        self.closed = False

    async def lookup(self, asins, domain=None):
        self.lookup_calls.append((list(asins), domain))
        if domain in self.failing_domains:
            raise UpstreamUnavailable(f"domain {domain} down")
        if domain in self.missing_domains:
            return []
        return [self.products[a.upper()] for a in asins if a.upper() in self.products]

    async def search_by_facets(self, brand, root_category):
        self.search_calls.append((brand, root_category))
        if self.fail_search:
            return []
        return list(self.search_results)

    async def close(self):
        self.closed = True

    @property
    def probe_calls(self) -> List[tuple]:
        return [call for call in self.lookup_calls if call[1] is not None]


class FakeLLM:
    """LLM stand-in keyed on the candidate ASIN found in the prompt."""

    def __init__(self, replies=None, default: str = "NO", delay: float = 0.0):
        self.replies = replies or {}
        self.default = default
        self.delay = delay
        self.prompts: List[str] = []
        self.system_prompts: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def complete(
        self, prompt, system_prompt="", max_tokens=None, temperature=None, use_cache=True, cacheable=None
    ):
        self.prompts.append(prompt)
        self.system_prompts.append(system_prompt)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            for asin, reply in self.replies.items():
                if f"ASIN: {asin}" in prompt:
                    if isinstance(reply, Exception):
                        raise reply
                    return reply
            if isinstance(self.default, Exception):
                raise self.default
            return self.default
        finally:
            self.in_flight -= 1

    async def close(self):
        pass


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def catalog() -> FakeGateway:
    """Primary with two variants; search also returns one variant and two new ASINs."""
    products = {
        PRIMARY: make_record(PRIMARY, "Acme Bluetooth Speaker", variations=[VARIANT_1, VARIANT_2]),
        VARIANT_1: make_record(VARIANT_1, "Acme Bluetooth Speaker - Red"),
        VARIANT_2: make_record(VARIANT_2, "Acme Bluetooth Speaker - Blue"),
        SIMILAR_1: make_record(SIMILAR_1, "Acme Bluetooth Speaker Mini"),
        SIMILAR_2: make_record(SIMILAR_2, "Acme USB-C Charging Cable"),
    }
    return FakeGateway(products=products, search_results=[VARIANT_1, SIMILAR_1, SIMILAR_2])


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM(replies={SIMILAR_1: "YES", SIMILAR_2: "NO"})
