"""Pytest fixtures: sqlite store, fake embeddings, ingestion queue, service, client."""
import asyncio
import re
import zlib
from typing import List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from brain.db import Base
from brain.main import app
from brain import models  # noqa: F401  register tables on Base.metadata
from brain.services.brain import BrainService
from brain.services.embedding import EmbeddingProvider, EmbeddingServiceError
from brain.services.ingestion import IngestionQueue
from brain.services.store import KnowledgeStore

TEST_DIM = 32

_WORD_RE = re.compile(r"\w+", re.UNICODE)


class FakeEmbeddingProvider(EmbeddingProvider):
    """Hashed bag-of-words vectors: texts sharing words get positive cosine scores."""

    def __init__(self, dimension: int = TEST_DIM, batch_size: int = 4):
        super().__init__(dimension, batch_size)
        self.calls = 0
        self.fail_with: Optional[str] = None

    def vector(self, text: str) -> List[float]:
        v = [0.0] * self.dimension
        for word in _WORD_RE.findall(text.lower()):
            v[zlib.crc32(word.encode("utf-8")) % self.dimension] += 1.0
        return v

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls += 1
        if self.fail_with:
            raise EmbeddingServiceError(self.fail_with)
        return [self.vector(t) for t in texts]


class BlockingEmbeddingProvider(FakeEmbeddingProvider):
    """Parks document embedding until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def embed_documents(self, texts):
        self.started.set()
        await self.release.wait()
        return await super().embed_documents(texts)


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'brain.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> KnowledgeStore:
    return KnowledgeStore(session_factory, insert_batch_size=3)


@pytest.fixture
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
async def queue(store, provider):
    q = IngestionQueue(store, provider, workers=2)
    q.start()
    yield q
    await q.stop()


@pytest.fixture
def brain(store, provider, queue) -> BrainService:
    return BrainService(store, provider, queue)


@pytest.fixture
async def async_client(brain):
    app.state.brain = brain
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.state.brain = None


@pytest.fixture
def blocking_provider() -> BlockingEmbeddingProvider:
    return BlockingEmbeddingProvider()
