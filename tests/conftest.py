"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from itertools import count

import pytest

from vector_ingest.ingestion.embedder import Embedder, RetryPolicy
from vector_ingest.ingestion.errors import EmbeddingProviderError
from vector_ingest.ingestion.models import VectorRecord
from vector_ingest.ingestion.pipeline import IngestionPipeline
from vector_ingest.store.base import VectorStoreBase
from vector_ingest.store.models import IndexStats, MetadataFilter, StoreMatch


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── In-memory collaborators ─────────────────────────────────────────────


def _matches(metadata: dict, flt: MetadataFilter) -> bool:
    value = metadata.get(flt.field)
    if flt.operator == "eq":
        return value == flt.value
    if flt.operator == "ne":
        return value != flt.value
    if flt.operator == "in":
        return value in flt.value
    raise ValueError(flt.operator)


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeVectorStore(VectorStoreBase):
    """Dict-backed store keyed by ``(index, namespace, id)``; counts every call."""

    def __init__(self) -> None:
        self.records: dict[tuple[str, str, str], VectorRecord] = {}
        self.upsert_calls = 0
        self.query_calls = 0
        self.fail_on_upsert_call: int | None = None
        self.healthy = True

    async def upsert(self, index_name, vectors, namespace=None) -> int:
        self.upsert_calls += 1
        if self.fail_on_upsert_call == self.upsert_calls:
            raise ConnectionError("store unavailable")
        for v in vectors:
            self.records[(index_name, namespace or "", v.id)] = v
        return len(vectors)

    async def query(self, index_name, vector, *, top_k=5, filters=None, namespace=None):
        self.query_calls += 1
        scored = [
            StoreMatch(id=rid, metadata=dict(rec.metadata), score=_cosine(vector, rec.values))
            for (idx, ns, rid), rec in self.records.items()
            if idx == index_name
            and ns == (namespace or "")
            and all(_matches(rec.metadata, f) for f in filters or [])
        ]
        scored.sort(key=lambda m: m.score, reverse=True)
        return scored[:top_k]

    async def query_by_metadata(self, index_name, filters, namespace=None, *, top_k=10):
        self.query_calls += 1
        hits = [
            StoreMatch(id=rid, metadata=dict(rec.metadata))
            for (idx, ns, rid), rec in self.records.items()
            if idx == index_name
            and ns == (namespace or "")
            and all(_matches(rec.metadata, f) for f in filters)
        ]
        return hits[:top_k]

    async def stats(self, index_name) -> IndexStats:
        namespaces: dict[str, int] = {}
        for idx, ns, _ in self.records:
            if idx == index_name:
                namespaces[ns] = namespaces.get(ns, 0) + 1
        return IndexStats(total_vectors=sum(namespaces.values()), namespaces=namespaces)

    async def list_indexes(self) -> list[str]:
        return sorted({idx for idx, _, _ in self.records})

    async def delete_by_filter(self, index_name, filters, namespace=None) -> int:
        doomed = [
            key
            for key, rec in self.records.items()
            if key[0] == index_name
            and key[1] == (namespace or "")
            and all(_matches(rec.metadata, f) for f in filters)
        ]
        for key in doomed:
            del self.records[key]
        return len(doomed)

    def health_check(self) -> bool:
        return self.healthy


class FakeEmbeddingProvider:
    """Returns ``[index, 0, 0, ...]`` vectors; optionally raises per call."""

    def __init__(self, failures: dict[int, Exception] | None = None) -> None:
        self.calls: list[list[str]] = []
        self._failures = failures or {}

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        self.calls.append(list(texts))
        failure = self._failures.get(len(self.calls))
        if failure is not None:
            raise failure
        return [[float(i + 1)] + [0.0] * (dimensions - 1) for i in range(len(texts))]


class RecordingSleep:
    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


def transient(message: str = "rate limited") -> EmbeddingProviderError:
    return EmbeddingProviderError(message)


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture()
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def embedder(provider: FakeEmbeddingProvider, sleep: RecordingSleep) -> Embedder:
    return Embedder(provider, batch_size=100, policy=RetryPolicy(), sleep=sleep)


@pytest.fixture()
def pipeline(store: FakeVectorStore, embedder: Embedder) -> IngestionPipeline:
    ids = count(1)
    return IngestionPipeline(
        store,
        embedder,
        upsert_batch_size=100,
        clock=lambda: datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        id_factory=lambda: f"tok{next(ids)}",
    )


@pytest.fixture()
def sample_csv() -> bytes:
    header = "product,region,quarterly_revenue,notes\n"
    rows = [
        f"Widget {i},Region {i % 3},{1000 + i * 37},Steady demand from returning customers\n"
        for i in range(12)
    ]
    return (header + "".join(rows)).encode("utf-8")
