"""Unit tests for the store layer — Chroma adapter and file-level helpers."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from tests.conftest import FakeVectorStore
from vector_ingest.ingestion.models import VectorRecord
from vector_ingest.store.chroma_store import (
    NAMESPACE_KEY,
    ChromaVectorStore,
    build_chroma_where,
    flatten_metadata,
)
from vector_ingest.store.files import delete_file, file_stats, find_duplicate, list_files
from vector_ingest.store.models import MetadataFilter


# ── Chroma translation helpers ──────────────────────────────────────────


def test_where_always_scopes_namespace() -> None:
    assert build_chroma_where([], None) == {NAMESPACE_KEY: {"$eq": ""}}
    assert build_chroma_where([MetadataFilter.equals("file_hash", "abc")], "emea") == {
        "$and": [
            {NAMESPACE_KEY: {"$eq": "emea"}},
            {"file_hash": {"$eq": "abc"}},
        ]
    }


def test_where_rejects_unknown_operator() -> None:
    with pytest.raises(ValueError, match="Unsupported filter operator"):
        build_chroma_where([MetadataFilter(field="x", operator="like", value="y")])


def test_flatten_metadata() -> None:
    flat = flatten_metadata(
        {"topic": "HR", "page": 2, "tags": ["a", "b"], "nested": {"x": 1}}, "ns"
    )
    assert flat == {"topic": "HR", "page": 2, "tags": "a, b", NAMESPACE_KEY: "ns"}


# ── ChromaVectorStore with a mocked client ──────────────────────────────


@pytest.fixture()
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def chroma(client: MagicMock) -> ChromaVectorStore:
    return ChromaVectorStore(client=client)


@pytest.mark.asyncio
async def test_upsert_creates_collection_and_flattens(
    chroma: ChromaVectorStore, client: MagicMock
) -> None:
    records = [
        VectorRecord(id="t-0", values=[0.1, 0.2], metadata={"text": "hello", "tags": ["x"]}),
        VectorRecord(id="t-1", values=[0.3, 0.4], metadata={"text": "world"}),
    ]

    written = await chroma.upsert("docs", records, "emea")

    assert written == 2
    client.get_or_create_collection.assert_called_once_with(
        name="docs", metadata={"hnsw:space": "cosine"}
    )
    kwargs = client.get_or_create_collection.return_value.upsert.call_args.kwargs
    assert kwargs["ids"] == ["t-0", "t-1"]
    assert kwargs["documents"] == ["hello", "world"]
    assert kwargs["metadatas"][0] == {"text": "hello", "tags": "x", NAMESPACE_KEY: "emea"}


@pytest.mark.asyncio
async def test_upsert_nothing_skips_client(chroma: ChromaVectorStore, client: MagicMock) -> None:
    assert await chroma.upsert("docs", []) == 0
    client.get_or_create_collection.assert_not_called()


@pytest.mark.asyncio
async def test_query_missing_index_returns_empty(
    chroma: ChromaVectorStore, client: MagicMock
) -> None:
    client.list_collections.return_value = []
    assert await chroma.query_by_metadata("docs", [MetadataFilter.equals("a", 1)]) == []
    client.get_collection.assert_not_called()


@pytest.mark.asyncio
async def test_query_by_metadata(chroma: ChromaVectorStore, client: MagicMock) -> None:
    client.list_collections.return_value = ["docs"]
    collection = client.get_collection.return_value
    collection.get.return_value = {"ids": ["t-0"], "metadatas": [{"filename": "a.pdf"}]}

    matches = await chroma.query_by_metadata(
        "docs", [MetadataFilter.equals("filename", "a.pdf")], top_k=5
    )

    assert [(m.id, m.metadata) for m in matches] == [("t-0", {"filename": "a.pdf"})]
    assert collection.get.call_args.kwargs["limit"] == 5


@pytest.mark.asyncio
async def test_stats_and_list_indexes(chroma: ChromaVectorStore, client: MagicMock) -> None:
    named = MagicMock()
    named.name = "reports"
    client.list_collections.return_value = ["docs", named]
    collection = client.get_collection.return_value
    collection.count.return_value = 3
    collection.get.return_value = {
        "metadatas": [{NAMESPACE_KEY: ""}, {NAMESPACE_KEY: "emea"}, {NAMESPACE_KEY: "emea"}]
    }

    assert await chroma.list_indexes() == ["docs", "reports"]
    stats = await chroma.stats("docs")
    assert stats.total_vectors == 3
    assert stats.namespaces == {"": 1, "emea": 2}


@pytest.mark.asyncio
async def test_delete_by_filter(chroma: ChromaVectorStore, client: MagicMock) -> None:
    collection = client.get_collection.return_value
    collection.get.return_value = {"ids": ["t-0", "t-1"]}

    deleted = await chroma.delete_by_filter("docs", [MetadataFilter.equals("filename", "a.pdf")])

    assert deleted == 2
    collection.delete.assert_called_once_with(ids=["t-0", "t-1"])


@pytest.mark.asyncio
async def test_vector_query_scores_and_scopes(
    chroma: ChromaVectorStore, client: MagicMock
) -> None:
    client.list_collections.return_value = ["docs"]
    collection = client.get_collection.return_value
    collection.count.return_value = 10
    collection.query.return_value = {
        "ids": [["t-0", "t-3"]],
        "metadatas": [[{"topic": "HR"}, {"topic": "HR"}]],
        "distances": [[0.1, 0.4]],
    }

    matches = await chroma.query(
        "docs",
        [0.1, 0.2],
        top_k=2,
        filters=[MetadataFilter.equals("topic", "HR")],
        namespace="emea",
    )

    assert [m.id for m in matches] == ["t-0", "t-3"]
    assert [m.score for m in matches] == pytest.approx([0.9, 0.6])
    assert matches[0].metadata == {"topic": "HR"}
    kwargs = collection.query.call_args.kwargs
    assert kwargs["query_embeddings"] == [[0.1, 0.2]]
    assert kwargs["n_results"] == 2
    assert kwargs["where"] == build_chroma_where([MetadataFilter.equals("topic", "HR")], "emea")


@pytest.mark.asyncio
async def test_vector_query_caps_results_at_collection_size(
    chroma: ChromaVectorStore, client: MagicMock
) -> None:
    client.list_collections.return_value = ["docs"]
    collection = client.get_collection.return_value
    collection.count.return_value = 3
    collection.query.return_value = {"ids": [[]], "metadatas": [[]], "distances": [[]]}

    assert await chroma.query("docs", [0.0], top_k=50) == []
    assert collection.query.call_args.kwargs["n_results"] == 3


@pytest.mark.asyncio
async def test_vector_query_on_missing_or_empty_index(
    chroma: ChromaVectorStore, client: MagicMock
) -> None:
    client.list_collections.return_value = []
    assert await chroma.query("docs", [0.0]) == []
    client.get_collection.assert_not_called()

    client.list_collections.return_value = ["docs"]
    client.get_collection.return_value.count.return_value = 0
    assert await chroma.query("docs", [0.0]) == []
    client.get_collection.return_value.query.assert_not_called()


@pytest.mark.asyncio
async def test_vector_query_l2_scores(client: MagicMock) -> None:
    chroma = ChromaVectorStore(client=client, distance_metric="l2")
    client.list_collections.return_value = ["docs"]
    collection = client.get_collection.return_value
    collection.count.return_value = 1
    collection.query.return_value = {
        "ids": [["t-0"]],
        "metadatas": [[None]],
        "distances": [[3.0]],
    }

    [match] = await chroma.query("docs", [0.0])

    assert match.score == pytest.approx(0.25)
    assert match.metadata == {}


def test_health_check(chroma: ChromaVectorStore, client: MagicMock) -> None:
    assert chroma.health_check() is True
    client.heartbeat.side_effect = ConnectionError("down")
    assert chroma.health_check() is False


# ── File-level helpers ──────────────────────────────────────────────────


def _record(rid: str, filename: str, uploaded_at: str, file_hash: str = "h") -> VectorRecord:
    return VectorRecord(
        id=rid,
        values=[0.0],
        metadata={
            "filename": filename,
            "file_hash": file_hash,
            "uploaded_at": uploaded_at,
            "topic": "Ops",
        },
    )


@pytest.fixture()
def populated() -> FakeVectorStore:
    store = FakeVectorStore()
    for rid, name, ts, digest in [
        ("a-0", "old.pdf", "2024-01-01T00:00:00", "h1"),
        ("a-1", "old.pdf", "2024-01-01T00:00:00", "h1"),
        ("b-0", "new.csv", "2024-03-01T00:00:00", "h2"),
    ]:
        store.records[("docs", "", rid)] = _record(rid, name, ts, digest)
    return store


@pytest.mark.asyncio
async def test_file_stats(populated: FakeVectorStore) -> None:
    assert await file_stats(populated, "docs", "old.pdf") == (2, 2)
    assert await file_stats(populated, "docs", "missing.pdf") == (0, 0)


@pytest.mark.asyncio
async def test_find_duplicate(populated: FakeVectorStore) -> None:
    info = await find_duplicate(populated, "docs", "h1")
    assert info is not None
    assert (info.filename, info.uploaded_at, info.chunks_count) == (
        "old.pdf",
        "2024-01-01T00:00:00",
        2,
    )
    assert await find_duplicate(populated, "docs", "nope") is None
    assert await find_duplicate(populated, "docs", "h1", namespace="other") is None


@pytest.mark.asyncio
async def test_list_files_newest_first(populated: FakeVectorStore) -> None:
    files = await list_files(populated, "docs")
    assert [(f.filename, f.chunks_count) for f in files] == [("new.csv", 1), ("old.pdf", 2)]
    assert files[0].topic == "Ops"
    assert files[0].source == "Unknown"


@pytest.mark.asyncio
async def test_delete_file(populated: FakeVectorStore) -> None:
    assert await delete_file(populated, "docs", "old.pdf") == 2
    assert [rid for _, _, rid in populated.records] == ["b-0"]
