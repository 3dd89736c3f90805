"""Chroma implementation of the vector-store abstraction.

One Chroma collection per index.  Chroma has no namespaces, so the
namespace is stored in a reserved ``namespace`` metadata key and added to
every ``where`` clause.  The Chroma HTTP client is synchronous; calls run in
a worker thread so the event loop stays free.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any

import chromadb

from vector_ingest.config import settings
from vector_ingest.ingestion.models import VectorRecord
from vector_ingest.store.base import VectorStoreBase
from vector_ingest.store.models import IndexStats, MetadataFilter, StoreMatch

logger = logging.getLogger(__name__)

NAMESPACE_KEY = "namespace"

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "in": "$in",
    "nin": "$nin",
}


def build_chroma_where(
    filters: list[MetadataFilter], namespace: str | None = None
) -> dict[str, Any]:
    """Convert *filters* plus the namespace to Chroma ``where`` syntax."""
    clauses: list[dict[str, Any]] = [{NAMESPACE_KEY: {"$eq": namespace or ""}}]
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def flatten_metadata(metadata: dict[str, Any], namespace: str | None) -> dict[str, Any]:
    """Chroma metadata values must be flat str/int/float/bool."""
    flat: dict[str, Any] = {}
    for k, v in metadata.items():
        if isinstance(v, (str, int, float, bool)):
            flat[k] = v
        elif isinstance(v, (list, tuple)):
            flat[k] = ", ".join(str(item) for item in v)
    flat[NAMESPACE_KEY] = namespace or ""
    return flat


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store.

    Parameters
    ----------
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    distance_metric:
        Distance function for new collections (``cosine`` | ``l2`` | ``ip``).
    client:
        Pre-built Chroma client; overrides *host* / *port*.
    """

    def __init__(
        self,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        distance_metric: str = "cosine",
        client: Any | None = None,
    ) -> None:
        self._client = client or chromadb.HttpClient(host=host, port=port)
        self._distance_metric = distance_metric

    def _collection(self, index_name: str, *, create: bool = False) -> Any:
        if create:
            return self._client.get_or_create_collection(
                name=index_name,
                metadata={"hnsw:space": self._distance_metric},
            )
        return self._client.get_collection(name=index_name)

    def _similarity(self, distance: float | None) -> float | None:
        if distance is None:
            return None
        if self._distance_metric == "l2":
            return 1.0 / (1.0 + distance)
        # cosine and ip distances are both 1 - similarity.
        return 1.0 - distance

    def _index_names(self) -> list[str]:
        collections = self._client.list_collections()
        # Depending on the chromadb release this is a list of names or of Collection objects.
        return [c if isinstance(c, str) else c.name for c in collections]

    # -- VectorStoreBase overrides --------------------------------------------

    async def upsert(
        self,
        index_name: str,
        vectors: list[VectorRecord],
        namespace: str | None = None,
    ) -> int:
        if not vectors:
            return 0

        def _upsert() -> None:
            collection = self._collection(index_name, create=True)
            collection.upsert(
                ids=[v.id for v in vectors],
                embeddings=[v.values for v in vectors],
                documents=[str(v.metadata.get("text", "")) for v in vectors],
                metadatas=[flatten_metadata(v.metadata, namespace) for v in vectors],
            )

        await asyncio.to_thread(_upsert)
        logger.debug("Upserted %d vectors into %s/%s", len(vectors), index_name, namespace or "")
        return len(vectors)

    async def query(
        self,
        index_name: str,
        vector: list[float],
        *,
        top_k: int = 5,
        filters: list[MetadataFilter] | None = None,
        namespace: str | None = None,
    ) -> list[StoreMatch]:
        where = build_chroma_where(filters or [], namespace)

        def _query() -> dict[str, Any]:
            if index_name not in self._index_names():
                return {}
            collection = self._collection(index_name)
            total = collection.count()
            if total == 0:
                return {}
            return collection.query(
                query_embeddings=[vector],
                n_results=min(top_k, total),
                where=where,
                include=["metadatas", "distances"],
            )

        results = await asyncio.to_thread(_query)
        ids = (results.get("ids") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0] or [None] * len(ids)
        distances = (results.get("distances") or [[]])[0] or [None] * len(ids)

        matches: list[StoreMatch] = []
        for rid, meta, dist in zip(ids, metas, distances):
            matches.append(
                StoreMatch(id=rid, metadata=dict(meta or {}), score=self._similarity(dist))
            )
        return matches

    async def query_by_metadata(
        self,
        index_name: str,
        filters: list[MetadataFilter],
        namespace: str | None = None,
        *,
        top_k: int = 10,
    ) -> list[StoreMatch]:
        where = build_chroma_where(filters, namespace)

        def _get() -> dict[str, Any]:
            if index_name not in self._index_names():
                return {"ids": [], "metadatas": []}
            collection = self._collection(index_name)
            return collection.get(where=where, limit=top_k, include=["metadatas"])

        results = await asyncio.to_thread(_get)
        ids = results.get("ids") or []
        metas = results.get("metadatas") or [None] * len(ids)
        return [StoreMatch(id=i, metadata=dict(m or {})) for i, m in zip(ids, metas)]

    async def stats(self, index_name: str) -> IndexStats:
        def _stats() -> IndexStats:
            collection = self._collection(index_name)
            metas = collection.get(include=["metadatas"]).get("metadatas") or []
            counts = Counter(str((m or {}).get(NAMESPACE_KEY, "")) for m in metas)
            return IndexStats(total_vectors=collection.count(), namespaces=dict(counts))

        return await asyncio.to_thread(_stats)

    async def list_indexes(self) -> list[str]:
        return await asyncio.to_thread(self._index_names)

    async def delete_by_filter(
        self,
        index_name: str,
        filters: list[MetadataFilter],
        namespace: str | None = None,
    ) -> int:
        where = build_chroma_where(filters, namespace)

        def _delete() -> int:
            collection = self._collection(index_name)
            ids = collection.get(where=where, include=[]).get("ids") or []
            if ids:
                collection.delete(ids=ids)
            return len(ids)

        deleted = await asyncio.to_thread(_delete)
        logger.info("Deleted %d vectors from %s/%s", deleted, index_name, namespace or "")
        return deleted

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
