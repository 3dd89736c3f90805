"""Abstract base class for vector-store backends.

Adding a new backend (Pinecone, Weaviate, Qdrant …) only requires
subclassing :class:`VectorStoreBase` and implementing the abstract
methods.  The ingestion pipeline is backend-agnostic.

Every data method is a coroutine: each call is a network round-trip and the
pipeline awaits it before moving on.  ``health_check`` is a plain blocking
probe; async callers run it in a worker thread.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from vector_ingest.ingestion.models import VectorRecord
from vector_ingest.store.models import IndexStats, MetadataFilter, StoreMatch


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    ``namespace`` is a logical partition inside one index; ``None`` means
    the default partition.  Same-id upserts are expected to be
    last-write-wins.
    """

    @abstractmethod
    async def upsert(
        self,
        index_name: str,
        vectors: list[VectorRecord],
        namespace: str | None = None,
    ) -> int:
        """Insert or replace *vectors*; return how many were written."""
        ...

    @abstractmethod
    async def query(
        self,
        index_name: str,
        vector: list[float],
        *,
        top_k: int = 5,
        filters: list[MetadataFilter] | None = None,
        namespace: str | None = None,
    ) -> list[StoreMatch]:
        """Return the *top_k* records nearest to *vector*, best first.

        Each match carries a similarity ``score`` (higher is closer) and the
        record metadata.  A missing or empty index yields an empty list.
        """
        ...

    @abstractmethod
    async def query_by_metadata(
        self,
        index_name: str,
        filters: list[MetadataFilter],
        namespace: str | None = None,
        *,
        top_k: int = 10,
    ) -> list[StoreMatch]:
        """Return up to *top_k* records whose metadata matches every filter."""
        ...

    @abstractmethod
    async def stats(self, index_name: str) -> IndexStats:
        """Return total and per-namespace vector counts."""
        ...

    @abstractmethod
    async def list_indexes(self) -> list[str]:
        """Return the names of all indexes."""
        ...

    @abstractmethod
    async def delete_by_filter(
        self,
        index_name: str,
        filters: list[MetadataFilter],
        namespace: str | None = None,
    ) -> int:
        """Delete every record matching *filters*; return the count deleted."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` if the backend is reachable."""
        ...
