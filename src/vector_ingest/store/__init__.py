"""
Store — the vector-database capability the pipeline writes to.

Public surface
--------------
- :class:`VectorStoreBase` — abstract backend (subclass for Pinecone, etc.).
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`MetadataFilter`, :class:`StoreMatch`, :class:`IndexStats`,
  :class:`FileSummary` — data models.
"""

from vector_ingest.store.base import VectorStoreBase
from vector_ingest.store.models import FileSummary, IndexStats, MetadataFilter, StoreMatch

__all__ = [
    "ChromaVectorStore",
    "FileSummary",
    "IndexStats",
    "MetadataFilter",
    "StoreMatch",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from vector_ingest.store.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
