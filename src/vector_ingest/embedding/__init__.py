"""
Embedding — the provider capability the embedder calls.

The pipeline only depends on :class:`EmbeddingProvider`; the OpenAI adapter
is one implementation and tests substitute in-memory fakes.
"""

from vector_ingest.embedding.base import EmbeddingProvider

__all__ = ["EmbeddingProvider", "OpenAIEmbeddingProvider"]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import OpenAIEmbeddingProvider to avoid pulling in openai at import time."""
    if name == "OpenAIEmbeddingProvider":
        from vector_ingest.embedding.openai_embeddings import OpenAIEmbeddingProvider

        return OpenAIEmbeddingProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
