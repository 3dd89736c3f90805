"""Embedding provider protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns texts into fixed-size vectors.

    Implementations must return exactly one vector per input text, each of
    length *dimensions*.  Transient failures raise
    :class:`~vector_ingest.ingestion.errors.EmbeddingProviderError`;
    credential or configuration problems raise its subclass
    :class:`~vector_ingest.ingestion.errors.EmbeddingConfigurationError`.
    """

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        ...
