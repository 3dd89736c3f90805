"""Models exchanged with vector-store backends."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class MetadataFilter(BaseModel):
    """One metadata condition; a lookup ANDs all of its filters together.

    Attributes
    ----------
    field:
        Metadata key written by the pipeline, e.g. ``"file_hash"`` or ``"ingest_id"``.
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)


class StoreMatch(BaseModel):
    """A record returned by a lookup; ``score`` is set for vector queries only."""

    id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float | None = None


class IndexStats(BaseModel):
    """Vector counts for an index, overall and per namespace."""

    total_vectors: int = 0
    namespaces: dict[str, int] = Field(default_factory=dict)


class FileSummary(BaseModel):
    """One ingested file, reconstructed from its vectors' metadata."""

    filename: str
    namespace: str = ""
    uploaded_at: str = ""
    chunks_count: int = 0
    vectors_count: int = 0
    topic: str = "Unknown"
    source: str = "Unknown"
    metadata: dict[str, Any] = Field(default_factory=dict)
