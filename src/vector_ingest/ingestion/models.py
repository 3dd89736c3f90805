"""Domain models flowing through the ingestion pipeline.

Raw bytes become :class:`ExtractedText`, then :class:`Chunk` objects, then
:class:`VectorRecord` objects handed to the vector store.  Each model is
produced by one stage and only read by the next.
"""

from __future__ import annotations

from bisect import bisect_right
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

SUPPORTED_DIMENSIONS: tuple[int, ...] = (1536, 3072)

PREVIEW_CHARS = 200


class RawDocument(BaseModel):
    """An uploaded file, consumed once by the extractor."""

    content: bytes
    filename: str
    content_type: str | None = None

    @property
    def extension(self) -> str:
        """Lower-cased extension without the dot (``""`` when absent)."""
        name = self.filename.lower()
        return name.rsplit(".", 1)[-1] if "." in name else ""

    @property
    def size_mb(self) -> float:
        return round(len(self.content) / 1024 / 1024, 2)


class ExtractedText(BaseModel):
    """Plain text recovered from a document.

    Attributes
    ----------
    text:
        Extracted text, or a placeholder when every parser failed.
    page_count:
        Real page count for PDFs, an estimate for other formats.
    parser_metadata:
        Format-specific metadata reported by the parser.
    page_offsets:
        Character offset in ``text`` where each page starts (PDF only).
    warnings:
        Non-fatal problems encountered while extracting.
    """

    text: str
    page_count: int = 1
    parser_metadata: dict[str, Any] = Field(default_factory=dict)
    page_offsets: list[int] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def page_for_offset(self, offset: int) -> int | None:
        """Return the 1-based page holding *offset*, or ``None`` without page data."""
        if not self.page_offsets:
            return None
        return max(1, bisect_right(self.page_offsets, offset))


class ChunkingConfig(BaseModel):
    """Chunker parameters.  ``overlap >= chunk_size`` is allowed."""

    chunk_size: int = Field(default=2000, gt=0)
    overlap: int = Field(default=300, ge=0)
    use_headings: bool = False


class Chunk(BaseModel):
    """A trimmed slice of the source text, sized for embedding."""

    id: str
    text: str
    start_index: int
    end_index: int
    page: int | None = None

    @model_validator(mode="after")
    def _check_bounds(self) -> Chunk:
        if not 0 <= self.start_index < self.end_index:
            raise ValueError(
                f"invalid chunk bounds [{self.start_index}, {self.end_index})"
            )
        return self


class ChunkPreview(BaseModel):
    """First chunk and total count, shown before committing to an ingest."""

    preview: str
    chunk_count: int


class DocumentMetadata(BaseModel):
    """Caller-supplied descriptive fields copied onto every vector.

    The recognised keys are typed; any other keyword passes through
    untouched.  ``None`` values are omitted when serialised.
    """

    model_config = ConfigDict(extra="allow")

    topic: str
    source: str
    subtopic: str | None = None
    version: str | None = None
    document_type: str | None = None
    author: str | None = None
    date: str | None = None
    summary: str | None = None
    tags: list[str] | None = None

    def to_metadata(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class VectorRecord(BaseModel):
    """One embedded chunk, ready for upsert.  Immutable once built."""

    model_config = ConfigDict(frozen=True)

    id: str
    values: list[float]
    metadata: dict[str, Any]


class DuplicateFileInfo(BaseModel):
    """Descriptor of a previously ingested, byte-identical file."""

    filename: str
    uploaded_at: str
    namespace: str = ""
    chunks_count: int = 0
    vectors_count: int = 0


class IngestionResult(BaseModel):
    """Snapshot returned by a successful ingestion call."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    filename: str
    file_hash: str
    ingest_id: str
    chunks_created: int
    vectors_upserted: int
    batches: int
    page_count: int = 1
    file_size_mb: float = 0.0
    warnings: list[str] = Field(default_factory=list)

    @property
    def message(self) -> str:
        if self.warnings:
            return "Document ingested with warnings"
        return "Document ingested successfully"
