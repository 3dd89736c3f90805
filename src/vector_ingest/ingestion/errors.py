"""Exception taxonomy for the ingestion pipeline.

Only hard failures are exceptions.  Degraded extraction and degraded
embedding are reported as warning strings on the result instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vector_ingest.ingestion.models import DuplicateFileInfo


class IngestionError(Exception):
    """Base class for failures that abort an ingestion call.

    Attributes
    ----------
    stage:
        Pipeline stage that failed (``"hash_check"``, ``"extracting"``,
        ``"embedding"`` or ``"upserting"``).
    """

    stage: str = "ingestion"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class UnsupportedFormatError(IngestionError):
    """The file extension has no parser."""

    stage = "extracting"

    def __init__(self, extension: str) -> None:
        super().__init__(f"Unsupported file type: {extension or '<none>'}")
        self.extension = extension


class DuplicateFileError(IngestionError):
    """A byte-identical file already lives in the target index/namespace."""

    stage = "hash_check"

    def __init__(self, existing: DuplicateFileInfo) -> None:
        super().__init__(f"This file has already been uploaded as '{existing.filename}'")
        self.existing = existing


class EmbeddingFatalError(IngestionError):
    """The embedding provider rejected its configuration or credentials."""

    stage = "embedding"


class UpsertError(IngestionError):
    """A vector batch could not be written; earlier batches stay in the store."""

    stage = "upserting"

    def __init__(
        self,
        message: str,
        *,
        batches_upserted: int,
        vectors_upserted: int,
        ingest_id: str,
    ) -> None:
        super().__init__(message)
        self.batches_upserted = batches_upserted
        self.vectors_upserted = vectors_upserted
        self.ingest_id = ingest_id


# -- provider-level errors ---------------------------------------------------


class EmbeddingProviderError(RuntimeError):
    """A single embedding call failed.  Retryable."""


class EmbeddingConfigurationError(EmbeddingProviderError):
    """Invalid credentials, model or dimensions.  Retrying cannot help."""
