"""Ingestion orchestrator — file in, vectors out.

Usage::

    from vector_ingest.ingestion.pipeline import IngestionPipeline

    pipeline = IngestionPipeline.from_settings()
    result = await pipeline.ingest(
        RawDocument(content=data, filename="report.pdf"),
        index_name="docs",
        metadata=DocumentMetadata(topic="Finance", source="Annual report"),
    )

Per call the pipeline moves through::

    RECEIVED → HASH_CHECKED → DUPLICATE
                            → EXTRACTING → CHUNKING → EMBEDDING → UPSERTING → COMPLETED

Everything before ``UPSERTING`` is in memory, so a failure there writes
nothing.  Upserts are batched and not rolled back: if batch *n* fails,
batches ``1..n-1`` stay in the store and :class:`UpsertError` reports how
many landed.
"""

from __future__ import annotations

import asyncio
import enum
import hashlib
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from vector_ingest.config import settings
from vector_ingest.ingestion.chunker import chunk_text
from vector_ingest.ingestion.embedder import Embedder, RetryPolicy
from vector_ingest.ingestion.errors import DuplicateFileError, IngestionError, UpsertError
from vector_ingest.ingestion.extractor import check_supported, extract_text
from vector_ingest.ingestion.models import (
    PREVIEW_CHARS,
    Chunk,
    ChunkingConfig,
    DocumentMetadata,
    ExtractedText,
    IngestionResult,
    RawDocument,
    VectorRecord,
)
from vector_ingest.store.base import VectorStoreBase
from vector_ingest.store.files import find_duplicate

logger = logging.getLogger(__name__)


class IngestionState(str, enum.Enum):
    RECEIVED = "received"
    HASH_CHECKED = "hash_checked"
    DUPLICATE = "duplicate"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    UPSERTING = "upserting"
    COMPLETED = "completed"


def content_hash(content: bytes) -> str:
    """SHA-256 hex digest of the raw file bytes."""
    return hashlib.sha256(content).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class IngestionPipeline:
    """Coordinates duplicate check, extraction, chunking, embedding and upsert.

    Parameters
    ----------
    store:
        Vector-store backend receiving the records.
    embedder:
        Embedder wrapping the embedding provider.
    upsert_batch_size:
        Records per upsert call.
    clock:
        Returns the current UTC time; used for ``uploaded_at``.
    id_factory:
        Returns a fresh unique token; record ids are ``<token>-<chunk index>``.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: Embedder,
        *,
        upsert_batch_size: int = 100,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        if upsert_batch_size <= 0:
            raise ValueError("upsert_batch_size must be > 0")
        self._store = store
        self._embedder = embedder
        self.upsert_batch_size = upsert_batch_size
        self._clock = clock or _utcnow
        self._id_factory = id_factory or _new_id

    @classmethod
    def from_settings(cls) -> IngestionPipeline:
        """Build a pipeline wired to Chroma and OpenAI from the global settings."""
        from vector_ingest.embedding.openai_embeddings import OpenAIEmbeddingProvider
        from vector_ingest.store.chroma_store import ChromaVectorStore

        embedder = Embedder(
            OpenAIEmbeddingProvider(),
            batch_size=settings.embedding_batch_size,
            policy=RetryPolicy.from_settings(),
        )
        return cls(ChromaVectorStore(), embedder, upsert_batch_size=settings.upsert_batch_size)

    # -- public API -----------------------------------------------------------

    async def ingest(
        self,
        document: RawDocument,
        *,
        index_name: str,
        metadata: DocumentMetadata,
        namespace: str | None = None,
        chunking: ChunkingConfig | None = None,
        dimensions: int = 1536,
        force_upload: bool = False,
    ) -> IngestionResult:
        """Ingest one file into *index_name* / *namespace*.

        Raises
        ------
        UnsupportedFormatError
            No parser exists for the file extension.
        DuplicateFileError
            A byte-identical file is already stored (skipped when *force_upload*).
        EmbeddingFatalError
            The embedding provider rejected its configuration.
        UpsertError
            A vector batch could not be written.
        """
        chunking = chunking or ChunkingConfig()
        state = IngestionState.RECEIVED
        logger.info("Ingesting %s (%.2fMB) into %s/%s",
                    document.filename, document.size_mb, index_name, namespace or "")

        check_supported(document)
        file_hash = content_hash(document.content)
        warnings: list[str] = []

        duplicate = None
        if not force_upload:
            try:
                duplicate = await find_duplicate(self._store, index_name, file_hash, namespace)
            except Exception as exc:
                logger.warning("Duplicate check failed for %s: %s", document.filename, exc)
                warnings.append(f"Duplicate check failed, continuing without it: {exc}")
        state = self._advance(state, IngestionState.HASH_CHECKED, document)
        if duplicate is not None:
            self._advance(state, IngestionState.DUPLICATE, document)
            raise DuplicateFileError(duplicate)

        state = self._advance(state, IngestionState.EXTRACTING, document)
        extracted = await asyncio.to_thread(extract_text, document)
        warnings.extend(extracted.warnings)

        state = self._advance(state, IngestionState.CHUNKING, document)
        chunks = chunk_text(extracted.text, chunking, page_resolver=extracted.page_for_offset)
        logger.info("Produced %d chunks from %s", len(chunks), document.filename)

        ingest_id = uuid.uuid4().hex
        vectors_upserted = 0
        batches = 0
        if chunks:
            state = self._advance(state, IngestionState.EMBEDDING, document)
            outcome = await self._embedder.embed_texts([c.text for c in chunks], dimensions)
            warnings.extend(outcome.warnings)

            records = self.build_records(
                chunks,
                outcome.vectors,
                document=document,
                extracted=extracted,
                metadata=metadata,
                file_hash=file_hash,
                ingest_id=ingest_id,
            )

            state = self._advance(state, IngestionState.UPSERTING, document)
            vectors_upserted, batches = await self._upsert(records, index_name, namespace, ingest_id)

        self._advance(state, IngestionState.COMPLETED, document)
        if warnings:
            logger.warning("Ingested %s with %d warnings", document.filename, len(warnings))

        return IngestionResult(
            filename=document.filename,
            file_hash=file_hash,
            ingest_id=ingest_id,
            chunks_created=len(chunks),
            vectors_upserted=vectors_upserted,
            batches=batches,
            page_count=extracted.page_count,
            file_size_mb=document.size_mb,
            warnings=warnings,
        )

    async def ingest_many(
        self,
        documents: list[RawDocument],
        *,
        max_concurrency: int = settings.max_concurrent_files,
        **kwargs: Any,
    ) -> list[IngestionResult | Exception]:
        """Ingest independent files concurrently.

        Each entry of the returned list is the result for the file at the same
        position, or the exception that file raised.  One failing file never
        cancels or hides the others.
        """
        semaphore = asyncio.Semaphore(max(1, max_concurrency))

        async def _one(document: RawDocument) -> IngestionResult | Exception:
            async with semaphore:
                try:
                    return await self.ingest(document, **kwargs)
                except IngestionError as exc:
                    logger.error("✗ %s: %s", document.filename, exc)
                    return exc
                except Exception as exc:
                    logger.exception("✗ %s: unexpected failure", document.filename)
                    return exc

        return list(await asyncio.gather(*(_one(d) for d in documents)))

    # -- internals ------------------------------------------------------------

    def build_records(
        self,
        chunks: list[Chunk],
        vectors: list[list[float]],
        *,
        document: RawDocument,
        extracted: ExtractedText,
        metadata: DocumentMetadata,
        file_hash: str,
        ingest_id: str,
    ) -> list[VectorRecord]:
        """One :class:`VectorRecord` per chunk, ids unique across re-ingestion."""
        uploaded_at = self._clock().isoformat()
        token = self._id_factory()
        base = metadata.to_metadata()

        records: list[VectorRecord] = []
        for index, (chunk, values) in enumerate(zip(chunks, vectors, strict=True)):
            records.append(
                VectorRecord(
                    id=f"{token}-{index}",
                    values=values,
                    metadata={
                        **base,
                        "chunk_id": chunk.id,
                        "chunk_index": index,
                        "page": chunk.page or extracted.page_count,
                        "filename": document.filename,
                        "file_hash": file_hash,
                        "uploaded_at": uploaded_at,
                        "ingest_id": ingest_id,
                        # Full chunk text, never truncated; retrieval reads it back.
                        "text": chunk.text,
                        "chunk_text": chunk.text,
                        "preview": chunk.text[:PREVIEW_CHARS],
                    },
                )
            )
        return records

    async def _upsert(
        self,
        records: list[VectorRecord],
        index_name: str,
        namespace: str | None,
        ingest_id: str,
    ) -> tuple[int, int]:
        upserted = 0
        batches = 0
        for start in range(0, len(records), self.upsert_batch_size):
            batch = records[start : start + self.upsert_batch_size]
            try:
                await self._store.upsert(index_name, batch, namespace)
            except Exception as exc:
                logger.error(
                    "Upsert failed at batch %d (%d vectors already written): %s",
                    batches + 1, upserted, exc,
                )
                raise UpsertError(
                    f"Failed to upsert batch {batches + 1}: {exc}",
                    batches_upserted=batches,
                    vectors_upserted=upserted,
                    ingest_id=ingest_id,
                ) from exc
            upserted += len(batch)
            batches += 1
            logger.info("  upserted batch %d (%d-%d)", batches, start, start + len(batch))
        return upserted, batches

    @staticmethod
    def _advance(
        current: IngestionState, new: IngestionState, document: RawDocument
    ) -> IngestionState:
        logger.debug("%s: %s → %s", document.filename, current.value, new.value)
        return new
