"""FastAPI application exposing document ingestion as a REST API."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from vector_ingest.config import settings
from vector_ingest.embedding.base import EmbeddingProvider
from vector_ingest.ingestion.errors import (
    DuplicateFileError,
    EmbeddingFatalError,
    EmbeddingProviderError,
    UnsupportedFormatError,
    UpsertError,
)
from vector_ingest.ingestion.chunker import first_chunk_preview
from vector_ingest.ingestion.extractor import extract_text, first_page_preview
from vector_ingest.ingestion.models import (
    SUPPORTED_DIMENSIONS,
    ChunkingConfig,
    DocumentMetadata,
    RawDocument,
)
from vector_ingest.ingestion.pipeline import IngestionPipeline
from vector_ingest.store.base import VectorStoreBase
from vector_ingest.store.files import delete_file, list_files
from vector_ingest.store.models import FileSummary, IndexStats, MetadataFilter

logger = logging.getLogger(__name__)

PREVIEW_TEXT_LIMIT = 100_000


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(level=settings.log_level)
    yield


app = FastAPI(
    title="Vector Ingest API",
    version="0.1.0",
    description="Upload PDF, DOCX and CSV files and index them in a vector store.",
    lifespan=lifespan,
)


# ── Dependencies ──────────────────────────────────────────────────────
@lru_cache
def get_pipeline() -> IngestionPipeline:
    return IngestionPipeline.from_settings()


@lru_cache
def get_store() -> VectorStoreBase:
    from vector_ingest.store.chroma_store import ChromaVectorStore

    return ChromaVectorStore()


@lru_cache
def get_provider() -> EmbeddingProvider:
    from vector_ingest.embedding.openai_embeddings import OpenAIEmbeddingProvider

    return OpenAIEmbeddingProvider()


# ── Request / Response schemas ────────────────────────────────────────
class IngestStats(BaseModel):
    chunks_created: int
    vectors_upserted: int
    batches: int
    file_size_mb: float


class IngestResponse(BaseModel):
    """Successful ingestion, possibly with warnings."""

    success: bool = True
    message: str
    stats: IngestStats
    warnings: list[str] | None = None


class QueryRequest(BaseModel):
    """Semantic search over one index, optionally narrowed by topic."""

    index_name: str
    query: str = Field(min_length=1)
    top_k: int = Field(default=5, gt=0, le=100)
    namespace: str | None = None
    topic: str | None = None
    subtopic: str | None = None
    dimensions: int = settings.embedding_dimensions


class PreviewResponse(BaseModel):
    text: str
    page_count: int
    is_truncated: bool
    original_length: int
    first_page: str
    first_chunk: str
    chunk_count: int
    warnings: list[str] = []


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health(store: VectorStoreBase = Depends(get_store)) -> dict[str, str]:
    """Liveness probe; also reports whether the vector store answers."""
    reachable = await asyncio.to_thread(store.health_check)
    return {"status": "ok", "store": "ok" if reachable else "unavailable"}


@app.post("/ingest", response_model=IngestResponse)
async def ingest(
    file: UploadFile = File(...),
    index_name: str = Form(...),
    topic: str = Form(...),
    source: str = Form(...),
    namespace: str | None = Form(None),
    subtopic: str | None = Form(None),
    version: str | None = Form(None),
    chunk_size: int = Form(settings.chunk_size),
    overlap: int = Form(settings.chunk_overlap),
    use_headings: bool = Form(False),
    dimensions: int = Form(settings.embedding_dimensions),
    force_upload: bool = Form(False),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> Any:
    """Extract, chunk, embed and upsert one uploaded file."""
    if dimensions not in SUPPORTED_DIMENSIONS:
        raise HTTPException(400, f"dimensions must be one of {list(SUPPORTED_DIMENSIONS)}")
    try:
        chunking = ChunkingConfig(chunk_size=chunk_size, overlap=overlap, use_headings=use_headings)
    except ValidationError as exc:
        raise HTTPException(400, str(exc)) from exc

    document = RawDocument(
        content=await file.read(),
        filename=file.filename or "upload",
        content_type=file.content_type,
    )
    metadata = DocumentMetadata(topic=topic, source=source, subtopic=subtopic, version=version)

    try:
        result = await pipeline.ingest(
            document,
            index_name=index_name,
            namespace=namespace or None,
            metadata=metadata,
            chunking=chunking,
            dimensions=dimensions,
            force_upload=force_upload,
        )
    except DuplicateFileError as exc:
        return JSONResponse(
            status_code=409,
            content={
                "error": "Duplicate file",
                "code": "DUPLICATE_FILE",
                "message": str(exc),
                "existing_file": exc.existing.model_dump(),
                "suggestion": (
                    "Use force_upload=true to upload anyway, "
                    "or delete the existing file first"
                ),
            },
        )
    except UnsupportedFormatError as exc:
        return JSONResponse(status_code=415, content={"error": str(exc), "stage": exc.stage})
    except EmbeddingFatalError as exc:
        return JSONResponse(
            status_code=502,
            content={
                "error": str(exc),
                "stage": exc.stage,
                "suggestion": "Please check your OpenAI API key, model and dimensions.",
            },
        )
    except UpsertError as exc:
        return JSONResponse(
            status_code=502,
            content={
                "error": str(exc),
                "stage": exc.stage,
                "batches_upserted": exc.batches_upserted,
                "vectors_upserted": exc.vectors_upserted,
                "ingest_id": exc.ingest_id,
            },
        )

    return IngestResponse(
        message=result.message,
        stats=IngestStats(
            chunks_created=result.chunks_created,
            vectors_upserted=result.vectors_upserted,
            batches=result.batches,
            file_size_mb=result.file_size_mb,
        ),
        warnings=result.warnings or None,
    )


@app.post("/ingest-batch")
async def ingest_batch(
    files: list[UploadFile] = File(...),
    index_name: str = Form(...),
    topic: str = Form(...),
    source: str = Form(...),
    namespace: str | None = Form(None),
    chunk_size: int = Form(settings.chunk_size),
    overlap: int = Form(settings.chunk_overlap),
    use_headings: bool = Form(False),
    dimensions: int = Form(settings.embedding_dimensions),
    force_upload: bool = Form(False),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Ingest several files concurrently; one entry per file, in upload order."""
    if dimensions not in SUPPORTED_DIMENSIONS:
        raise HTTPException(400, f"dimensions must be one of {list(SUPPORTED_DIMENSIONS)}")
    try:
        chunking = ChunkingConfig(chunk_size=chunk_size, overlap=overlap, use_headings=use_headings)
    except ValidationError as exc:
        raise HTTPException(400, str(exc)) from exc

    documents = [
        RawDocument(content=await f.read(), filename=f.filename or "upload", content_type=f.content_type)
        for f in files
    ]
    outcomes = await pipeline.ingest_many(
        documents,
        index_name=index_name,
        namespace=namespace or None,
        metadata=DocumentMetadata(topic=topic, source=source),
        chunking=chunking,
        dimensions=dimensions,
        force_upload=force_upload,
    )

    results: list[dict[str, Any]] = []
    for document, outcome in zip(documents, outcomes):
        if isinstance(outcome, Exception):
            entry: dict[str, Any] = {
                "filename": document.filename,
                "success": False,
                "error": str(outcome),
                "stage": getattr(outcome, "stage", "ingestion"),
            }
            if isinstance(outcome, DuplicateFileError):
                entry["code"] = "DUPLICATE_FILE"
                entry["existing_file"] = outcome.existing.model_dump()
            results.append(entry)
        else:
            results.append(outcome.model_dump())
    return {"results": results}


@app.post("/parse-preview", response_model=PreviewResponse)
async def parse_preview(
    file: UploadFile = File(...),
    chunk_size: int = Form(settings.chunk_size),
    overlap: int = Form(settings.chunk_overlap),
    use_headings: bool = Form(False),
) -> Any:
    """Extract text and preview the first chunk (limited to small files)."""
    content = await file.read()
    if len(content) > settings.preview_max_bytes:
        return JSONResponse(
            status_code=413,
            content={
                "error": "File too large for preview. The file will be parsed during ingestion.",
                "skip_preview": True,
            },
        )
    document = RawDocument(content=content, filename=file.filename or "upload")
    try:
        chunking = ChunkingConfig(chunk_size=chunk_size, overlap=overlap, use_headings=use_headings)
        extracted = await asyncio.to_thread(extract_text, document)
    except ValidationError as exc:
        raise HTTPException(400, str(exc)) from exc
    except UnsupportedFormatError as exc:
        raise HTTPException(415, str(exc)) from exc
    chunks = first_chunk_preview(extracted.text, chunking)

    return PreviewResponse(
        text=extracted.text[:PREVIEW_TEXT_LIMIT],
        page_count=extracted.page_count,
        is_truncated=len(extracted.text) > PREVIEW_TEXT_LIMIT,
        original_length=len(extracted.text),
        first_page=await asyncio.to_thread(first_page_preview, document),
        first_chunk=chunks.preview,
        chunk_count=chunks.chunk_count,
        warnings=extracted.warnings,
    )


@app.post("/query")
async def query(
    request: QueryRequest,
    provider: EmbeddingProvider = Depends(get_provider),
    store: VectorStoreBase = Depends(get_store),
) -> Any:
    """Embed the query text and return the nearest chunks, best first."""
    if request.dimensions not in SUPPORTED_DIMENSIONS:
        raise HTTPException(400, f"dimensions must be one of {list(SUPPORTED_DIMENSIONS)}")

    try:
        stats = await store.stats(request.index_name)
    except Exception as exc:
        logger.warning("Could not read stats for %s: %s", request.index_name, exc)
    else:
        if stats.total_vectors == 0:
            return {
                "success": False,
                "error": "Index is empty. Please ingest some documents first.",
                "results": [],
                "count": 0,
            }

    try:
        [vector] = await provider.embed([request.query], request.dimensions)
    except EmbeddingProviderError as exc:
        return JSONResponse(status_code=502, content={"error": str(exc), "stage": "embedding"})

    filters = [
        MetadataFilter.equals(field, value)
        for field, value in (("topic", request.topic), ("subtopic", request.subtopic))
        if value
    ]
    matches = await store.query(
        request.index_name,
        vector,
        top_k=request.top_k,
        filters=filters,
        namespace=request.namespace or None,
    )
    logger.info("Query on %s returned %d match(es)", request.index_name, len(matches))
    return {
        "success": True,
        "results": [
            {"id": m.id, "score": m.score, "metadata": m.metadata} for m in matches
        ],
        "namespace": request.namespace or "default",
        "count": len(matches),
    }


@app.get("/indexes")
async def indexes(store: VectorStoreBase = Depends(get_store)) -> dict[str, list[str]]:
    return {"indexes": await store.list_indexes()}


@app.get("/indexes/{index_name}/stats", response_model=IndexStats)
async def index_stats(index_name: str, store: VectorStoreBase = Depends(get_store)) -> IndexStats:
    return await store.stats(index_name)


@app.get("/indexes/{index_name}/files", response_model=list[FileSummary])
async def index_files(
    index_name: str,
    namespace: str | None = None,
    store: VectorStoreBase = Depends(get_store),
) -> list[FileSummary]:
    return await list_files(store, index_name, namespace)


@app.delete("/indexes/{index_name}/files/{filename}")
async def remove_file(
    index_name: str,
    filename: str,
    namespace: str | None = None,
    store: VectorStoreBase = Depends(get_store),
) -> dict[str, Any]:
    deleted = await delete_file(store, index_name, filename, namespace)
    return {"success": True, "filename": filename, "deleted": deleted}
