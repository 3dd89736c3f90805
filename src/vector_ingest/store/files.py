"""File-level views over a vector store.

Vectors carry ``filename``, ``file_hash`` and ``uploaded_at`` metadata, so
per-file information (duplicate detection, counts, listings, deletion) is
recovered with metadata lookups rather than a separate catalogue.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from vector_ingest.ingestion.models import DuplicateFileInfo
from vector_ingest.store.base import VectorStoreBase
from vector_ingest.store.models import FileSummary, MetadataFilter

logger = logging.getLogger(__name__)

# Upper bound on records fetched when counting or listing files.
MAX_SCAN = 10_000


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def file_stats(
    store: VectorStoreBase,
    index_name: str,
    filename: str,
    namespace: str | None = None,
) -> tuple[int, int]:
    """Return ``(chunks_count, vectors_count)`` for *filename*.  One vector per chunk."""
    matches = await store.query_by_metadata(
        index_name,
        [MetadataFilter.equals("filename", filename)],
        namespace,
        top_k=MAX_SCAN,
    )
    return len(matches), len(matches)


async def find_duplicate(
    store: VectorStoreBase,
    index_name: str,
    file_hash: str,
    namespace: str | None = None,
) -> DuplicateFileInfo | None:
    """Return the stored file whose content hash equals *file_hash*, if any."""
    matches = await store.query_by_metadata(
        index_name,
        [MetadataFilter.equals("file_hash", file_hash)],
        namespace,
        top_k=1,
    )
    if not matches:
        return None

    metadata = matches[0].metadata
    filename = str(metadata.get("filename", ""))
    chunks_count, vectors_count = await file_stats(store, index_name, filename, namespace)
    return DuplicateFileInfo(
        filename=filename,
        uploaded_at=str(metadata.get("uploaded_at") or _now_iso()),
        namespace=namespace or "",
        chunks_count=chunks_count,
        vectors_count=vectors_count,
    )


async def list_files(
    store: VectorStoreBase,
    index_name: str,
    namespace: str | None = None,
) -> list[FileSummary]:
    """Group stored vectors by filename, newest upload first."""
    matches = await store.query_by_metadata(index_name, [], namespace, top_k=MAX_SCAN)

    files: dict[str, FileSummary] = {}
    for match in matches:
        meta = match.metadata
        filename = meta.get("filename")
        if not filename:
            continue
        summary = files.get(filename)
        if summary is None:
            summary = files[filename] = FileSummary(
                filename=filename,
                namespace=namespace or "",
                uploaded_at=str(meta.get("uploaded_at") or ""),
                topic=str(meta.get("topic") or "Unknown"),
                source=str(meta.get("source") or "Unknown"),
                metadata=meta,
            )
        summary.chunks_count += 1
        summary.vectors_count += 1

    return sorted(files.values(), key=lambda f: f.uploaded_at, reverse=True)


async def delete_file(
    store: VectorStoreBase,
    index_name: str,
    filename: str,
    namespace: str | None = None,
) -> int:
    """Delete every vector belonging to *filename*."""
    deleted = await store.delete_by_filter(
        index_name, [MetadataFilter.equals("filename", filename)], namespace
    )
    logger.info("Deleted %d vectors for %s", deleted, filename)
    return deleted


async def delete_ingest(
    store: VectorStoreBase,
    index_name: str,
    ingest_id: str,
    namespace: str | None = None,
) -> int:
    """Delete the vectors written by one ingestion call.

    Used to clean up after :class:`~vector_ingest.ingestion.errors.UpsertError`,
    which carries the ``ingest_id`` of the partial write.
    """
    deleted = await store.delete_by_filter(
        index_name, [MetadataFilter.equals("ingest_id", ingest_id)], namespace
    )
    logger.info("Deleted %d vectors for ingest %s", deleted, ingest_id)
    return deleted
