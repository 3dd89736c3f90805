"""Boundary-aware text chunking.

Chunks are cut at the best natural boundary found near the size limit
(paragraph, then sentence, then line, then word) and consecutive chunks
overlap by a configurable number of characters.  Heading-guided mode first
partitions the text into sections at heading lines.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from vector_ingest.ingestion.models import Chunk, ChunkingConfig, ChunkPreview

MIN_CHUNK_CHARS = 50
PREVIEW_CHARS = 300

_SENTENCE_END = re.compile(r"[.!?]\s+")
_CAPS_HEADING = re.compile(r"^[A-Z\s#]+$")
_MARKDOWN_HEADING = re.compile(r"^#{1,6}\s")

PageResolver = Callable[[int], int | None]


def _find_break(window: str, chunk_size: int) -> int | None:
    """Return the window-relative end of the best boundary, or ``None`` for a hard cut.

    Tiers, first acceptable wins: paragraph break past 60% of the chunk
    size, last sentence end past 50%, newline past 50%, space past 70%.
    """
    paragraph = window.rfind("\n\n")
    if paragraph > chunk_size * 0.6:
        return paragraph + 2

    sentence_end = -1
    for match in _SENTENCE_END.finditer(window):
        sentence_end = match.end()
    if sentence_end > chunk_size * 0.5:
        return sentence_end

    newline = window.rfind("\n")
    if newline > chunk_size * 0.5:
        return newline + 1

    space = window.rfind(" ")
    if space > chunk_size * 0.7:
        return space + 1
    return None


def _chunk_simple(text: str, chunk_size: int, overlap: int) -> list[Chunk]:
    chunks: list[Chunk] = []
    start = 0
    length = len(text)

    while start < length:
        end = min(start + chunk_size, length)
        if end < length:
            brk = _find_break(text[start:end], chunk_size)
            if brk is not None:
                end = start + brk

        body = text[start:end].strip()
        if len(body) > MIN_CHUNK_CHARS:
            chunks.append(
                Chunk(id=f"chunk-{len(chunks)}", text=body, start_index=start, end_index=end)
            )
            if end >= length:
                break
            next_start = end - overlap
            # Never step back to (or before) the chunk just emitted.
            start = next_start if next_start > start else end
        else:
            start = end

    return chunks


def _is_heading(line: str, is_last: bool) -> bool:
    line = line.strip()
    return bool(
        (len(line) < 100 and _CAPS_HEADING.match(line))
        or _MARKDOWN_HEADING.match(line)
        or (0 < len(line) < 80 and not is_last)
    )


def find_heading_offsets(text: str) -> list[int]:
    """Character offsets of every line that looks like a heading."""
    lines = text.split("\n")
    offsets: list[int] = []
    cursor = 0
    for i, line in enumerate(lines):
        if _is_heading(line, is_last=i == len(lines) - 1):
            offsets.append(cursor)
        cursor += len(line) + 1
    return offsets


def _merge_short_sections(text: str, bounds: list[int]) -> list[tuple[int, int]]:
    """Fold sections of ``MIN_CHUNK_CHARS`` or less into the section after them.

    A short tail section joins the one before it; text that never grows
    past the minimum is dropped, as in plain chunking.
    """
    sections: list[tuple[int, int]] = []
    pending: int | None = None
    for start, end in zip(bounds, bounds[1:]):
        if pending is None:
            pending = start
        if len(text[pending:end].strip()) > MIN_CHUNK_CHARS:
            sections.append((pending, end))
            pending = None
    if pending is not None and sections:
        sections[-1] = (sections[-1][0], bounds[-1])
    return sections


def _chunk_with_headings(text: str, chunk_size: int, overlap: int) -> list[Chunk]:
    headings = find_heading_offsets(text)
    if not headings:
        return _chunk_simple(text, chunk_size, overlap)

    bounds = headings if headings[0] == 0 else [0, *headings]
    bounds.append(len(text))

    chunks: list[Chunk] = []
    for section_start, section_end in _merge_short_sections(text, bounds):
        section = text[section_start:section_end]
        if len(section) > chunk_size:
            for sub in _chunk_simple(section, chunk_size, overlap):
                chunks.append(
                    sub.model_copy(
                        update={
                            "id": f"chunk-{len(chunks)}",
                            "start_index": sub.start_index + section_start,
                            "end_index": sub.end_index + section_start,
                        }
                    )
                )
        else:
            chunks.append(
                Chunk(
                    id=f"chunk-{len(chunks)}",
                    text=section.strip(),
                    start_index=section_start,
                    end_index=section_end,
                )
            )
    return chunks


def chunk_text(
    text: str,
    config: ChunkingConfig,
    page_resolver: PageResolver | None = None,
) -> list[Chunk]:
    """Split *text* into overlapping chunks.

    Parameters
    ----------
    text:
        Extracted document text.
    config:
        Chunk size, overlap and heading mode.
    page_resolver:
        Optional ``offset -> page`` mapping; each chunk gets the page of
        its start offset.

    Returns
    -------
    list[Chunk]
        Chunks in document order with sequential ``chunk-<n>`` ids.
    """
    if not text:
        return []

    if config.use_headings:
        chunks = _chunk_with_headings(text, config.chunk_size, config.overlap)
    else:
        chunks = _chunk_simple(text, config.chunk_size, config.overlap)

    if page_resolver is not None:
        chunks = [c.model_copy(update={"page": page_resolver(c.start_index)}) for c in chunks]
    return chunks


def first_chunk_preview(text: str, config: ChunkingConfig) -> ChunkPreview:
    """Preview of the first chunk plus the total chunk count."""
    chunks = chunk_text(text, config)
    return ChunkPreview(
        preview=chunks[0].text[:PREVIEW_CHARS] if chunks else "",
        chunk_count=len(chunks),
    )
