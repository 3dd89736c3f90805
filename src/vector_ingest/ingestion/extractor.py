"""Text extraction for PDF, DOCX and CSV uploads.

:func:`extract_text` is the only entry point the pipeline uses.  It never
raises for a broken file: parser failures degrade to a fallback parser and
finally to a placeholder text, each step recorded as a warning.  The one
exception is :class:`~vector_ingest.ingestion.errors.UnsupportedFormatError`
for extensions nothing can parse.
"""

from __future__ import annotations

import csv
import io
import logging
import math
from typing import Any

from langchain_community.document_loaders.parsers import PyPDFParser
from langchain_core.documents.base import Blob

from vector_ingest.ingestion.errors import UnsupportedFormatError
from vector_ingest.ingestion.models import ExtractedText, RawDocument
from vector_ingest.ingestion.tables import enhance_table_text

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset({"pdf", "docx", "doc", "csv"})

WORDS_PER_PAGE = 500
ROWS_PER_PAGE = 50
PAGE_SEPARATOR = "\n\n"

# Shorter than the chunker's minimum chunk length, so blank files embed nothing.
EMPTY_TEXT_PLACEHOLDER = "[No text content extracted from this file]"


def check_supported(document: RawDocument) -> None:
    """Raise :class:`UnsupportedFormatError` unless a parser exists for *document*."""
    if document.extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(document.extension)


# -- format parsers -----------------------------------------------------------


def _join_pages(pages: list[str]) -> tuple[str, list[int]]:
    offsets: list[int] = []
    cursor = 0
    for page in pages:
        offsets.append(cursor)
        cursor += len(page) + len(PAGE_SEPARATOR)
    return PAGE_SEPARATOR.join(pages), offsets


def parse_pdf(content: bytes, filename: str = "document.pdf") -> ExtractedText:
    """Layout-preserving PDF extraction followed by table reconstruction."""
    blob = Blob.from_data(content, mime_type="application/pdf", path=filename)
    parser = PyPDFParser(extraction_mode="layout")
    docs = list(parser.lazy_parse(blob))

    pages = [enhance_table_text(doc.page_content) for doc in docs]
    text, offsets = _join_pages(pages)

    info: dict[str, Any] = {}
    if docs:
        info = {
            k: str(v)
            for k, v in docs[0].metadata.items()
            if k not in {"source", "page", "page_label"}
        }
    return ExtractedText(
        text=text,
        page_count=len(docs),
        parser_metadata=info,
        page_offsets=offsets,
    )


def parse_pdf_plain(content: bytes) -> ExtractedText:
    """Simpler PDF pass straight through pypdf, without table handling."""
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(content))
    pages = [(page.extract_text() or "") for page in reader.pages]
    text, offsets = _join_pages(pages)
    return ExtractedText(text=text, page_count=len(pages), page_offsets=offsets)


def parse_docx(content: bytes) -> ExtractedText:
    """Paragraph and table text from a Word document; ~500 words per page."""
    from docx import Document as DocxDocument

    doc = DocxDocument(io.BytesIO(content))
    parts = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            parts.append("\t".join(cell.text.strip() for cell in row.cells))
    text = "\n".join(parts).strip()

    word_count = len(text.split())
    return ExtractedText(
        text=text,
        page_count=max(1, math.ceil(word_count / WORDS_PER_PAGE)),
        parser_metadata={"word_count": word_count},
    )


def parse_csv(content: bytes) -> ExtractedText:
    """Render each CSV row as ``"key: value | key: value"``; ~50 rows per page."""
    raw = content.decode("utf-8-sig")
    try:
        dialect: Any = csv.Sniffer().sniff(raw[:4096], delimiters=",;\t|")
    except csv.Error:
        dialect = csv.excel

    reader = csv.DictReader(io.StringIO(raw), dialect=dialect, restval="")
    lines: list[str] = []
    for record in reader:
        pairs = [(k, v) for k, v in record.items() if k is not None]
        if not any((v or "").strip() for _, v in pairs):
            continue
        lines.append(" | ".join(f"{k}: {v}" for k, v in pairs))

    return ExtractedText(
        text="\n".join(lines),
        page_count=max(1, math.ceil(len(lines) / ROWS_PER_PAGE)),
        parser_metadata={"row_count": len(lines), "columns": reader.fieldnames or []},
    )


def _parse(document: RawDocument) -> ExtractedText:
    ext = document.extension
    if ext == "pdf":
        return parse_pdf(document.content, document.filename)
    if ext in ("docx", "doc"):
        return parse_docx(document.content)
    if ext == "csv":
        return parse_csv(document.content)
    raise UnsupportedFormatError(ext)


# -- public entry point -------------------------------------------------------


def extract_text(document: RawDocument) -> ExtractedText:
    """Extract text from *document*, degrading instead of failing.

    Returns
    -------
    ExtractedText
        Parsed text, or a placeholder naming the file and the error, with
        the degradation steps listed in ``warnings``.
    """
    check_supported(document)
    warnings: list[str] = []

    try:
        extracted = _parse(document)
    except Exception as exc:
        logger.error("Error parsing %s: %s", document.filename, exc)
        warnings.append(f"Initial parse failed: {exc}")
        extracted = _fallback(document, exc, warnings)
    else:
        if not extracted.text.strip():
            warnings.append("File appears to be empty or could not extract text")
            extracted = extracted.model_copy(
                update={"text": EMPTY_TEXT_PLACEHOLDER, "page_offsets": []}
            )

    logger.info(
        "Extracted %s: %d pages, %d characters",
        document.filename, extracted.page_count, len(extracted.text),
    )
    return extracted.model_copy(update={"warnings": [*extracted.warnings, *warnings]})


def _fallback(document: RawDocument, error: Exception, warnings: list[str]) -> ExtractedText:
    if document.extension == "pdf":
        try:
            logger.info("Attempting fallback PDF parsing for %s", document.filename)
            fallback = parse_pdf_plain(document.content)
            if not fallback.text.strip():
                raise ValueError("Fallback parsing also returned empty text")
        except Exception as fallback_exc:
            logger.error("Fallback PDF parsing failed for %s: %s", document.filename, fallback_exc)
            warnings.append("Could not extract text - created placeholder entry.")
            return ExtractedText(
                text=(
                    f"[File: {document.filename}] - Unable to extract text content. "
                    "File may be corrupted, encrypted, or image-only. "
                    f"Original error: {error}"
                ),
                page_count=1,
            )
        warnings.append("Used fallback parsing method - some formatting may be lost")
        return fallback

    warnings.append("Parsing failed - created placeholder entry.")
    return ExtractedText(
        text=f"[File: {document.filename}] - Parsing failed: {error}.",
        page_count=1,
    )


def first_page_preview(document: RawDocument, limit: int = 500) -> str:
    """Short text sample for UI previews; never raises."""
    try:
        if document.extension == "pdf":
            from pypdf import PdfReader

            reader = PdfReader(io.BytesIO(document.content))
            text = reader.pages[0].extract_text() if reader.pages else ""
            return (text or "")[:limit]
        return _parse(document).text[:limit]
    except Exception:
        logger.warning("Preview failed for %s", document.filename, exc_info=True)
        return "Preview not available"
