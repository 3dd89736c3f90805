"""
Serving — FastAPI application for document ingestion.

Exposes upload, preview and index-browsing endpoints over HTTP; all real
work is delegated to :mod:`vector_ingest.ingestion`.
"""
