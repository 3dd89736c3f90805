"""
Ingestion — extraction, chunking, embedding and upsert of uploaded files.

This package is responsible for the pipeline that converts raw documents
(PDF, DOCX, CSV) into embedded chunks stored in a vector database:

- :mod:`~vector_ingest.ingestion.extractor` — bytes → text (with table recovery).
- :mod:`~vector_ingest.ingestion.chunker` — text → overlapping chunks.
- :mod:`~vector_ingest.ingestion.embedder` — chunks → vectors, with a degradation ladder.
- :mod:`~vector_ingest.ingestion.pipeline` — the orchestrator tying them together.
"""
