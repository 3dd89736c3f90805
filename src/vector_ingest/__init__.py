"""Document-to-vector ingestion: extract, chunk, embed, upsert."""

__version__ = "0.1.0"
