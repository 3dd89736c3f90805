"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Embedding provider
    openai_api_key: str = Field(default="", description="OpenAI API key used for embeddings")
    embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = Field(default=1536, description="Vector size: 1536 or 3072")
    embedding_batch_size: int = 100

    # Embedding degradation ladder
    embed_max_attempts: int = 3
    embed_backoff_base: float = 2.0
    embed_fallback_splits: int = 3
    embed_sub_batch_pause: float = 1.0

    # Chunking defaults
    chunk_size: int = 2000
    chunk_overlap: int = 300

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    upsert_batch_size: int = 100

    # Serving
    max_concurrent_files: int = 4
    preview_max_bytes: int = 4 * 1024 * 1024
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import `settings` wherever needed.
settings = Settings()
