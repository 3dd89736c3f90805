"""OpenAI embeddings through LangChain — single place to swap providers.

``text-embedding-3-large`` accepts a ``dimensions`` argument, so one model
serves both 1536- and 3072-dimensional indexes.  LangChain's built-in
retries are disabled: the embedder's degradation ladder owns retrying.
"""

from __future__ import annotations

import logging

import openai
from langchain_openai import OpenAIEmbeddings

from vector_ingest.config import settings
from vector_ingest.ingestion.errors import EmbeddingConfigurationError, EmbeddingProviderError

logger = logging.getLogger(__name__)

# Errors that will fail the same way on every retry.
_CONFIGURATION_ERRORS: tuple[type[Exception], ...] = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
    openai.BadRequestError,
)


class OpenAIEmbeddingProvider:
    """:class:`~vector_ingest.embedding.base.EmbeddingProvider` backed by OpenAI.

    Parameters
    ----------
    api_key:
        OpenAI API key; defaults to ``settings.openai_api_key``.
    model:
        Embedding model identifier.
    request_batch_size:
        Max inputs per HTTP request inside one :meth:`embed` call.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = settings.embedding_model,
        request_batch_size: int = 1000,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.openai_api_key
        self._model = model
        self._request_batch_size = request_batch_size
        self._clients: dict[int, OpenAIEmbeddings] = {}

    def _client(self, dimensions: int) -> OpenAIEmbeddings:
        if not self._api_key:
            raise EmbeddingConfigurationError("OPENAI_API_KEY is not set")
        client = self._clients.get(dimensions)
        if client is None:
            logger.info("Creating OpenAI embeddings client: model=%s dim=%d", self._model, dimensions)
            client = OpenAIEmbeddings(
                model=self._model,
                dimensions=dimensions,
                api_key=self._api_key,
                max_retries=0,
                chunk_size=self._request_batch_size,
            )
            self._clients[dimensions] = client
        return client

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        if not texts:
            return []
        client = self._client(dimensions)
        try:
            vectors = await client.aembed_documents(texts)
        except _CONFIGURATION_ERRORS as exc:
            raise EmbeddingConfigurationError(str(exc)) from exc
        except openai.OpenAIError as exc:
            raise EmbeddingProviderError(str(exc)) from exc

        for vector in vectors:
            if len(vector) != dimensions:
                raise EmbeddingConfigurationError(
                    f"Model {self._model} returned {len(vector)}-dim vectors, expected {dimensions}"
                )
        return vectors
