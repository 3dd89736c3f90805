"""Unit tests for the OpenAI embedding provider (LangChain client mocked)."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from vector_ingest.embedding import EmbeddingProvider
from vector_ingest.embedding.openai_embeddings import OpenAIEmbeddingProvider
from vector_ingest.ingestion.errors import EmbeddingConfigurationError, EmbeddingProviderError

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


def _status_error(cls: type[openai.APIStatusError], status: int) -> openai.APIStatusError:
    return cls("rejected", response=httpx.Response(status, request=_REQUEST), body=None)


@pytest.fixture()
def lc_embeddings() -> Iterator[MagicMock]:
    with patch("vector_ingest.embedding.openai_embeddings.OpenAIEmbeddings") as cls:
        yield cls


def test_satisfies_protocol() -> None:
    assert isinstance(OpenAIEmbeddingProvider(api_key="sk-test"), EmbeddingProvider)


@pytest.mark.asyncio
async def test_embed_uses_one_client_per_dimension(lc_embeddings: MagicMock) -> None:
    lc_embeddings.return_value.aembed_documents = AsyncMock(return_value=[[0.5] * 1536] * 2)
    provider = OpenAIEmbeddingProvider(api_key="sk-test", model="text-embedding-3-large")

    vectors = await provider.embed(["a", "b"], 1536)
    await provider.embed(["c", "d"], 1536)

    assert len(vectors) == 2
    lc_embeddings.assert_called_once_with(
        model="text-embedding-3-large",
        dimensions=1536,
        api_key="sk-test",
        max_retries=0,
        chunk_size=1000,
    )


@pytest.mark.asyncio
async def test_empty_input_skips_request(lc_embeddings: MagicMock) -> None:
    assert await OpenAIEmbeddingProvider(api_key="sk-test").embed([], 1536) == []
    lc_embeddings.assert_not_called()


@pytest.mark.asyncio
async def test_missing_api_key_is_configuration_error() -> None:
    with pytest.raises(EmbeddingConfigurationError):
        await OpenAIEmbeddingProvider(api_key="").embed(["a"], 1536)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (_status_error(openai.AuthenticationError, 401), EmbeddingConfigurationError),
        (_status_error(openai.BadRequestError, 400), EmbeddingConfigurationError),
        (_status_error(openai.RateLimitError, 429), EmbeddingProviderError),
        (openai.APIConnectionError(request=_REQUEST), EmbeddingProviderError),
    ],
)
async def test_openai_errors_are_mapped(
    lc_embeddings: MagicMock, error: Exception, expected: type[Exception]
) -> None:
    lc_embeddings.return_value.aembed_documents = AsyncMock(side_effect=error)

    with pytest.raises(expected) as excinfo:
        await OpenAIEmbeddingProvider(api_key="sk-test").embed(["a"], 1536)

    if expected is EmbeddingProviderError:
        assert not isinstance(excinfo.value, EmbeddingConfigurationError)


@pytest.mark.asyncio
async def test_wrong_vector_size_is_configuration_error(lc_embeddings: MagicMock) -> None:
    lc_embeddings.return_value.aembed_documents = AsyncMock(return_value=[[0.1] * 3072])

    with pytest.raises(EmbeddingConfigurationError, match="3072-dim"):
        await OpenAIEmbeddingProvider(api_key="sk-test").embed(["a"], 1536)
