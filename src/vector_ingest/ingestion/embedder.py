"""Batched embedding with retry, backoff and graceful degradation.

Every provider batch walks the same ladder, described by :class:`RetryPolicy`:

1. ``FULL_BATCH`` — embed the whole batch, retrying with exponential backoff.
2. ``SPLIT``      — embed roughly three smaller sub-batches, once each,
   pausing between them.
3. ``ZERO_FILL``  — a sub-batch that still fails gets zero vectors and a
   warning.

The output therefore always holds one correctly sized vector per input
text.  Any exception raised by the provider counts as a failed attempt.
The only way out of the ladder is a configuration error on the very first
attempt, which raises :class:`EmbeddingFatalError`.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from vector_ingest.config import settings
from vector_ingest.embedding.base import EmbeddingProvider
from vector_ingest.ingestion.errors import (
    EmbeddingConfigurationError,
    EmbeddingFatalError,
    EmbeddingProviderError,
)
from vector_ingest.ingestion.models import SUPPORTED_DIMENSIONS

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class LadderStage(str, enum.Enum):
    FULL_BATCH = "full_batch"
    SPLIT = "split"
    ZERO_FILL = "zero_fill"


@dataclass(frozen=True)
class RetryPolicy:
    """Table of knobs driving the degradation ladder.

    Attributes
    ----------
    max_attempts:
        Full-batch attempts before splitting.
    backoff_base:
        Wait ``backoff_base ** attempt`` seconds after failed attempt
        ``attempt`` (1-based); no wait after the last attempt.
    fallback_splits:
        Number of sub-batches the batch is split into.
    sub_batch_pause:
        Seconds to pause between sub-batches.
    """

    max_attempts: int = 3
    backoff_base: float = 2.0
    fallback_splits: int = 3
    sub_batch_pause: float = 1.0

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            max_attempts=settings.embed_max_attempts,
            backoff_base=settings.embed_backoff_base,
            fallback_splits=settings.embed_fallback_splits,
            sub_batch_pause=settings.embed_sub_batch_pause,
        )

    def backoff(self, attempt: int) -> float | None:
        """Seconds to wait after failed *attempt*, or ``None`` when attempts are exhausted."""
        if attempt >= self.max_attempts:
            return None
        return self.backoff_base ** attempt

    def split(self, size: int) -> list[tuple[int, int]]:
        """``(start, end)`` bounds of the fallback sub-batches for a batch of *size*."""
        step = max(1, math.ceil(size / self.fallback_splits))
        return [(i, min(i + step, size)) for i in range(0, size, step)]


@dataclass
class EmbeddingOutcome:
    """Vectors in input order plus any degradation warnings."""

    vectors: list[list[float]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    degraded: int = 0


class Embedder:
    """Embeds chunk texts through an :class:`EmbeddingProvider`.

    Parameters
    ----------
    provider:
        The embedding capability.
    batch_size:
        Texts per provider batch.
    policy:
        Retry / degradation policy.
    sleep:
        Awaitable sleep, injectable so tests need not wait.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        batch_size: int = 100,
        policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._provider = provider
        self.batch_size = batch_size
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def embed_texts(self, texts: list[str], dimensions: int) -> EmbeddingOutcome:
        """Return one vector per text, in order, degrading rather than failing."""
        if dimensions not in SUPPORTED_DIMENSIONS:
            raise ValueError(
                f"dimensions must be one of {SUPPORTED_DIMENSIONS}, got {dimensions}"
            )

        outcome = EmbeddingOutcome()
        batch_count = math.ceil(len(texts) / self.batch_size)
        for batch_no, start in enumerate(range(0, len(texts), self.batch_size), 1):
            batch = texts[start : start + self.batch_size]
            await self._embed_batch(batch, dimensions, batch_no, batch_count, outcome)
            logger.info("  embedded %d / %d", len(outcome.vectors), len(texts))

        if outcome.degraded:
            logger.warning(
                "Embedding degraded: %d of %d vectors are zero-filled",
                outcome.degraded, len(texts),
            )
        return outcome

    # -- ladder ---------------------------------------------------------------

    async def _embed_batch(
        self,
        batch: list[str],
        dimensions: int,
        batch_no: int,
        batch_count: int,
        outcome: EmbeddingOutcome,
    ) -> None:
        stage = LadderStage.FULL_BATCH
        attempt = 0
        while stage is LadderStage.FULL_BATCH:
            attempt += 1
            try:
                outcome.vectors.extend(await self._call(batch, dimensions))
                return
            except Exception as exc:
                if attempt == 1 and isinstance(exc, EmbeddingConfigurationError):
                    logger.error("Embedding provider misconfigured: %s", exc)
                    raise EmbeddingFatalError(
                        f"Embedding provider rejected the request: {exc}"
                    ) from exc
                wait = self.policy.backoff(attempt)
                logger.warning(
                    "Error generating embeddings for batch %d/%d (attempt %d/%d): %s",
                    batch_no, batch_count, attempt, self.policy.max_attempts, exc,
                )
                if wait is None:
                    stage = LadderStage.SPLIT
                else:
                    await self._sleep(wait)

        bounds = self.policy.split(len(batch))
        logger.warning(
            "Batch %d/%d failed %d attempts; retrying as %d sub-batches",
            batch_no, batch_count, attempt, len(bounds),
        )
        for sub_no, (lo, hi) in enumerate(bounds, 1):
            sub = batch[lo:hi]
            try:
                outcome.vectors.extend(await self._call(sub, dimensions))
            except Exception as exc:
                stage = LadderStage.ZERO_FILL
                outcome.vectors.extend([0.0] * dimensions for _ in sub)
                outcome.degraded += len(sub)
                outcome.warnings.append(
                    f"Batch {batch_no} sub-batch {sub_no}/{len(bounds)} failed - "
                    f"using zero vectors for {len(sub)} chunks ({exc})"
                )
                logger.warning(
                    "Sub-batch %d/%d of batch %d failed, stage=%s: %s",
                    sub_no, len(bounds), batch_no, stage.value, exc,
                )
            if sub_no < len(bounds):
                await self._sleep(self.policy.sub_batch_pause)

    async def _call(self, texts: list[str], dimensions: int) -> list[list[float]]:
        vectors = await self._provider.embed(texts, dimensions)
        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                f"expected {len(texts)} vectors, got {len(vectors)}"
            )
        if any(len(v) != dimensions for v in vectors):
            raise EmbeddingConfigurationError(
                f"provider returned vectors not of length {dimensions}"
            )
        return vectors
