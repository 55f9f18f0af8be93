"""OpenAIEmbedding — async embedding provider backed by OpenAI's API."""

from __future__ import annotations

import os
from typing import Any

import openai
from openai import AsyncOpenAI

from vaultlink.config import DEFAULT_EMBEDDING_MODEL, OPENAI_ENV
from vaultlink.exceptions import EmbeddingProviderError, RateLimitError
from vaultlink.types import EmbeddingResponse


class OpenAIEmbedding:
    """Async embedding provider backed by the OpenAI Embeddings API.

    Uses ``AsyncOpenAI`` for native async I/O.  The client's own retries
    are disabled: rate-limit rejections surface as
    :class:`~vaultlink.exceptions.RateLimitError` so the indexer can apply
    its bounded backoff, and every other API failure surfaces as
    :class:`~vaultlink.exceptions.EmbeddingProviderError`.
    """

    def __init__(
        self,
        *,
        model: str = DEFAULT_EMBEDDING_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        resolved_key = api_key or os.environ.get(OPENAI_ENV)
        if not resolved_key:
            msg = (
                "No OpenAI API key provided. Pass api_key= or set the "
                f"{OPENAI_ENV} environment variable."
            )
            raise ValueError(msg)

        self._model = model
        client_kwargs: dict[str, Any] = {
            "api_key": resolved_key,
            "max_retries": 0,
            "timeout": timeout,
        }
        if base_url:
            client_kwargs["base_url"] = base_url.rstrip("/")
        self._client = AsyncOpenAI(**client_kwargs)

    # ------------------------------------------------------------------
    # EmbeddingProvider protocol
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> EmbeddingResponse:
        """Embed *texts* in one API call; an empty batch makes no request."""
        if not texts:
            return EmbeddingResponse(vectors=[], total_tokens=0)

        try:
            response = await self._client.embeddings.create(input=texts, model=self._model)
        except openai.RateLimitError as e:
            raise RateLimitError(str(e)) from e
        except openai.APIError as e:
            raise EmbeddingProviderError(str(e)) from e

        # Sort by index to ensure order matches input
        sorted_data = sorted(response.data, key=lambda e: e.index)
        usage = getattr(response, "usage", None)
        return EmbeddingResponse(
            vectors=[item.embedding for item in sorted_data],
            total_tokens=int(getattr(usage, "total_tokens", 0) or 0),
        )

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._model

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.close()
