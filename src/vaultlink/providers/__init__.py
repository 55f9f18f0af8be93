"""Embedding providers — protocol and implementations."""

from vaultlink.protocols import EmbeddingProvider
from vaultlink.providers.openai import OpenAIEmbedding

__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbedding",
]
