"""Collaborator protocols — storage adapter, vault source, embedding provider."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from vaultlink.types import EmbeddingResponse, FileStat, VaultFile


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Async protocol for batch text-to-vector embedding.

    Implementations return one vector per input, in input order, and raise
    :class:`~vaultlink.exceptions.RateLimitError` for 429-class rejections
    and :class:`~vaultlink.exceptions.EmbeddingProviderError` for anything
    else.
    """

    async def embed(self, texts: list[str]) -> EmbeddingResponse:
        """Embed a batch of texts."""
        ...

    @property
    def model_name(self) -> str:
        """Name of the embedding model."""
        ...


@runtime_checkable
class StorageAdapter(Protocol):
    """Async file operations the vector store persists through.

    Paths are vault-relative POSIX strings.  Every method may raise.
    """

    async def exists(self, path: str) -> bool: ...

    async def mkdir(self, path: str) -> None: ...

    async def read(self, path: str) -> str: ...

    async def write(self, path: str, contents: str) -> None: ...

    async def rename(self, old_path: str, new_path: str) -> None: ...

    async def stat(self, path: str) -> FileStat: ...

    async def remove(self, path: str) -> None: ...


@runtime_checkable
class VaultSource(Protocol):
    """Enumerates and reads the notes to be indexed."""

    async def list_files(self) -> list[VaultFile]:
        """Return every indexable file (markdown and canvas) in the vault."""
        ...

    async def read(self, path: str) -> str:
        """Return the text content of *path*."""
        ...
