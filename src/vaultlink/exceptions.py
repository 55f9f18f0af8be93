"""Custom exception hierarchy for vaultlink."""


class VaultLinkError(Exception):
    """Base exception for all vaultlink errors."""


class StorageError(VaultLinkError):
    """Raised on storage adapter failures (disk I/O, missing folders, etc.)."""


class PathTraversalError(StorageError):
    """Raised when a vault-relative path resolves outside the vault."""


class SaveGuardError(StorageError):
    """Raised when a save would shrink the embeddings file by more than half.

    The rejected payload has been written to ``side_path`` instead.
    """

    def __init__(self, message: str, *, new_size: int, existing_size: int, side_path: str) -> None:
        super().__init__(message)
        self.new_size = new_size
        self.existing_size = existing_size
        self.side_path = side_path


class EmbeddingProviderError(VaultLinkError):
    """Raised when the embedding provider fails for a batch of inputs."""


class RateLimitError(EmbeddingProviderError):
    """Raised when the embedding provider rejects a request with HTTP 429."""
