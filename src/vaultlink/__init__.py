"""vaultlink: semantic connections between the notes of a markdown vault.

Embeds notes and their heading sections, stores the vectors in a small JSON
vector store, and ranks related notes by cosine similarity.
"""

__version__ = "0.1.0"

from vaultlink.adapters.local_disk import LocalDiskAdapter
from vaultlink.config import Settings, load_settings
from vaultlink.connections import (
    EXCLUDED,
    ConnectionFinder,
    ConnectionResult,
    EmbeddingUnavailable,
    NearestCache,
)
from vaultlink.events import EventBus, EventType, VaultEvent
from vaultlink.exceptions import (
    EmbeddingProviderError,
    PathTraversalError,
    RateLimitError,
    SaveGuardError,
    StorageError,
    VaultLinkError,
)
from vaultlink.indexer import Indexer
from vaultlink.persistence import DebouncedSaver, FailedFiles
from vaultlink.protocols import EmbeddingProvider, StorageAdapter, VaultSource
from vaultlink.segmenter import segment_blocks
from vaultlink.store import VecLite, cosine_similarity
from vaultlink.types import (
    Block,
    BlockRecordMeta,
    CleanupResult,
    EmbeddingRecord,
    EmbeddingResponse,
    FileRecordMeta,
    IndexReport,
    NearestFilter,
    NearestResult,
    VaultFile,
)
from vaultlink.vault import SmartVault

__all__ = [
    "EXCLUDED",
    "Block",
    "BlockRecordMeta",
    "CleanupResult",
    "ConnectionFinder",
    "ConnectionResult",
    "DebouncedSaver",
    "EmbeddingProvider",
    "EmbeddingProviderError",
    "EmbeddingRecord",
    "EmbeddingResponse",
    "EmbeddingUnavailable",
    "EventBus",
    "EventType",
    "FailedFiles",
    "FileRecordMeta",
    "IndexReport",
    "Indexer",
    "LocalDiskAdapter",
    "NearestCache",
    "NearestFilter",
    "NearestResult",
    "PathTraversalError",
    "RateLimitError",
    "SaveGuardError",
    "Settings",
    "SmartVault",
    "StorageAdapter",
    "StorageError",
    "VaultEvent",
    "VaultFile",
    "VaultLinkError",
    "VaultSource",
    "VecLite",
    "__version__",
    "cosine_similarity",
    "load_settings",
    "segment_blocks",
]
