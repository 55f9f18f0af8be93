"""Value objects — records, metadata variants, filters, results, and reports."""

from __future__ import annotations

import posixpath
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

# ------------------------------------------------------------------
# Record metadata
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True, kw_only=True)
class RecordMetaBase:
    """Metadata shared by file and block records.

    Attributes:
        path: Human-readable locator (file path, or ``file#H1#H2`` for a block).
        mtime: Source modification time in epoch milliseconds.
        hash: Content hash of the trimmed text that was embedded.
        size: Size of the embedded input (characters for blocks, bytes for files).
    """

    path: str
    mtime: float | None = None
    hash: str | None = None
    size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk form, omitting unset fields."""
        out: dict[str, Any] = {"path": self.path}
        if self.mtime is not None:
            out["mtime"] = self.mtime
        if self.hash is not None:
            out["hash"] = self.hash
        if self.size is not None:
            out["size"] = self.size
        return out


@dataclass(frozen=True, slots=True, kw_only=True)
class FileRecordMeta(RecordMetaBase):
    """Metadata for a whole-file record.

    Attributes:
        children: Keys of the block records currently known for this file.
    """

    children: tuple[str, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        out = RecordMetaBase.to_dict(self)
        if self.children is not None:
            out["children"] = list(self.children)
        return out


@dataclass(frozen=True, slots=True, kw_only=True)
class BlockRecordMeta(RecordMetaBase):
    """Metadata for a heading-addressed block record.

    Attributes:
        parent: Key of the owning file record (back-reference only).
    """

    parent: str

    def to_dict(self) -> dict[str, Any]:
        out = RecordMetaBase.to_dict(self)
        out["parent"] = self.parent
        return out


RecordMeta = FileRecordMeta | BlockRecordMeta


def record_meta_from_dict(raw: dict[str, Any]) -> RecordMeta:
    """Build the right metadata variant from its serialized form.

    Records carrying a ``parent`` are blocks; everything else is a file.
    Unknown keys are ignored.
    """
    common = {
        "path": raw.get("path") or "",
        "mtime": raw.get("mtime"),
        "hash": raw.get("hash"),
        "size": raw.get("size"),
    }
    parent = raw.get("parent")
    if parent:
        return BlockRecordMeta(parent=parent, **common)
    children = raw.get("children")
    return FileRecordMeta(
        children=tuple(children) if children is not None else None,
        **common,
    )


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    """A stored (vector, metadata) pair.

    Attributes:
        vec: Embedding vector.
        meta: File or block metadata.
    """

    vec: list[float]
    meta: RecordMeta

    def to_dict(self) -> dict[str, Any]:
        return {"vec": self.vec, "meta": self.meta.to_dict()}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> EmbeddingRecord:
        return cls(vec=list(raw.get("vec") or []), meta=record_meta_from_dict(raw.get("meta") or {}))


# ------------------------------------------------------------------
# Search
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NearestFilter:
    """Filtering applied before ranking in :meth:`VecLite.find_nearest`.

    Attributes:
        results_count: Maximum number of results returned.
        skip_sections: Exclude block records (paths containing ``#``).
        skip_key: Exclude this key and any record whose parent is this key.
        path_begins_with: Keep only records whose path starts with one of
            these prefixes.
    """

    results_count: int = 30
    skip_sections: bool = False
    skip_key: str | None = None
    path_begins_with: str | Sequence[str] | None = None

    @property
    def prefixes(self) -> tuple[str, ...] | None:
        if self.path_begins_with is None:
            return None
        if isinstance(self.path_begins_with, str):
            return (self.path_begins_with,)
        return tuple(self.path_begins_with)


@dataclass(frozen=True, slots=True)
class NearestResult:
    """A single ranked neighbour.

    Attributes:
        key: Store key of the matched record.
        link: Path of the matched file or block.
        similarity: Cosine similarity in [-1, 1].
        size: Stored size of the matched record (0 when unknown).
    """

    key: str
    link: str
    similarity: float
    size: int = 0


@dataclass(frozen=True, slots=True)
class CleanupResult:
    """Outcome of :meth:`VecLite.clean_up_embeddings`."""

    deleted_embeddings: int
    total_embeddings: int


# ------------------------------------------------------------------
# Vault inputs
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileStat:
    """Minimal stat result returned by storage adapters."""

    size: int
    mtime: float | None = None


@dataclass(frozen=True, slots=True)
class VaultFile:
    """A note (or canvas) in the vault.

    Attributes:
        path: Vault-relative POSIX path, e.g. ``"folder/note.md"``.
        mtime: Last modification time in epoch milliseconds.
        size: File size in bytes.
    """

    path: str
    mtime: float
    size: int

    @property
    def extension(self) -> str:
        return posixpath.splitext(self.path)[1].lstrip(".").lower()

    @property
    def name(self) -> str:
        return posixpath.basename(self.path)


@dataclass(frozen=True, slots=True)
class Block:
    """A heading-addressed section produced by the segmenter.

    Attributes:
        text: Breadcrumb header line plus body, trimmed and length-capped.
        heading_path: ``#H1#H2`` with an optional ``{N}`` occurrence suffix.
        path: ``file_path + heading_path``.
        length: Length of the body below the breadcrumb line.
    """

    text: str
    heading_path: str
    path: str
    length: int


# ------------------------------------------------------------------
# Embedding
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EmbeddingResponse:
    """Vectors returned by a provider, in input order."""

    vectors: list[list[float]]
    total_tokens: int = 0


@dataclass(frozen=True, slots=True)
class EmbeddingRequest:
    """One unit queued for embedding.

    Attributes:
        key: Store key the resulting vector is saved under.
        text: Input text sent to the provider.
        meta: Metadata persisted with the vector.
    """

    key: str
    text: str
    meta: RecordMeta


@dataclass(slots=True)
class IndexReport:
    """Running log of one indexing sweep."""

    total_files: int = 0
    deleted_embeddings: int = 0
    total_embeddings: int = 0
    new_embeddings: int = 0
    token_usage: int = 0
    tokens_saved_by_cache: float = 0.0
    failed_embeddings: list[str] = field(default_factory=list)
    skipped_low_delta: dict[str, str] = field(default_factory=dict)
    exclusions: Counter[str] = field(default_factory=Counter)
    files: list[str] = field(default_factory=list)

    def log_exclusion(self, exclusion: str) -> None:
        self.exclusions[exclusion] += 1

    def credit_cache(self, embed_input: str, *, has_blocks: bool) -> None:
        """Estimate tokens saved by skipping *embed_input*.

        Roughly four characters per token; skipping a file with blocks also
        saves the block requests, so it counts double.
        """
        self.tokens_saved_by_cache += len(embed_input) / (2 if has_blocks else 4)
