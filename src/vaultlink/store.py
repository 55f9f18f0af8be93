"""VecLite — embedded JSON vector store with brute-force cosine search."""

from __future__ import annotations

import asyncio
import json
import logging
import math
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import numpy as np

from vaultlink.config import DEFAULT_FILE_NAME, DEFAULT_FOLDER_PATH
from vaultlink.exceptions import SaveGuardError
from vaultlink.types import (
    CleanupResult,
    EmbeddingRecord,
    FileRecordMeta,
    NearestFilter,
    NearestResult,
    RecordMeta,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Iterator, Sequence

    from vaultlink.protocols import StorageAdapter
    from vaultlink.types import VaultFile

logger = logging.getLogger(__name__)

UNSAVED_FILE_NAME = "unsaved-embeddings.json"
LOAD_RETRIES = 3
SAVE_SHRINK_LIMIT = 0.5


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Return dot(a, b) / (|a| * |b|), or 0.0 when either vector has zero norm.

    Vectors of different length (e.g. from another embedding model) are
    not comparable and also score 0.0.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        logger.warning(
            "Cannot compare vectors of length %d and %d; was the store built with another model?",
            va.size,
            vb.size,
        )
        return 0.0
    norm_a = float(np.dot(va, va))
    norm_b = float(np.dot(vb, vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    sim = float(np.dot(va, vb)) / (math.sqrt(norm_a) * math.sqrt(norm_b))
    if not math.isfinite(sim):
        return 0.0
    # Rounding can push |sim| a hair past 1.
    return max(-1.0, min(1.0, sim))


class VecLite:
    """In-memory key → (vector, metadata) map persisted to one JSON file.

    The map lives for the lifetime of the process and is flushed with
    :meth:`save`.  All file access goes through an injected
    :class:`~vaultlink.protocols.StorageAdapter`.

    Not safe for concurrent sweeps: callers run at most one indexing sweep
    or force-refresh at a time.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        *,
        folder_path: str = DEFAULT_FOLDER_PATH,
        file_name: str = DEFAULT_FILE_NAME,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._adapter = adapter
        self.folder_path = folder_path
        self.file_name = file_name
        self.file_path = f"{folder_path}/{file_name}"
        self._sleep = sleep
        self._clock = clock
        self._embeddings: dict[str, EmbeddingRecord] = {}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> bool:
        """Read the embeddings file into memory.

        Read failures are retried ``LOAD_RETRIES`` times with linear backoff
        (1 s, 2 s, 3 s).  Returns False when no store could be loaded, which
        callers treat as a first run.
        """
        if not await self._adapter.exists(self.file_path):
            logger.info("No embeddings file at %s yet", self.file_path)
            return False
        for attempt in range(LOAD_RETRIES + 1):
            try:
                raw = json.loads(await self._adapter.read(self.file_path))
                if not isinstance(raw, dict):
                    msg = f"Embeddings file is not a JSON object: {self.file_path}"
                    raise ValueError(msg)
                self._embeddings = {
                    key: EmbeddingRecord.from_dict(value) for key, value in raw.items()
                }
            except Exception:
                if attempt < LOAD_RETRIES:
                    logger.info("Retrying load of %s (attempt %d)", self.file_path, attempt + 1)
                    await self._sleep(1.0 + attempt)
                    continue
                logger.warning(
                    "Failed to load embeddings file %s, a full index is needed",
                    self.file_path,
                    exc_info=True,
                )
                return False
            logger.info("Loaded %d embeddings from %s", len(self._embeddings), self.file_path)
            return True
        return False

    async def init_embeddings_file(self) -> None:
        """Create the store folder and an empty ``{}`` file if missing."""
        if not await self._adapter.exists(self.folder_path):
            await self._adapter.mkdir(self.folder_path)
            logger.info("Created folder %s", self.folder_path)
        if not await self._adapter.exists(self.file_path):
            await self._adapter.write(self.file_path, "{}")
            logger.info("Created embeddings file %s", self.file_path)

    async def save(self) -> bool:
        """Serialize the map and write it over the embeddings file.

        Refuses when the new payload is less than half the size of the
        existing file: the payload goes to ``unsaved-embeddings.json`` and
        :class:`~vaultlink.exceptions.SaveGuardError` is raised.
        """
        return await self._save(retry=True)

    async def _save(self, *, retry: bool) -> bool:
        payload = self.dumps()
        if not await self._adapter.exists(self.file_path):
            if not retry:
                msg = f"Embeddings file missing after initialization: {self.file_path}"
                raise FileNotFoundError(msg)
            await self.init_embeddings_file()
            return await self._save(retry=False)

        new_size = len(payload.encode("utf-8"))
        existing_size = (await self._adapter.stat(self.file_path)).size
        if new_size < existing_size * SAVE_SHRINK_LIMIT:
            side_path = f"{self.folder_path}/{UNSAVED_FILE_NAME}"
            logger.error(
                "New embeddings file (%d bytes) is less than half the existing file "
                "(%d bytes); writing to %s instead to prevent data loss",
                new_size,
                existing_size,
                side_path,
            )
            await self._adapter.write(side_path, payload)
            msg = (
                "New embeddings file size is significantly smaller than existing "
                "embeddings file size. Aborting to prevent possible loss of embeddings data."
            )
            raise SaveGuardError(
                msg, new_size=new_size, existing_size=existing_size, side_path=side_path
            )

        await self._adapter.write(self.file_path, payload)
        logger.debug("Embeddings file size: %d bytes", new_size)
        return True

    def dumps(self) -> str:
        """Return the JSON document persisted by :meth:`save`."""
        return json.dumps(
            {key: record.to_dict() for key, record in self._embeddings.items()},
            separators=(",", ":"),
        )

    async def force_refresh(self) -> None:
        """Discard everything, archive the current file, start empty.

        The file is renamed to ``embeddings-<unix_seconds>.json``.
        """
        self._embeddings = {}
        if await self._adapter.exists(self.file_path):
            archive = f"{self.folder_path}/embeddings-{int(self._clock())}.json"
            await self._adapter.rename(self.file_path, archive)
            logger.info("Archived %s to %s", self.file_path, archive)
        await self.init_embeddings_file()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def save_embedding(self, key: str, vec: list[float], meta: RecordMeta) -> None:
        """Insert or replace the record under *key*.  No I/O."""
        self._embeddings[key] = EmbeddingRecord(vec=list(vec), meta=meta)

    def update_children(self, key: str, children: Sequence[str]) -> bool:
        """Replace the ``children`` of a file record without re-embedding.

        Returns False when *key* is absent or is not a file record.
        """
        record = self._embeddings.get(key)
        if record is None or not isinstance(record.meta, FileRecordMeta):
            return False
        self._embeddings[key] = replace(record, meta=replace(record.meta, children=tuple(children)))
        return True

    def delete(self, key: str) -> bool:
        """Remove a single record. Returns True if found."""
        return self._embeddings.pop(key, None) is not None

    def clean_up_embeddings(self, files: Iterable[VaultFile | str]) -> CleanupResult:
        """Drop records of files that no longer exist, and orphaned blocks.

        A record survives the first pass only if its path begins with some
        live file path (a block's path begins with its file's).  Block
        records then go if their parent record is missing or no longer lists
        them in ``children``.
        """
        live = [f if isinstance(f, str) else f.path for f in files]
        live_set = set(live)
        keys = list(self._embeddings)
        deleted = 0
        for key in keys:
            record = self._embeddings[key]
            path = record.meta.path
            if not path or not (
                path.split("#", 1)[0] in live_set or any(path.startswith(p) for p in live)
            ):
                del self._embeddings[key]
                deleted += 1
                continue
            if "#" not in path:
                continue
            parent_key = getattr(record.meta, "parent", None)
            if not parent_key:
                continue
            parent = self._embeddings.get(parent_key)
            if parent is None or parent.meta is None:
                del self._embeddings[key]
                deleted += 1
                continue
            children = getattr(parent.meta, "children", None)
            if children is not None and key not in children:
                del self._embeddings[key]
                deleted += 1
        logger.info("Cleaned up %d of %d embeddings", deleted, len(keys))
        return CleanupResult(deleted_embeddings=deleted, total_embeddings=len(keys))

    # ------------------------------------------------------------------
    # Accessors (None for missing keys, never raise)
    # ------------------------------------------------------------------

    def get(self, key: str) -> EmbeddingRecord | None:
        return self._embeddings.get(key)

    def get_meta(self, key: str) -> RecordMeta | None:
        record = self._embeddings.get(key)
        return record.meta if record is not None else None

    def get_mtime(self, key: str) -> float | None:
        meta = self.get_meta(key)
        return meta.mtime if meta is not None else None

    def get_hash(self, key: str) -> str | None:
        meta = self.get_meta(key)
        return meta.hash if meta is not None else None

    def get_size(self, key: str) -> int | None:
        meta = self.get_meta(key)
        return meta.size if meta is not None else None

    def get_children(self, key: str) -> list[str] | None:
        meta = self.get_meta(key)
        children = getattr(meta, "children", None)
        return list(children) if children is not None else None

    def get_vec(self, key: str) -> list[float] | None:
        record = self._embeddings.get(key)
        if record is None or not record.vec:
            return None
        return record.vec

    def mtime_is_current(self, key: str, source_mtime: float) -> bool:
        """True iff *key* is stored with an mtime at or after *source_mtime*."""
        mtime = self.get_mtime(key)
        return mtime is not None and mtime >= source_mtime

    def keys(self) -> list[str]:
        return list(self._embeddings)

    def __contains__(self, key: object) -> bool:
        return key in self._embeddings

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._embeddings))

    def __len__(self) -> int:
        """Return the number of stored records."""
        return len(self._embeddings)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    @staticmethod
    def cos_sim(vector1: Sequence[float], vector2: Sequence[float]) -> float:
        """Cosine similarity with the zero-norm case defined as 0."""
        return cosine_similarity(vector1, vector2)

    def find_nearest(
        self,
        to_vec: Sequence[float],
        filter: NearestFilter | None = None,  # noqa: A002
    ) -> list[NearestResult]:
        """Return up to ``filter.results_count`` records by descending similarity."""
        if filter is None:
            filter = NearestFilter()  # noqa: A001
        prefixes = filter.prefixes
        query = np.asarray(to_vec, dtype=np.float64)

        nearest: list[NearestResult] = []
        for key, record in self._embeddings.items():
            path = record.meta.path
            if filter.skip_sections and path and "#" in path:
                continue
            if filter.skip_key is not None and (
                key == filter.skip_key or getattr(record.meta, "parent", None) == filter.skip_key
            ):
                continue
            if prefixes is not None and not (path and any(path.startswith(p) for p in prefixes)):
                continue
            nearest.append(
                NearestResult(
                    key=key,
                    link=path or "",
                    similarity=cosine_similarity(query, record.vec),
                    size=record.meta.size or 0,
                )
            )

        nearest.sort(key=lambda r: r.similarity, reverse=True)
        return nearest[: max(filter.results_count, 0)]
