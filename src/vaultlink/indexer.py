"""Indexer — decides what to embed and writes results into the store."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING, Any

from vaultlink.config import Settings
from vaultlink.exceptions import EmbeddingProviderError, RateLimitError, StorageError
from vaultlink.persistence import DebouncedSaver, FailedFiles
from vaultlink.segmenter import extract_headings, headings_outline, segment_blocks
from vaultlink.types import (
    BlockRecordMeta,
    EmbeddingRequest,
    EmbeddingResponse,
    FileRecordMeta,
    IndexReport,
)
from vaultlink.utils import (
    MAX_EMBED_STRING_LENGTH,
    SUPPORTED_FILE_TYPES,
    content_hash,
    content_key,
    matches_any,
    path_to_breadcrumbs,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from vaultlink.protocols import EmbeddingProvider, VaultSource
    from vaultlink.store import VecLite
    from vaultlink.types import VaultFile

logger = logging.getLogger(__name__)

BLOCK_BATCH_SIZE = 10
SAVE_EVERY_UNITS = 30
SAVE_EVERY_FILES = 100
FILE_CONCURRENCY = 4
RATE_LIMIT_RETRIES = 3
SIZE_DELTA_SKIP_PCT = 10


def flatten_canvas(contents: str) -> str:
    """Concatenate the text and linked-file nodes of a ``.canvas`` document."""
    if "nodes" not in contents:
        return ""
    try:
        data = json.loads(contents)
    except json.JSONDecodeError:
        logger.warning("Unparseable canvas file, embedding its path only", exc_info=True)
        return ""
    if not isinstance(data, dict):
        return ""
    parts: list[str] = []
    for node in data.get("nodes") or []:
        if not isinstance(node, dict):
            continue
        if node.get("text"):
            parts.append(f"\n{node['text']}")
        if node.get("file"):
            parts.append(f"\nLink: {node['file']}")
    return "".join(parts)


def file_embed_input(path: str, contents: str) -> str:
    """Build the whole-file input: breadcrumbs, then content or its outline.

    Notes at or over ``MAX_EMBED_STRING_LENGTH`` characters are reduced to
    their heading outline (or their first characters when they have no
    headings).
    """
    embed_input = f"{path_to_breadcrumbs(path)}:\n"
    if len(contents) < MAX_EMBED_STRING_LENGTH:
        return embed_input + contents
    headings = extract_headings(contents)
    if headings:
        embed_input += headings_outline(headings)
    else:
        embed_input += contents[:MAX_EMBED_STRING_LENGTH]
    return embed_input[:MAX_EMBED_STRING_LENGTH]


class Indexer:
    """Orchestrates the vault source, the embedding provider, and :class:`VecLite`.

    One sweep (:meth:`index_all`) walks every note, skips what is unchanged,
    embeds files and their blocks in small batches, and records inputs the
    provider rejected so later sweeps leave them alone until
    :meth:`retry_failed_files` is called.  Provider failures never abort a
    sweep.
    """

    def __init__(
        self,
        store: VecLite,
        provider: EmbeddingProvider,
        vault: VaultSource,
        *,
        settings: Settings | None = None,
        saver: DebouncedSaver | None = None,
        failed_files: FailedFiles | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._provider = provider
        self._vault = vault
        self._settings = settings or Settings()
        self._saver = saver or DebouncedSaver(store, delay=self._settings.save_delay)
        self._failed = failed_files
        self._sleep = sleep
        self._clock = clock
        self.report = IndexReport()

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def exclusion_for(self, path: str) -> str | None:
        """Return the configured exclusion matching *path*, if any."""
        return matches_any(path, self._settings.file_exclusions)

    def is_failed(self, path: str) -> bool:
        return self._failed is not None and path in self._failed

    def skip_reason(self, file: VaultFile) -> str | None:
        """Why a sweep would leave *file* alone, or None if it needs work."""
        if "#" in file.path:
            return "path contains #"
        exclusion = self.exclusion_for(file.path)
        if exclusion is not None:
            return exclusion
        if self.is_failed(file.path):
            return "failed"
        if self._store.mtime_is_current(content_key(file.path), file.mtime):
            return "current"
        return None

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def index_all(self, skip_paths: Iterable[str] = ()) -> IndexReport:
        """Bring the store up to date with every note in the vault.

        Files in *skip_paths* (e.g. notes open in an editor) are left for a
        later sweep.  Returns the sweep's :class:`IndexReport`.
        """
        self.report = report = IndexReport()
        skip = set(skip_paths)
        files = [f for f in await self._vault.list_files() if f.extension in SUPPORTED_FILE_TYPES]

        cleanup = self._store.clean_up_embeddings(files)
        report.total_files = len(files)
        report.deleted_embeddings = cleanup.deleted_embeddings
        report.total_embeddings = cleanup.total_embeddings
        if cleanup.deleted_embeddings:
            self._saver.mark_dirty()

        window: list[Awaitable[None]] = []
        skipped_failed = 0
        for i, file in enumerate(files):
            reason = self.skip_reason(file)
            if reason == "failed":
                skipped_failed += 1
                continue
            if reason == "current":
                continue
            if reason is not None:
                report.log_exclusion(reason)
                continue
            if file.path in skip:
                continue
            window.append(self.index_file(file, save=False))
            if len(window) >= FILE_CONCURRENCY:
                await asyncio.gather(*window)
                window = []
            if i > 0 and i % SAVE_EVERY_FILES == 0:
                self._saver.schedule()
        if window:
            await asyncio.gather(*window)

        if skipped_failed:
            logger.warning(
                "Skipped %d previously failed file(s); retry them explicitly", skipped_failed
            )
        await self._saver.flush()
        if report.failed_embeddings:
            await self.record_failures(report.failed_embeddings)
        self._log_report()
        return report

    async def record_failures(self, paths: Iterable[str]) -> None:
        """Add *paths* to the failed-file list, if one is configured."""
        if self._failed is not None:
            await self._failed.record(paths)

    async def retry_failed_files(self) -> IndexReport:
        """Forget recorded failures and run a full sweep."""
        if self._failed is not None:
            await self._failed.clear()
        return await self.index_all()

    async def index_file(self, file: VaultFile, *, save: bool = True) -> None:
        """Embed whatever changed in *file* (whole file and blocks).

        With *save*, a debounced store write is scheduled afterwards.
        """
        file_key = content_key(file.path)
        breadcrumbs = path_to_breadcrumbs(file.path)

        path_only = matches_any(file.path, self._settings.path_only)
        if path_only is not None:
            logger.debug("Path-only file %s (matcher %r)", file.path, path_only)
            await self._embed_batch(
                [EmbeddingRequest(file_key, breadcrumbs, FileRecordMeta(path=file.path, mtime=file.mtime))]
            )
            self._checkpoint(save)
            return

        contents = await self._read(file.path)
        if contents is None:
            return

        if file.extension == "canvas":
            await self._embed_batch(
                [
                    EmbeddingRequest(
                        file_key,
                        breadcrumbs + flatten_canvas(contents),
                        FileRecordMeta(path=file.path, mtime=file.mtime),
                    )
                ]
            )
            self._checkpoint(save)
            return

        block_keys = await self._index_blocks(file, file_key, contents)

        embed_input = file_embed_input(file.path, contents)
        file_hash = content_hash(embed_input)
        existing_hash = self._store.get_hash(file_key)
        if existing_hash and existing_hash == file_hash:
            self._skip_file(file_key, block_keys, embed_input)
            return

        existing_blocks = self._store.get_children(file_key)
        has_all_blocks = True
        if existing_blocks and block_keys:
            current = set(block_keys)
            has_all_blocks = all(key in current for key in existing_blocks)
        if has_all_blocks:
            prev_size = self._store.get_size(file_key)
            if prev_size and file.size > 0:
                delta_pct = round(abs(file.size - prev_size) / file.size * 100)
                if delta_pct < SIZE_DELTA_SKIP_PCT:
                    self.report.skipped_low_delta[file.name] = f"{delta_pct}%"
                    self._skip_file(file_key, block_keys, embed_input)
                    return

        meta = FileRecordMeta(
            path=file.path,
            mtime=file.mtime,
            hash=file_hash,
            size=file.size,
            children=tuple(block_keys),
        )
        await self._embed_batch([EmbeddingRequest(file_key, embed_input, meta)])
        self._checkpoint(save)

    async def _index_blocks(self, file: VaultFile, file_key: str, contents: str) -> list[str]:
        """Embed changed blocks of a note; return every current block key.

        Notes with fewer than two blocks are covered by the file embedding.
        """
        blocks = segment_blocks(
            contents,
            file.path,
            header_exclusions=self._settings.header_exclusions,
            skip_sections=self._settings.skip_sections,
        )
        if len(blocks) <= 1:
            return []

        block_keys: list[str] = []
        batch: list[EmbeddingRequest] = []
        since_save = 0
        for block in blocks:
            block_key = content_key(block.path)
            block_keys.append(block_key)
            if self._store.get_size(block_key) == len(block.text):
                continue
            if self._store.mtime_is_current(block_key, file.mtime):
                continue
            block_hash = content_hash(block.text)
            if self._store.get_hash(block_key) == block_hash:
                continue
            batch.append(
                EmbeddingRequest(
                    block_key,
                    block.text,
                    BlockRecordMeta(
                        path=block.path,
                        mtime=int(self._clock() * 1000),
                        hash=block_hash,
                        size=len(block.text),
                        parent=file_key,
                    ),
                )
            )
            if len(batch) >= BLOCK_BATCH_SIZE:
                await self._embed_batch(batch)
                since_save += len(batch)
                batch = []
                if since_save >= SAVE_EVERY_UNITS:
                    self._saver.schedule()
                    since_save = 0
        if batch:
            await self._embed_batch(batch)
        return block_keys

    def _skip_file(self, file_key: str, block_keys: list[str], embed_input: str) -> None:
        self.report.credit_cache(embed_input, has_blocks=bool(block_keys))
        # Keep newly embedded blocks from being swept as orphans.
        if self._store.get_children(file_key) != block_keys and self._store.update_children(
            file_key, block_keys
        ):
            self._saver.mark_dirty()

    def _checkpoint(self, save: bool) -> None:
        if save:
            self._saver.schedule()

    async def _read(self, path: str) -> str | None:
        try:
            return await self._vault.read(path)
        except (OSError, StorageError):
            logger.warning("Could not read %s, skipping", path, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    async def _embed_batch(self, requests: list[EmbeddingRequest]) -> bool:
        """Embed *requests* and save the vectors.  Returns False on failure.

        A failed batch records every path in it as failed; nothing raises.
        """
        if not requests:
            return True
        try:
            response = await self._request_embeddings([r.text for r in requests])
        except EmbeddingProviderError:
            logger.warning("Embedding batch of %d input(s) failed", len(requests), exc_info=True)
            self.report.failed_embeddings.extend(r.meta.path for r in requests)
            return False

        if len(response.vectors) != len(requests):
            logger.warning(
                "Provider returned %d vectors for %d inputs", len(response.vectors), len(requests)
            )
        saved = 0
        for i, request in enumerate(requests):
            vec = response.vectors[i] if i < len(response.vectors) else None
            if not vec:
                self.report.failed_embeddings.append(request.meta.path)
                continue
            self._store.save_embedding(request.key, vec, request.meta)
            saved += 1
            if self._settings.log_render_files:
                self.report.files.append(request.meta.path)
        if saved:
            self._saver.mark_dirty()
        self.report.new_embeddings += saved
        self.report.token_usage += response.total_tokens
        return saved == len(requests)

    async def embed_text(self, text: str) -> list[float] | None:
        """Embed a free-text query.  Returns None if the provider fails."""
        if not text:
            return None
        try:
            response = await self._request_embeddings([text])
        except EmbeddingProviderError:
            logger.warning("Could not embed query text", exc_info=True)
            return None
        if not response.vectors or not response.vectors[0]:
            return None
        self.report.token_usage += response.total_tokens
        return response.vectors[0]

    async def _request_embeddings(self, texts: list[str]) -> EmbeddingResponse:
        """Call the provider, backing off ``retries ** 2`` seconds on rate limits."""
        retries = 0
        while True:
            try:
                return await self._provider.embed(texts)
            except RateLimitError:
                if retries >= RATE_LIMIT_RETRIES:
                    raise
                retries += 1
                backoff = retries**2
                logger.info("Rate limited, retrying in %d seconds", backoff)
                await self._sleep(backoff)

    def _log_report(self) -> None:
        if not self._settings.log_render or self.report.new_embeddings == 0:
            return
        report = self.report
        logger.info(
            "Indexed %d files: %d new embeddings, %d tokens used, ~%d tokens saved by cache, "
            "%d deleted, %d failed, exclusions=%s",
            report.total_files,
            report.new_embeddings,
            report.token_usage,
            report.tokens_saved_by_cache,
            report.deleted_embeddings,
            len(report.failed_embeddings),
            dict(report.exclusions),
        )
