"""SmartVault — async facade wiring store, indexer, and connection finder."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from vaultlink.adapters.local_disk import LocalDiskAdapter
from vaultlink.config import Settings
from vaultlink.connections import ConnectionFinder, NearestCache
from vaultlink.events import EventBus, EventType, VaultEvent
from vaultlink.indexer import Indexer
from vaultlink.persistence import DebouncedSaver, FailedFiles, ensure_gitignored
from vaultlink.store import VecLite

if TYPE_CHECKING:
    from vaultlink.connections import ConnectionResult
    from vaultlink.protocols import EmbeddingProvider, StorageAdapter, VaultSource
    from vaultlink.types import IndexReport, NearestFilter, NearestResult, VaultFile

logger = logging.getLogger(__name__)


class SmartVault:
    """Semantic connections for one vault.

    Local vault with the OpenAI provider::

        async with SmartVault("/path/to/vault", settings=load_settings("data.json")) as sv:
            await sv.index_all()
            nearest = await sv.find_connections(note)

    Host-supplied storage and provider::

        sv = SmartVault(adapter, provider=my_provider)
        await sv.open()
        ...
        await sv.close()

    *adapter* serves the store file and, unless *vault* is given, also lists
    and reads notes.
    """

    def __init__(
        self,
        adapter: StorageAdapter | Path | str,
        *,
        settings: Settings | None = None,
        provider: EmbeddingProvider | None = None,
        vault: VaultSource | None = None,
    ) -> None:
        if isinstance(adapter, (str, Path)):
            adapter = LocalDiskAdapter(adapter)
        self._settings = settings or Settings()
        self._adapter = adapter
        if vault is None:
            vault = adapter  # type: ignore[assignment]
        if provider is None:
            from vaultlink.providers.openai import OpenAIEmbedding

            provider = OpenAIEmbedding(
                api_key=self._settings.api_key or None,
                model=self._settings.embedding_model,
            )
        self._provider = provider
        self._closed = False
        self.loaded = False

        self._store = VecLite(
            adapter,
            folder_path=self._settings.folder_path,
            file_name=self._settings.file_name,
        )
        self._saver = DebouncedSaver(self._store, delay=self._settings.save_delay)
        self._failed = FailedFiles(adapter, self._settings.folder_path)
        self._indexer = Indexer(
            self._store,
            provider,
            vault,  # type: ignore[arg-type]
            settings=self._settings,
            saver=self._saver,
            failed_files=self._failed,
        )
        self._finder = ConnectionFinder(
            self._store,
            self._indexer,
            settings=self._settings,
            cache=NearestCache(),
        )
        self._events = EventBus()
        self._finder.attach(self._events)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> bool:
        """Load the store and the failed-file list.

        Returns False when there is no usable store yet (first run); the
        store then starts empty and :meth:`index_all` builds it.
        """
        self.loaded = await self._store.load()
        await self._failed.load()
        await ensure_gitignored(self._adapter, self._settings.folder_path)
        if not self.loaded:
            logger.info(
                "No embeddings loaded from %s; run a full index to build them",
                self._settings.embeddings_path,
            )
        return self.loaded

    async def close(self) -> None:
        """Flush pending store writes best-effort and release the provider."""
        if self._closed:
            return
        self._closed = True
        await self._saver.close()
        close = getattr(self._provider, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> SmartVault:
        await self.open()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def index_all(self, skip_paths: tuple[str, ...] = ()) -> IndexReport:
        return await self._indexer.index_all(skip_paths)

    async def find_connections(self, file: VaultFile) -> ConnectionResult:
        return await self._finder.find_connections(file)

    async def search(self, text: str, filter: NearestFilter | None = None) -> list[NearestResult]:  # noqa: A002
        return await self._finder.search(text, filter)

    async def retry_failed(self) -> IndexReport:
        """Clear the failed-file list and re-run a full sweep."""
        self._finder.cache.clear()
        return await self._indexer.retry_failed_files()

    async def force_refresh(self) -> IndexReport:
        """Archive the embeddings file, start empty, and rebuild everything."""
        await self._store.force_refresh()
        self._finder.cache.clear()
        logger.info("Embeddings file force-refreshed, rebuilding connections")
        return await self._indexer.index_all()

    async def notify(self, event_type: EventType, path: str, old_path: str | None = None) -> None:
        """Report a vault change so cached connections stay accurate."""
        await self._events.emit(VaultEvent(event_type, path, old_path))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def store(self) -> VecLite:
        return self._store

    @property
    def indexer(self) -> Indexer:
        return self._indexer

    @property
    def finder(self) -> ConnectionFinder:
        return self._finder

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def failed_files(self) -> FailedFiles:
        return self._failed
