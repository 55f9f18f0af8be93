"""ConnectionFinder — nearest notes for a given note, with a result cache."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from vaultlink.config import Settings
from vaultlink.events import EventType
from vaultlink.types import NearestFilter, NearestResult
from vaultlink.utils import content_key

if TYPE_CHECKING:
    from collections.abc import Callable

    from vaultlink.events import EventBus, VaultEvent
    from vaultlink.indexer import Indexer
    from vaultlink.store import VecLite
    from vaultlink.types import VaultFile

logger = logging.getLogger(__name__)


class Excluded(Enum):
    """Sentinel returned for notes matched by an exclusion rule."""

    EXCLUDED = "excluded"

    def __repr__(self) -> str:
        return "EXCLUDED"


EXCLUDED = Excluded.EXCLUDED


@dataclass(frozen=True, slots=True)
class EmbeddingUnavailable:
    """Returned when a note's own vector could not be obtained."""

    path: str

    @property
    def message(self) -> str:
        return f"Error getting embeddings for: {self.path}"


ConnectionResult = list[NearestResult] | Excluded | EmbeddingUnavailable


class NearestCache:
    """Ranked results per note key, owned by a :class:`ConnectionFinder`."""

    def __init__(self) -> None:
        self._entries: dict[str, list[NearestResult]] = {}

    def get(self, key: str) -> list[NearestResult] | None:
        return self._entries.get(key)

    def set(self, key: str, results: list[NearestResult]) -> None:
        self._entries[key] = results

    def invalidate(self, key: str) -> bool:
        """Drop one entry. Return True if it was cached."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ConnectionFinder:
    """Finds the notes and blocks most similar to a given note.

    A note whose embedding is stale is indexed on demand before the search.
    Results are cached per note until invalidated.
    """

    def __init__(
        self,
        store: VecLite,
        indexer: Indexer,
        *,
        settings: Settings | None = None,
        cache: NearestCache | None = None,
    ) -> None:
        self._store = store
        self._indexer = indexer
        self._settings = settings or Settings()
        self._cache = cache if cache is not None else NearestCache()

    @property
    def cache(self) -> NearestCache:
        return self._cache

    async def find_connections(self, file: VaultFile) -> ConnectionResult:
        """Return *file*'s nearest neighbours, best first.

        Returns :data:`EXCLUDED` for excluded notes and
        :class:`EmbeddingUnavailable` when the note has no vector (e.g. the
        provider failed).  The note itself and its own blocks are never
        among the results.
        """
        key = content_key(file.path)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        exclusion = self._indexer.exclusion_for(file.path)
        if exclusion is not None:
            self._indexer.report.log_exclusion(exclusion)
            return EXCLUDED

        if not self._store.mtime_is_current(key, file.mtime) and not self._indexer.is_failed(
            file.path
        ):
            failures = self._indexer.report.failed_embeddings
            seen = len(failures)
            await self._indexer.index_file(file)
            if len(failures) > seen:
                await self._indexer.record_failures(failures[seen:])

        vec = self._store.get_vec(key)
        if vec is None:
            logger.warning("No embedding available for %s", file.path)
            return EmbeddingUnavailable(file.path)

        nearest = self._store.find_nearest(
            vec,
            NearestFilter(
                results_count=self._settings.results_count,
                skip_sections=self._settings.skip_sections,
                skip_key=key,
            ),
        )
        self._cache.set(key, nearest)
        return nearest

    async def search(self, text: str, filter: NearestFilter | None = None) -> list[NearestResult]:  # noqa: A002
        """Embed free *text* and return the nearest notes and blocks."""
        if filter is None:
            filter = NearestFilter(  # noqa: A001
                results_count=self._settings.results_count,
                skip_sections=self._settings.skip_sections,
            )
        vec = await self._indexer.embed_text(text)
        if vec is None:
            return []
        return self._store.find_nearest(vec, filter)

    def invalidate(self, path: str) -> bool:
        """Forget cached results for the note at *path*."""
        return self._cache.invalidate(content_key(path))

    def attach(self, bus: EventBus) -> Callable[[], None]:
        """Keep the cache in step with vault events; returns an unsubscribe function.

        A modified note loses its own entry.  Deletes and renames clear the
        whole cache because other notes' results may point at the old path.
        """

        async def on_event(event: VaultEvent) -> None:
            if event.event_type is EventType.FILE_MODIFIED:
                for path in event.paths:
                    self.invalidate(path)
            else:
                self._cache.clear()

        return bus.subscribe(on_event)
