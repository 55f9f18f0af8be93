"""Write coalescing for the vector store and the failed-file denylist."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from vaultlink.config import DEFAULT_FOLDER_PATH, DEFAULT_SAVE_DELAY

if TYPE_CHECKING:
    from collections.abc import Iterable

    from vaultlink.protocols import StorageAdapter
    from vaultlink.store import VecLite

logger = logging.getLogger(__name__)

FAILED_FILE_NAME = "failed-embeddings.txt"
_LINE_SEP = "\r\n"


class DebouncedSaver:
    """Coalesces store saves into one write per *delay* seconds.

    Mutations call :meth:`mark_dirty`; progress checkpoints call
    :meth:`schedule`, which (re)starts a timer.  :meth:`flush` writes
    immediately and :meth:`close` cancels the timer and flushes
    best-effort before teardown.
    """

    def __init__(self, store: VecLite, *, delay: float = DEFAULT_SAVE_DELAY) -> None:
        self._store = store
        self._delay = delay
        self._dirty = False
        self._timer: asyncio.Task[None] | None = None

    @property
    def dirty(self) -> bool:
        """True when the store has changes not yet written."""
        return self._dirty

    @property
    def pending(self) -> bool:
        """True while a delayed save is scheduled."""
        return self._timer is not None and not self._timer.done()

    def mark_dirty(self) -> None:
        self._dirty = True

    def schedule(self) -> None:
        """Restart the save timer if there is anything to save."""
        if not self._dirty:
            return
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._save_later())
        logger.debug("Scheduled save in %.1fs", self._delay)

    async def flush(self) -> bool:
        """Save now if dirty.  Returns True when a write happened.

        :class:`~vaultlink.exceptions.SaveGuardError` propagates; the store
        stays dirty so a later flush can try again.  Changes marked while
        the write is in flight keep the store dirty.
        """
        self._cancel_timer()
        if not self._dirty:
            return False
        self._dirty = False
        try:
            await self._store.save()
        except BaseException:
            self._dirty = True
            raise
        return True

    async def close(self) -> None:
        """Cancel any pending timer and flush best-effort."""
        self._cancel_timer()
        try:
            await self.flush()
        except Exception:
            logger.error("Final save of embeddings failed", exc_info=True)

    async def _save_later(self) -> None:
        await asyncio.sleep(self._delay)
        self._timer = None
        try:
            await self.flush()
        except Exception:
            logger.error("Scheduled save of embeddings failed", exc_info=True)

    def _cancel_timer(self) -> None:
        timer = self._timer
        if timer is None:
            return
        self._timer = None
        if timer is not asyncio.current_task() and not timer.done():
            timer.cancel()


class FailedFiles:
    """Paths whose embedding failed, persisted so sweeps do not retry them.

    Entries are stored one per line in ``failed-embeddings.txt``; block
    paths (``file#heading``) reduce to their file path on load.
    """

    def __init__(self, adapter: StorageAdapter, folder_path: str = DEFAULT_FOLDER_PATH) -> None:
        self._adapter = adapter
        self.folder_path = folder_path
        self.file_path = f"{folder_path}/{FAILED_FILE_NAME}"
        self._paths: list[str] = []

    @property
    def paths(self) -> list[str]:
        return list(self._paths)

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    async def load(self) -> list[str]:
        """Reload the denylist from disk and return the file paths in it."""
        if not await self._adapter.exists(self.file_path):
            self._paths = []
            return []
        raw = await self._adapter.read(self.file_path)
        unique: dict[str, None] = {}
        for entry in raw.split(_LINE_SEP):
            file_path = entry.split("#", 1)[0].strip()
            if file_path:
                unique.setdefault(file_path, None)
        self._paths = list(unique)
        return self.paths

    async def record(self, entries: Iterable[str]) -> None:
        """Merge *entries* into the file (deduplicated, sorted) and reload."""
        new_entries = [e for e in entries if e]
        if not new_entries:
            return
        existing: list[str] = []
        if await self._adapter.exists(self.file_path):
            existing = (await self._adapter.read(self.file_path)).split(_LINE_SEP)
        merged = sorted({e for e in existing + new_entries if e})
        if not await self._adapter.exists(self.folder_path):
            await self._adapter.mkdir(self.folder_path)
        await self._adapter.write(self.file_path, _LINE_SEP.join(merged))
        logger.warning("%d embedding inputs failed; recorded in %s", len(new_entries), self.file_path)
        await self.load()

    async def clear(self) -> None:
        """Forget every failure so the next sweep retries those files."""
        self._paths = []
        if await self._adapter.exists(self.file_path):
            await self._adapter.remove(self.file_path)


async def ensure_gitignored(adapter: StorageAdapter, folder_path: str = DEFAULT_FOLDER_PATH) -> bool:
    """Append *folder_path* to an existing ``.gitignore``.

    Returns True when the file was changed.  Does nothing if the vault has
    no ``.gitignore`` or already ignores the folder.
    """
    if not await adapter.exists(".gitignore"):
        return False
    contents = await adapter.read(".gitignore")
    if folder_path in contents:
        return False
    addition = (
        "\n\n# Ignore the embeddings folder: the file is large and updated frequently"
        f"\n{folder_path}"
    )
    await adapter.write(".gitignore", contents + addition)
    logger.info("Added %s to .gitignore", folder_path)
    return True
