"""Tests for DebouncedSaver, FailedFiles and the .gitignore helper."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from vaultlink.exceptions import SaveGuardError
from vaultlink.persistence import DebouncedSaver, FailedFiles, ensure_gitignored
from vaultlink.types import FileRecordMeta

STORE_PATH = ".smart-connections/embeddings-3.json"
FAILED_PATH = ".smart-connections/failed-embeddings.txt"


def _store_writes(adapter) -> int:
    return adapter.writes.count(STORE_PATH)


# ==================================================================
# DebouncedSaver
# ==================================================================


class TestDebouncedSaver:
    async def test_flush_when_clean_does_nothing(self, store, adapter):
        saver = DebouncedSaver(store, delay=0.01)
        assert not await saver.flush()
        assert adapter.writes == []

    async def test_flush_writes_when_dirty(self, store, adapter):
        saver = DebouncedSaver(store, delay=0.01)
        store.save_embedding("k", [1.0], FileRecordMeta(path="a.md"))
        saver.mark_dirty()

        assert await saver.flush()

        assert not saver.dirty
        assert "k" in json.loads(adapter.files[STORE_PATH])

    async def test_schedule_without_changes_is_noop(self, store):
        saver = DebouncedSaver(store, delay=0.01)
        saver.schedule()
        assert not saver.pending

    async def test_scheduled_saves_coalesce(self, store, adapter):
        adapter.files[STORE_PATH] = "{}"
        saver = DebouncedSaver(store, delay=0.01)
        store.save_embedding("k", [1.0], FileRecordMeta(path="a.md"))
        saver.mark_dirty()

        saver.schedule()
        saver.schedule()
        saver.schedule()
        assert saver.pending
        await asyncio.sleep(0.05)

        assert not saver.pending
        assert not saver.dirty
        assert _store_writes(adapter) == 1

    async def test_close_flushes_pending(self, store, adapter):
        saver = DebouncedSaver(store, delay=60.0)
        store.save_embedding("k", [1.0], FileRecordMeta(path="a.md"))
        saver.mark_dirty()
        saver.schedule()

        await saver.close()

        assert not saver.pending
        assert "k" in json.loads(adapter.files[STORE_PATH])

    async def test_changes_during_write_are_saved_later(self, store, adapter):
        adapter.files[STORE_PATH] = "{}"
        saver = DebouncedSaver(store, delay=60.0)
        entered = asyncio.Event()
        release = asyncio.Event()
        write = adapter.write

        async def blocking_write(path: str, contents: str) -> None:
            entered.set()
            await release.wait()
            await write(path, contents)

        adapter.write = blocking_write
        store.save_embedding("b", [1.0], FileRecordMeta(path="b.md"))
        saver.mark_dirty()
        flush = asyncio.create_task(saver.flush())
        await entered.wait()

        store.save_embedding("c", [1.0], FileRecordMeta(path="c.md"))
        saver.mark_dirty()
        release.set()

        assert await flush
        assert saver.dirty
        assert set(json.loads(adapter.files[STORE_PATH])) == {"b"}

        adapter.write = write
        await saver.close()

        assert not saver.dirty
        assert set(json.loads(adapter.files[STORE_PATH])) == {"b", "c"}

    async def test_flush_propagates_save_guard(self, store, adapter):
        big = {f"k{i}": {"vec": [0.1] * 20, "meta": {"path": f"n{i}.md"}} for i in range(50)}
        adapter.files[STORE_PATH] = json.dumps(big)
        saver = DebouncedSaver(store, delay=0.01)
        store.save_embedding("k", [1.0], FileRecordMeta(path="a.md"))
        saver.mark_dirty()

        with pytest.raises(SaveGuardError):
            await saver.flush()
        assert saver.dirty

    async def test_close_logs_save_guard(self, store, adapter, caplog):
        big = {f"k{i}": {"vec": [0.1] * 20, "meta": {"path": f"n{i}.md"}} for i in range(50)}
        adapter.files[STORE_PATH] = json.dumps(big)
        saver = DebouncedSaver(store, delay=0.01)
        saver.mark_dirty()

        with caplog.at_level(logging.ERROR, logger="vaultlink.persistence"):
            await saver.close()

        assert "Final save of embeddings failed" in caplog.text


# ==================================================================
# FailedFiles
# ==================================================================


class TestFailedFiles:
    async def test_load_without_file(self, failed_files):
        assert await failed_files.load() == []
        assert len(failed_files) == 0

    async def test_record_writes_sorted_crlf(self, failed_files, adapter):
        await failed_files.record(["b.md", "a.md#Heading", "b.md"])

        assert adapter.files[FAILED_PATH] == "a.md#Heading\r\nb.md"
        assert ".smart-connections" in adapter.dirs
        assert failed_files.paths == ["a.md", "b.md"]
        assert "a.md" in failed_files

    async def test_record_merges_with_existing(self, failed_files, adapter):
        await failed_files.record(["c.md"])
        await failed_files.record(["a.md"])
        assert adapter.files[FAILED_PATH] == "a.md\r\nc.md"

    async def test_record_nothing(self, failed_files, adapter):
        await failed_files.record([])
        assert FAILED_PATH not in adapter.files

    async def test_load_existing(self, adapter):
        adapter.files[FAILED_PATH] = "x.md#One\r\nx.md#Two\r\ny.md\r\n"
        failed = FailedFiles(adapter)
        assert await failed.load() == ["x.md", "y.md"]

    async def test_clear(self, failed_files, adapter):
        await failed_files.record(["a.md"])
        await failed_files.clear()

        assert FAILED_PATH not in adapter.files
        assert failed_files.paths == []

    async def test_custom_folder(self, adapter):
        failed = FailedFiles(adapter, "data")
        await failed.record(["a.md"])
        assert adapter.files["data/failed-embeddings.txt"] == "a.md"


# ==================================================================
# ensure_gitignored
# ==================================================================


class TestEnsureGitignored:
    async def test_no_gitignore(self, adapter):
        assert not await ensure_gitignored(adapter)
        assert ".gitignore" not in adapter.files

    async def test_appends_folder(self, adapter):
        adapter.files[".gitignore"] = "node_modules"

        assert await ensure_gitignored(adapter)

        contents = adapter.files[".gitignore"]
        assert contents.startswith("node_modules\n\n# ")
        assert contents.endswith("\n.smart-connections")

    async def test_already_ignored(self, adapter):
        adapter.files[".gitignore"] = ".smart-connections\n"
        assert not await ensure_gitignored(adapter)
        assert adapter.writes == []
