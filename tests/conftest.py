"""Shared fixtures for vaultlink tests."""

from __future__ import annotations

import hashlib
import math
import posixpath
import re
from typing import TYPE_CHECKING

import pytest

from vaultlink.config import Settings
from vaultlink.exceptions import EmbeddingProviderError, RateLimitError, StorageError
from vaultlink.persistence import DebouncedSaver, FailedFiles
from vaultlink.store import VecLite
from vaultlink.types import EmbeddingResponse, FileStat, VaultFile

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_FAKE_DIM = 256
_WORD_RE = re.compile(r"\w+")


# ------------------------------------------------------------------
# In-memory host
# ------------------------------------------------------------------


class MemoryAdapter:
    """Storage adapter and vault source over a dict of path -> text."""

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.mtimes: dict[str, float] = {}
        self.dirs: set[str] = set()
        self.writes: list[str] = []
        self.read_failures = 0

    def put(self, path: str, text: str, *, mtime: float = 1_000.0) -> VaultFile:
        self.files[path] = text
        self.mtimes[path] = mtime
        return self.vault_file(path)

    def vault_file(self, path: str) -> VaultFile:
        return VaultFile(
            path=path,
            mtime=self.mtimes.get(path, 1_000.0),
            size=len(self.files[path].encode()),
        )

    async def exists(self, path: str) -> bool:
        return path in self.files or path in self.dirs

    async def mkdir(self, path: str) -> None:
        self.dirs.add(path)

    async def read(self, path: str) -> str:
        if self.read_failures:
            self.read_failures -= 1
            raise StorageError(f"transient failure reading {path}")
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    async def write(self, path: str, contents: str) -> None:
        self.files[path] = contents
        self.writes.append(path)

    async def rename(self, old_path: str, new_path: str) -> None:
        self.files[new_path] = self.files.pop(old_path)

    async def stat(self, path: str) -> FileStat:
        return FileStat(size=len(self.files[path].encode()))

    async def remove(self, path: str) -> None:
        del self.files[path]

    async def list_files(self) -> list[VaultFile]:
        return [
            self.vault_file(path)
            for path in sorted(self.files)
            if not path.startswith(".")
            and posixpath.splitext(path)[1] in (".md", ".canvas")
        ]


# ------------------------------------------------------------------
# Fake provider
# ------------------------------------------------------------------


class FakeProvider:
    """Deterministic bag-of-words embedding provider.

    Each word is hashed into one of ``_FAKE_DIM`` buckets, so texts sharing
    most of their words get a high cosine similarity.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.fail_on: set[str] = set()
        self.rate_limits = 0

    async def embed(self, texts: list[str]) -> EmbeddingResponse:
        self.calls.append(list(texts))
        if self.rate_limits:
            self.rate_limits -= 1
            raise RateLimitError("429 Too Many Requests")
        for text in texts:
            for marker in self.fail_on:
                if marker in text:
                    raise EmbeddingProviderError(f"rejected input containing {marker!r}")
        return EmbeddingResponse(
            vectors=[self.vector(t) for t in texts],
            total_tokens=sum(len(t) // 4 for t in texts),
        )

    @property
    def model_name(self) -> str:
        return "fake-bag-of-words"

    @property
    def embedded_texts(self) -> list[str]:
        return [t for call in self.calls for t in call]

    @staticmethod
    def vector(text: str) -> list[float]:
        raw = [0.0] * _FAKE_DIM
        for word in _WORD_RE.findall(text.lower()):
            bucket = int(hashlib.sha256(word.encode()).hexdigest(), 16) % _FAKE_DIM
            raw[bucket] += 1.0
        norm = math.sqrt(sum(x * x for x in raw))
        return [x / norm for x in raw] if norm else raw


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture
def adapter() -> MemoryAdapter:
    return MemoryAdapter()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def store(adapter: MemoryAdapter, sleep: RecordingSleep) -> VecLite:
    return VecLite(adapter, sleep=sleep, clock=lambda: 1_700_000_000.0)


@pytest.fixture
async def saver(store: VecLite) -> AsyncIterator[DebouncedSaver]:
    s = DebouncedSaver(store, delay=30.0)
    yield s
    await s.close()


@pytest.fixture
def failed_files(adapter: MemoryAdapter) -> FailedFiles:
    return FailedFiles(adapter)
