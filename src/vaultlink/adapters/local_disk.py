"""LocalDiskAdapter — vault storage and enumeration over a host directory."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import tempfile
from pathlib import Path

from vaultlink.exceptions import PathTraversalError, StorageError
from vaultlink.types import FileStat, VaultFile
from vaultlink.utils import SUPPORTED_FILE_TYPES, normalize_path

logger = logging.getLogger(__name__)


class LocalDiskAdapter:
    """Direct disk access rooted at a vault directory.

    Implements both the ``StorageAdapter`` protocol (used by the vector store
    for its JSON file) and the ``VaultSource`` protocol (used by the indexer
    to enumerate and read notes).  Paths are vault-relative POSIX strings.

    Security: _resolve_path() ensures all paths stay within vault_dir,
    preventing path traversal attacks.
    """

    def __init__(self, vault_dir: Path | str) -> None:
        self.vault_dir = Path(vault_dir).resolve()

        if not self.vault_dir.exists():
            raise FileNotFoundError(f"Vault directory does not exist: {self.vault_dir}")
        if not self.vault_dir.is_dir():
            raise NotADirectoryError(f"Vault path is not a directory: {self.vault_dir}")

    # =========================================================================
    # Path Resolution & Security
    # =========================================================================

    def _resolve_path(self, path: str) -> Path:
        """Resolve a vault-relative path to a physical path on disk."""
        rel = normalize_path(path)
        if not rel:
            return self.vault_dir

        resolved = (self.vault_dir / rel).resolve()

        try:
            resolved.relative_to(self.vault_dir)
        except ValueError:
            raise PathTraversalError(
                f"Path traversal detected: {path} resolves outside vault directory"
            ) from None

        return resolved

    def _to_vault_path(self, physical_path: Path) -> str:
        """Convert a physical path back to a vault-relative path."""
        return physical_path.relative_to(self.vault_dir).as_posix()

    # =========================================================================
    # StorageAdapter protocol
    # =========================================================================

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve_path(path).exists)

    async def mkdir(self, path: str) -> None:
        resolved = self._resolve_path(path)
        try:
            await asyncio.to_thread(resolved.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create directory {path}: {e}") from e

    async def read(self, path: str) -> str:
        resolved = self._resolve_path(path)
        try:
            return await asyncio.to_thread(resolved.read_text, "utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Cannot read file {path}: {e}") from e

    async def write(self, path: str, contents: str) -> None:
        resolved = self._resolve_path(path)
        try:
            await asyncio.to_thread(self._atomic_write, resolved, contents)
        except OSError as e:
            raise StorageError(f"Cannot write file {path}: {e}") from e

    async def rename(self, old_path: str, new_path: str) -> None:
        src = self._resolve_path(old_path)
        dest = self._resolve_path(new_path)
        try:
            await asyncio.to_thread(os.replace, src, dest)
        except OSError as e:
            raise StorageError(f"Cannot rename {old_path} to {new_path}: {e}") from e

    async def stat(self, path: str) -> FileStat:
        resolved = self._resolve_path(path)
        try:
            st = await asyncio.to_thread(resolved.stat)
        except OSError as e:
            raise StorageError(f"Cannot stat {path}: {e}") from e
        return FileStat(size=st.st_size, mtime=st.st_mtime * 1000)

    async def remove(self, path: str) -> None:
        resolved = self._resolve_path(path)
        try:
            await asyncio.to_thread(resolved.unlink)
        except OSError as e:
            raise StorageError(f"Cannot remove {path}: {e}") from e

    # =========================================================================
    # VaultSource protocol
    # =========================================================================

    async def list_files(self) -> list[VaultFile]:
        """Return every markdown and canvas file, skipping hidden folders."""
        return await asyncio.to_thread(self._walk)

    def _walk(self) -> list[VaultFile]:
        files: list[VaultFile] = []
        for root, dirs, names in os.walk(self.vault_dir):
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            for name in sorted(names):
                if name.startswith("."):
                    continue
                physical = Path(root) / name
                if physical.suffix.lstrip(".").lower() not in SUPPORTED_FILE_TYPES:
                    continue
                try:
                    st = physical.stat()
                except OSError:
                    logger.debug("Skipping unreadable file %s", physical, exc_info=True)
                    continue
                files.append(
                    VaultFile(
                        path=self._to_vault_path(physical),
                        mtime=st.st_mtime * 1000,
                        size=st.st_size,
                    )
                )
        return files

    # =========================================================================
    # Internal
    # =========================================================================

    @staticmethod
    def _atomic_write(target: Path, contents: str) -> None:
        """Write content to *target*. Atomic via tempfile + replace."""
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(contents)
            Path(tmp_path).replace(target)
        except Exception:
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise
