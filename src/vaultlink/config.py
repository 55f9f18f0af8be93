"""Settings for indexing and connection finding."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_FOLDER_PATH = ".smart-connections"
DEFAULT_FILE_NAME = "embeddings-3.json"
DEFAULT_EMBEDDING_MODEL = "text-embedding-ada-002"
DEFAULT_RESULTS_COUNT = 30
DEFAULT_SAVE_DELAY = 30.0
OPENAI_ENV = "OPENAI_API_KEY"


def _split_csv(raw: object) -> tuple[str, ...]:
    """Accept ``"a, b"`` or ``["a", "b"]`` and return trimmed, non-empty entries."""
    if raw is None:
        return ()
    if isinstance(raw, str):
        items: list[object] = list(raw.split(","))
    elif isinstance(raw, (list, tuple)):
        items = list(raw)
    else:
        msg = f"Expected a comma-separated string or a list, got {type(raw).__name__}"
        raise TypeError(msg)
    return tuple(s for s in (str(item).strip() for item in items) if s)


@dataclass(frozen=True, slots=True)
class Settings:
    """User-facing configuration.

    Attributes:
        api_key: Embedding provider API key.
        file_exclusions: Substrings; matching file paths are never indexed.
            Folder exclusions are merged in with a trailing ``/``.
        header_exclusions: Substrings; matching heading paths are not
            indexed as blocks.
        path_only: Substrings; matching files are embedded by path only.
        skip_sections: Disable block-level indexing and block results.
        results_count: Number of connections returned per note.
        embedding_model: Provider model name.
        folder_path: Vault folder holding the embeddings file.
        file_name: Embeddings file name.
        save_delay: Seconds to coalesce store writes over.
        log_render: Log an indexing report after each sweep.
        log_render_files: Include embedded file paths in that report.
    """

    api_key: str = ""
    file_exclusions: tuple[str, ...] = ()
    header_exclusions: tuple[str, ...] = ()
    path_only: tuple[str, ...] = ()
    skip_sections: bool = False
    results_count: int = DEFAULT_RESULTS_COUNT
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    folder_path: str = DEFAULT_FOLDER_PATH
    file_name: str = DEFAULT_FILE_NAME
    save_delay: float = DEFAULT_SAVE_DELAY
    log_render: bool = False
    log_render_files: bool = False
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        """Build settings from the plugin's ``data.json`` shape.

        Comma-separated strings and lists are both accepted.  Unknown keys
        are kept in ``extra``.
        """
        known = {f.name for f in fields(cls)}
        folder_exclusions = tuple(
            folder if folder.endswith("/") else folder + "/"
            for folder in _split_csv(raw.get("folder_exclusions"))
        )
        kwargs: dict[str, Any] = {
            "file_exclusions": _split_csv(raw.get("file_exclusions")) + folder_exclusions,
            "header_exclusions": _split_csv(raw.get("header_exclusions")),
            "path_only": _split_csv(raw.get("path_only")),
        }
        for name in ("api_key", "embedding_model", "folder_path", "file_name"):
            if raw.get(name):
                kwargs[name] = str(raw[name])
        for name in ("skip_sections", "log_render", "log_render_files"):
            if name in raw:
                kwargs[name] = bool(raw[name])
        if raw.get("results_count") is not None:
            kwargs["results_count"] = max(int(raw["results_count"]), 1)
        if raw.get("save_delay") is not None:
            kwargs["save_delay"] = max(float(raw["save_delay"]), 0.0)
        kwargs["extra"] = {
            k: v for k, v in raw.items() if k not in known and k != "folder_exclusions"
        }
        settings = cls(**kwargs)
        if not settings.api_key and os.environ.get(OPENAI_ENV):
            settings = cls(**{**kwargs, "api_key": os.environ[OPENAI_ENV]})
        return settings

    @property
    def embeddings_path(self) -> str:
        return f"{self.folder_path}/{self.file_name}"


def load_settings(path: Path | str) -> Settings:
    """Load settings from a JSON file; a missing file yields defaults."""
    config_path = Path(path)
    if not config_path.exists():
        logger.debug("No settings file at %s, using defaults", config_path)
        return Settings.from_dict({})
    raw = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        msg = f"Settings file must contain a JSON object: {config_path}"
        raise ValueError(msg)
    return Settings.from_dict(raw)
