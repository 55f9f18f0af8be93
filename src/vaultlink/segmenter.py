"""Block segmenter — split a note into heading-addressed sections.

A *block* is the body text under one heading path (``#H1#H2``).  Each block
is embedded on its own, in addition to the whole-file embedding, so that
connections can point at the relevant section of a long note.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from vaultlink.types import Block
from vaultlink.utils import MAX_EMBED_STRING_LENGTH, path_to_breadcrumbs

if TYPE_CHECKING:
    from collections.abc import Iterable

MIN_BLOCK_LENGTH = 50
_EMPTY_MARKERS = frozenset({"- ", "- [ ] "})
_FENCE = "```"


def is_heading(line: str) -> bool:
    """Return True for ``# H`` / ``## H`` lines (not ``#tag`` lines)."""
    return line.startswith("#") and len(line) > 1 and line[1] in ("#", " ")


def _heading_level(line: str) -> int:
    return len(line) - len(line.lstrip("#"))


def _heading_text(line: str) -> str:
    return line.lstrip("#").strip()


def extract_headings(markdown: str) -> list[tuple[int, str]]:
    """Return ``(level, heading)`` pairs in document order, skipping code fences."""
    headings: list[tuple[int, str]] = []
    in_code = False
    for line in markdown.split("\n"):
        if line.startswith(_FENCE):
            in_code = not in_code
            continue
        if not in_code and is_heading(line):
            headings.append((_heading_level(line), _heading_text(line)))
    return headings


def headings_outline(headings: Iterable[tuple[int, str]]) -> str:
    """Render headings back to markdown, one per line."""
    return "".join(f"{'#' * level} {text}\n" for level, text in headings)


@dataclass(slots=True)
class _Section:
    heading_path: str
    header_line: str
    body: list[str] = field(default_factory=list)


def segment_blocks(
    markdown: str,
    file_path: str,
    *,
    header_exclusions: tuple[str, ...] = (),
    skip_sections: bool = False,
) -> list[Block]:
    """Split *markdown* into blocks addressed by their heading path.

    Lines before the first heading belong to no block.  Empty lines and
    empty bullet/checkbox markers are ignored.  A block is dropped when it
    has no body, when its heading path contains any of
    *header_exclusions*, or when its trimmed body is shorter than
    ``MIN_BLOCK_LENGTH`` characters.  Repeated heading paths get a ``{N}``
    suffix.  Returns ``[]`` when *skip_sections* is set.
    """
    if skip_sections:
        return []

    breadcrumbs = path_to_breadcrumbs(file_path)
    blocks: list[Block] = []
    seen_paths: set[str] = set()
    stack: list[tuple[int, str]] = []
    current: _Section | None = None
    in_code = False

    def flush(section: _Section | None) -> None:
        if section is None or not section.body:
            return
        if any(exc in section.heading_path for exc in header_exclusions if exc):
            return
        body = "".join("\n" + line for line in section.body)
        if len(body.strip()) < MIN_BLOCK_LENGTH:
            return
        text = section.header_line + body
        if len(text) > MAX_EMBED_STRING_LENGTH:
            text = text[:MAX_EMBED_STRING_LENGTH]
        blocks.append(
            Block(
                text=text.strip(),
                heading_path=section.heading_path,
                path=file_path + section.heading_path,
                length=len(body),
            )
        )

    for line in markdown.split("\n"):
        if line.startswith(_FENCE):
            in_code = not in_code
        if in_code or line.startswith(_FENCE) or not is_heading(line):
            if line == "" or line in _EMPTY_MARKERS:
                continue
            if current is None:
                continue
            current.body.append(line)
            continue

        flush(current)

        level = _heading_level(line)
        stack = [(lvl, text) for lvl, text in stack if lvl < level]
        stack.append((level, _heading_text(line)))

        heading_path = "#" + "#".join(text for _, text in stack)
        if heading_path in seen_paths:
            count = 1
            while f"{heading_path}{{{count}}}" in seen_paths:
                count += 1
            heading_path = f"{heading_path}{{{count}}}"
        seen_paths.add(heading_path)

        current = _Section(
            heading_path=heading_path,
            header_line=f"{breadcrumbs}: " + " > ".join(text for _, text in stack),
        )

    flush(current)
    return blocks
