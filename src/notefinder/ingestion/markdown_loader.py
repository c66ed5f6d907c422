"""Markdown and plain-text loading.

Extracts a title and a cleaned body from a text file. Titles come from the
first five lines (ATX heading, setext heading, then frontmatter ``title:``),
falling back to a prettified file name.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List

from notefinder.utils.text import normalize_content

TITLE_SCAN_LINES = 5
FRONTMATTER_DELIMITER = "---"

_SETEXT_RE = re.compile(r"^=+$")
_TITLE_KEY_RE = re.compile(r"^title:\s*(.+)$", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"[-_]")
_WORD_START_RE = re.compile(r"\b\w")


@dataclass(slots=True)
class ParsedDocument:
    title: str
    content: str


def title_from_filename(path: Path) -> str:
    """``api-key_rotation.md`` -> ``Api Key Rotation``."""
    spaced = _SEPARATOR_RE.sub(" ", path.stem)
    return _WORD_START_RE.sub(lambda match: match.group(0).upper(), spaced)


def _frontmatter_end(lines: List[str]) -> int | None:
    """Index of the closing ``---`` line of a leading frontmatter block."""
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        return None
    for index in range(1, len(lines)):
        if lines[index].strip() == FRONTMATTER_DELIMITER:
            return index
    return None


def parse_document(text: str, path: Path) -> ParsedDocument:
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    fm_end = _frontmatter_end(lines)

    heading: str | None = None
    frontmatter_title: str | None = None
    content_start = 0

    for index in range(min(TITLE_SCAN_LINES, len(lines))):
        line = lines[index].strip()

        if fm_end is not None and index <= fm_end:
            if 0 < index < fm_end and frontmatter_title is None:
                match = _TITLE_KEY_RE.match(line)
                if match:
                    frontmatter_title = match.group(1).replace('"', "").replace("'", "").strip()
            continue

        if line.startswith("# "):
            heading = line[2:].strip()
            content_start = index + 1
            break

        if line and index + 1 < len(lines) and _SETEXT_RE.match(lines[index + 1].strip()):
            heading = line
            content_start = index + 2
            break

    title = heading or frontmatter_title or title_from_filename(path)

    body_lines = lines[content_start:]
    body_fm_end = _frontmatter_end(body_lines)
    if body_fm_end is not None:
        body_lines = body_lines[body_fm_end + 1 :]

    return ParsedDocument(title=title, content=normalize_content("\n".join(body_lines)))


def load_document(path: Path) -> ParsedDocument:
    """Read ``path`` as UTF-8 and parse it.

    Raises ``OSError`` for unreadable files and ``UnicodeDecodeError`` for
    binary content; the indexer treats both as per-file failures.
    """
    text = path.read_text(encoding="utf-8")
    return parse_document(text, path)
