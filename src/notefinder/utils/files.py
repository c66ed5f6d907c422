"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Iterator, List

from notefinder.errors import ValidationError

EXCLUDED_DIRS = frozenset({"node_modules"})

_BRACE_RE = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` groups in a glob pattern into separate patterns.

    ``"**/*.{md,txt}"`` becomes ``["**/*.md", "**/*.txt"]``. Nested groups are
    expanded innermost first.
    """
    match = _BRACE_RE.search(pattern)
    if match is None:
        if "{" in pattern or "}" in pattern:
            raise ValidationError(f"Invalid glob pattern: {pattern}")
        return [pattern]

    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: List[str] = []
    for option in match.group(1).split(","):
        for candidate in expand_braces(head + option + tail):
            if candidate not in expanded:
                expanded.append(candidate)
    return expanded


def validate_mask(root: Path, mask: str) -> List[str]:
    """Return the expanded patterns of ``mask`` or raise ``ValidationError``."""
    if not mask or not mask.strip():
        raise ValidationError("Glob mask must not be empty")
    if mask.startswith("/") or Path(mask).is_absolute():
        raise ValidationError(f"Glob mask must be relative: {mask}")

    patterns = expand_braces(mask)
    for pattern in patterns:
        try:
            next(root.glob(pattern), None)
        except (ValueError, NotImplementedError) as exc:
            raise ValidationError(f"Invalid glob pattern: {mask}") from exc
    return patterns


def _is_excluded(relative: Path) -> bool:
    for part in relative.parts:
        if part.startswith(".") or part in EXCLUDED_DIRS:
            return True
    return False


def iter_collection_files(root: Path, mask: str) -> Iterator[Path]:
    """Yield files under ``root`` matching ``mask`` in sorted order.

    Hidden files, anything under a hidden directory (``.git`` included) and
    ``node_modules`` are skipped.
    """
    seen: set[Path] = set()
    for pattern in validate_mask(root, mask):
        for candidate in root.glob(pattern):
            if candidate in seen or not candidate.is_file():
                continue
            if _is_excluded(candidate.relative_to(root)):
                continue
            seen.add(candidate)
    yield from sorted(seen)


def modified_millis(path: Path) -> int:
    """Modification time of ``path`` in whole milliseconds."""
    return path.stat().st_mtime_ns // 1_000_000


def document_id(path: Path | str, modified_at: int) -> str:
    """Deterministic 8-hex-char id derived from path and modification time."""
    sha = hashlib.sha256()
    sha.update(str(path).encode("utf-8"))
    sha.update(str(modified_at).encode("utf-8"))
    return sha.hexdigest()[:8]
