"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MASK = "**/*.{md,txt}"


def _get_default_db_path() -> Path:
    """Get the default database path under the user's cache directory."""
    cache_home = os.environ.get("XDG_CACHE_HOME")
    base = Path(cache_home) if cache_home else Path.home() / ".cache"
    return base / "notefinder" / "index.db"


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    default_mask: str = DEFAULT_MASK
    default_limit: int = 5
    embed_max_chars: int = 8000
    snippet_chars: int = 200
    embed_batch_size: int = 64

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
