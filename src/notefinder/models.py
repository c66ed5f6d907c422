"""Core NoteFinder data models."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class Collection:
    """A named directory tree indexed with a glob mask."""

    name: str
    path: Path
    mask: str
    created_at: int = 0
    updated_at: int = 0
    file_count: int = 0


@dataclass(slots=True)
class Document:
    """One indexed file: metadata plus cleaned text."""

    id: str
    path: Path
    title: str
    content: str
    collection: str
    size: int
    modified_at: int
    indexed_at: int | None = None


@dataclass(slots=True)
class DocumentView:
    """Document returned to callers, content optionally sliced by lines."""

    id: str
    path: Path
    title: str
    collection: str
    content: str


@dataclass(slots=True)
class StoreStats:
    collections: int
    documents: int
    embeddings: int
    db_size_bytes: int


@dataclass(slots=True)
class CollectionStats:
    documents: int
    avg_size: int
    total_size: int
    latest_modified: int | None
    earliest_modified: int | None
