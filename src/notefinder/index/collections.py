"""Collection registry: which directory trees are indexed, and how."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

from notefinder.config import DEFAULT_MASK
from notefinder.errors import NoteFinderError, NotFoundError, ValidationError
from notefinder.index.indexer import Indexer, IndexStats
from notefinder.index.storage import SQLiteDocumentStore
from notefinder.models import Collection, CollectionStats
from notefinder.utils.files import validate_mask

LOGGER = logging.getLogger(__name__)


class CollectionRegistry:
    def __init__(self, store: SQLiteDocumentStore, indexer: Indexer) -> None:
        self.store = store
        self.indexer = indexer

    def validate(self, path: Path | str, mask: str) -> Path:
        """Resolve ``path`` and check it together with ``mask``."""
        absolute = Path(path).expanduser().resolve()
        if not absolute.exists():
            raise ValidationError(f"Path does not exist: {absolute}")
        if not absolute.is_dir():
            raise ValidationError(f"Path is not a directory: {absolute}")
        validate_mask(absolute, mask)
        return absolute

    def add(self, name: str, path: Path | str, mask: str = DEFAULT_MASK) -> Collection:
        """Register (or re-register) a collection and run its first index pass."""
        if not name or not name.strip():
            raise ValidationError("Collection name must not be empty")
        absolute = self.validate(path, mask)

        self.store.upsert_collection(name, absolute, mask)
        LOGGER.info("Added collection %s -> %s (%s)", name, absolute, mask)
        self.indexer.index_collection(name)
        return self.get(name)

    def remove(self, name: str) -> None:
        if not self.store.delete_collection(name):
            raise NotFoundError(f'Collection "{name}" not found')
        LOGGER.info("Removed collection %s", name)

    def get(self, name: str) -> Collection:
        collection = self.store.get_collection(name)
        if collection is None:
            raise NotFoundError(f'Collection "{name}" not found')
        return collection

    def list(self) -> List[Collection]:
        return self.store.list_collections()

    def update_all(self) -> Dict[str, IndexStats]:
        """Re-index every collection, then drop orphaned rows.

        A collection that cannot be indexed gets an ``IndexStats`` carrying
        the error and the remaining collections are still processed.
        """
        results: Dict[str, IndexStats] = {}
        for collection in self.store.list_collections():
            LOGGER.info("Updating collection: %s", collection.name)
            try:
                results[collection.name] = self.indexer.index_collection(collection.name)
            except NoteFinderError as exc:
                LOGGER.error("Failed to update collection %s: %s", collection.name, exc)
                results[collection.name] = IndexStats(error=str(exc))
        self.store.cleanup()
        return results

    def stats(self, name: str) -> CollectionStats | None:
        self.get(name)
        return self.store.collection_stats(name)
