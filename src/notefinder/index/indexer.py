"""Document indexing pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from notefinder.errors import NotFoundError, ValidationError
from notefinder.index.storage import SQLiteDocumentStore
from notefinder.ingestion.markdown_loader import load_document
from notefinder.models import Document
from notefinder.utils.files import document_id, iter_collection_files, modified_millis

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexStats:
    indexed: int = 0
    skipped: int = 0
    removed: int = 0
    failed: int = 0
    processed_files: list[Path] = field(default_factory=list)
    error: str | None = None

    def increment(self, status: str, path: Path) -> None:
        if status == "indexed":
            self.indexed += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


class Indexer:
    """Scans a collection's files and keeps the store in step with disk."""

    def __init__(self, store: SQLiteDocumentStore) -> None:
        self.store = store

    def index_collection(self, name: str) -> IndexStats:
        """Index every file of collection ``name``.

        All upserts and removals of one scan are committed together; files
        that cannot be read or parsed are logged and counted as failed.
        """
        collection = self.store.get_collection(name)
        if collection is None:
            raise NotFoundError(f'Collection "{name}" not found')
        if not collection.path.is_dir():
            raise ValidationError(f"Path is not a directory: {collection.path}")

        LOGGER.info("Indexing collection %s (%s)", collection.name, collection.path)
        files = list(iter_collection_files(collection.path, collection.mask))
        LOGGER.info("Found %d files to index", len(files))

        stats = IndexStats()
        with self.store.transaction():
            existing = {
                str(doc.path): doc for doc in self.store.documents_for_collection(collection.name)
            }
            seen: set[str] = set()

            for path in files:
                seen.add(str(path))
                try:
                    status = self._index_single(path, collection.name, existing.get(str(path)))
                except (OSError, ValueError) as exc:
                    LOGGER.error("Failed to index %s: %s", path, exc)
                    status = "failed"
                stats.increment(status, path)

            removed = [doc.id for doc_path, doc in existing.items() if doc_path not in seen]
            if removed:
                stats.removed = self.store.delete_documents(removed)
                LOGGER.info("Removed %d deleted files", stats.removed)

        LOGGER.info("Indexed %d files, skipped %d unchanged", stats.indexed, stats.skipped)
        return stats

    def _index_single(self, path: Path, collection: str, existing: Document | None) -> str:
        modified_at = modified_millis(path)
        if existing is not None and existing.modified_at >= modified_at:
            return "skipped"

        parsed = load_document(path)
        document = Document(
            id=document_id(path, modified_at),
            path=path,
            title=parsed.title,
            content=parsed.content,
            collection=collection,
            size=path.stat().st_size,
            modified_at=modified_at,
        )
        self.store.upsert_document(document)
        LOGGER.debug("Indexed %s as %s", path, document.id)
        return "indexed"
