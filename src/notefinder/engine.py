"""Engine handle exposing the NoteFinder operations to CLI and HTTP callers."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from notefinder.config import AppConfig
from notefinder.embedding.encoder import FeatureEmbedder
from notefinder.errors import NoteFinderError, NotFoundError, ValidationError
from notefinder.index.collections import CollectionRegistry
from notefinder.index.indexer import Indexer, IndexStats
from notefinder.index.search import Searcher, SearchResponse
from notefinder.index.storage import SQLiteDocumentStore
from notefinder.models import Collection, CollectionStats, Document, DocumentView, StoreStats

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingStats:
    generated: int = 0
    failed: int = 0


def embedding_text(document: Document, max_chars: int = 8000) -> str:
    text = f"{document.title}\n{document.content}" if document.title else document.content
    return text[:max_chars]


class SearchEngine:
    """Explicit handle over one store location.

    Usage::

        with SearchEngine(AppConfig(db_path=Path("index.db"))) as engine:
            engine.add_collection("notes", "~/notes")
            engine.generate_embeddings()
            response = engine.search("api key")
    """

    def __init__(self, config: AppConfig | None = None) -> None:
        self.config = config or AppConfig()
        self.db_path = self.config.resolve_db_path(Path.cwd())
        self.embedder = FeatureEmbedder()
        self._store: SQLiteDocumentStore | None = None
        self._indexer: Indexer | None = None
        self._registry: CollectionRegistry | None = None
        self._searcher: Searcher | None = None

    def open(self) -> "SearchEngine":
        if self._store is not None:
            return self
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._store = SQLiteDocumentStore(self.db_path, dimension=self.embedder.dimension)
        self._indexer = Indexer(self._store)
        self._registry = CollectionRegistry(self._store, self._indexer)
        self._searcher = Searcher(
            self.embedder, self._store, snippet_chars=self.config.snippet_chars
        )
        LOGGER.debug("Opened store at %s", self.db_path)
        return self

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
        self._store = None
        self._indexer = None
        self._registry = None
        self._searcher = None

    def __enter__(self) -> "SearchEngine":
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def store(self) -> SQLiteDocumentStore:
        if self._store is None:
            raise NoteFinderError("Search engine is not open")
        return self._store

    @property
    def registry(self) -> CollectionRegistry:
        if self._registry is None:
            raise NoteFinderError("Search engine is not open")
        return self._registry

    @property
    def searcher(self) -> Searcher:
        if self._searcher is None:
            raise NoteFinderError("Search engine is not open")
        return self._searcher

    # Collections

    def add_collection(self, name: str, path: Path | str, mask: str | None = None) -> Collection:
        return self.registry.add(name, path, mask or self.config.default_mask)

    def remove_collection(self, name: str) -> None:
        self.registry.remove(name)

    def list_collections(self) -> List[Collection]:
        return self.registry.list()

    def index_collection(self, name: str) -> IndexStats:
        return self.registry.indexer.index_collection(name)

    def update_collections(self) -> Dict[str, IndexStats]:
        return self.registry.update_all()

    def collection_stats(self, name: str) -> CollectionStats | None:
        return self.registry.stats(name)

    # Embeddings

    def generate_embeddings(self, force: bool = False) -> EmbeddingStats:
        """Embed documents lacking an embedding, or every document with ``force``.

        Each batch is embedded against corpus statistics built from that batch
        and committed on its own; the pass as a whole is not atomic.
        """
        documents = self.store.documents_missing_embeddings(force=force)
        LOGGER.info("Processing %d documents...", len(documents))
        stats = EmbeddingStats()
        batch_size = max(1, self.config.embed_batch_size)

        for start in range(0, len(documents), batch_size):
            batch = documents[start : start + batch_size]
            texts = [embedding_text(doc, self.config.embed_max_chars) for doc in batch]
            vectors = self.embedder.embed_batch(texts)
            for document, vector in zip(batch, vectors):
                try:
                    self.store.upsert_embedding(document.id, vector)
                except (ValueError, sqlite3.IntegrityError) as exc:
                    LOGGER.error("Error embedding document %s: %s", document.id, exc)
                    stats.failed += 1
                    continue
                stats.generated += 1

        LOGGER.info("Embeddings complete: %d generated, %d failed", stats.generated, stats.failed)
        return stats

    # Queries

    def search(
        self,
        query: str,
        *,
        mode: str = "hybrid",
        limit: int | None = None,
        collection: str | None = None,
        min_score: float = 0.0,
    ) -> SearchResponse:
        if collection is not None:
            self.registry.get(collection)
        return self.searcher.search(
            query,
            mode=mode,
            limit=limit if limit is not None else self.config.default_limit,
            collection=collection,
            min_score=min_score,
        )

    def get_document(
        self,
        identifier: str,
        *,
        max_lines: int | None = None,
        from_line: int = 1,
    ) -> DocumentView:
        """Fetch a document by ``#<id>`` or by (suffix of) its path."""
        if from_line < 1:
            raise ValidationError("from_line must be at least 1")
        if max_lines is not None and max_lines < 1:
            raise ValidationError("max_lines must be at least 1")

        if identifier.startswith("#"):
            document = self.store.get_document(identifier[1:])
        else:
            document = self.store.find_document(identifier)
        if document is None:
            raise NotFoundError(f"Document not found: {identifier}")

        content = document.content
        if max_lines is not None or from_line > 1:
            lines = content.split("\n")
            start = from_line - 1
            end = start + max_lines if max_lines is not None else len(lines)
            content = "\n".join(lines[start:end])

        return DocumentView(
            id=document.id,
            path=document.path,
            title=document.title,
            collection=document.collection,
            content=content,
        )

    def get_stats(self) -> StoreStats:
        return self.store.get_stats()

    def cleanup(self) -> int:
        return self.store.cleanup()
