"""SQLite document store with an FTS5 keyword index and a vector table."""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

import numpy as np

from notefinder.embedding.encoder import DIMENSION, cosine_distance
from notefinder.errors import NoteFinderError, SearchError
from notefinder.models import Collection, CollectionStats, Document, StoreStats
from notefinder.utils.text import clean_snippet, fts_query

LOGGER = logging.getLogger(__name__)

SNIPPET_TOKENS = 32


def _now() -> int:
    return int(time.time())


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        path=Path(row["path"]),
        title=row["title"] or "",
        content=row["content"],
        collection=row["collection"],
        size=row["size"],
        modified_at=row["modified_at"],
        indexed_at=row["indexed_at"],
    )


def _row_to_collection(row: sqlite3.Row) -> Collection:
    return Collection(
        name=row["name"],
        path=Path(row["path"]),
        mask=row["mask"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        file_count=row["file_count"],
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteDocumentStore:
    """Persistence layer for collections, documents and embeddings.

    The ``documents`` table is the system of record. Every write that touches
    it also rewrites the matching ``documents_fts`` row inside the same
    transaction, so keyword search never sees a document the table does not
    have (or the reverse).
    """

    def __init__(self, db_path: Path, *, dimension: int = DIMENSION) -> None:
        self.db_path = Path(db_path)
        self.dimension = dimension
        self._depth = 0
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Unit of work. Nested blocks join the outermost one."""
        if self._depth:
            self._depth += 1
            try:
                yield self._conn
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        finally:
            self._depth = 0

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS collections (
                    name TEXT PRIMARY KEY,
                    path TEXT NOT NULL,
                    mask TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    path TEXT NOT NULL,
                    title TEXT,
                    content TEXT NOT NULL,
                    collection TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    modified_at INTEGER NOT NULL,
                    indexed_at INTEGER NOT NULL,
                    FOREIGN KEY(collection) REFERENCES collections(name) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """
                CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
                    document_id UNINDEXED,
                    title,
                    content,
                    tokenize='porter unicode61'
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS embeddings (
                    document_id TEXT PRIMARY KEY,
                    embedding BLOB NOT NULL,
                    created_at INTEGER NOT NULL,
                    FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_path ON documents(path)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_modified ON documents(modified_at)"
            )

    # Collections

    def upsert_collection(self, name: str, path: Path, mask: str) -> Collection:
        now = _now()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO collections(name, path, mask, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    path = excluded.path,
                    mask = excluded.mask,
                    updated_at = excluded.updated_at
                """,
                (name, str(path), mask, now, now),
            )
        collection = self.get_collection(name)
        if collection is None:
            raise NoteFinderError(f"Failed to register collection \"{name}\"")
        return collection

    def _select_collections(self, where: str = "", params: Sequence[object] = ()) -> List[Collection]:
        rows = self._conn.execute(
            f"""
            SELECT c.name, c.path, c.mask, c.created_at, c.updated_at,
                   COUNT(d.id) AS file_count
            FROM collections c
            LEFT JOIN documents d ON d.collection = c.name
            {where}
            GROUP BY c.name
            ORDER BY c.name
            """,
            tuple(params),
        ).fetchall()
        return [_row_to_collection(row) for row in rows]

    def get_collection(self, name: str) -> Collection | None:
        found = self._select_collections("WHERE c.name = ?", (name,))
        return found[0] if found else None

    def list_collections(self) -> List[Collection]:
        return self._select_collections()

    def delete_collection(self, name: str) -> bool:
        """Delete a collection with its documents, index rows and embeddings."""
        with self.transaction() as conn:
            ids = [
                row["id"]
                for row in conn.execute(
                    "SELECT id FROM documents WHERE collection = ?", (name,)
                ).fetchall()
            ]
            self._delete_document_rows(ids)
            deleted = conn.execute("DELETE FROM collections WHERE name = ?", (name,)).rowcount
        return deleted > 0

    # Documents

    def upsert_document(self, document: Document) -> None:
        """Insert or replace a document together with its full-text row.

        Older rows for the same path in the same collection are removed first,
        along with their embeddings. An embedding stored under the same id is
        kept, stale or not, until the next embedding pass.
        """
        with self.transaction() as conn:
            stale = [
                row["id"]
                for row in conn.execute(
                    "SELECT id FROM documents WHERE collection = ? AND path = ? AND id != ?",
                    (document.collection, str(document.path), document.id),
                ).fetchall()
            ]
            self._delete_document_rows(stale)

            conn.execute("DELETE FROM documents_fts WHERE document_id = ?", (document.id,))
            conn.execute(
                """
                INSERT INTO documents(
                    id, path, title, content, collection, size, modified_at, indexed_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    path = excluded.path,
                    title = excluded.title,
                    content = excluded.content,
                    collection = excluded.collection,
                    size = excluded.size,
                    modified_at = excluded.modified_at,
                    indexed_at = excluded.indexed_at
                """,
                (
                    document.id,
                    str(document.path),
                    document.title,
                    document.content,
                    document.collection,
                    document.size,
                    document.modified_at,
                    document.indexed_at if document.indexed_at is not None else _now(),
                ),
            )
            conn.execute(
                "INSERT INTO documents_fts(document_id, title, content) VALUES (?, ?, ?)",
                (document.id, document.title, document.content),
            )

    def _delete_document_rows(self, ids: Iterable[str]) -> int:
        # Caller holds the transaction.
        removed = 0
        for doc_id in ids:
            self._conn.execute("DELETE FROM documents_fts WHERE document_id = ?", (doc_id,))
            self._conn.execute("DELETE FROM embeddings WHERE document_id = ?", (doc_id,))
            removed += self._conn.execute("DELETE FROM documents WHERE id = ?", (doc_id,)).rowcount
        return removed

    def delete_documents(self, ids: Iterable[str]) -> int:
        with self.transaction():
            return self._delete_document_rows(ids)

    def get_document(self, doc_id: str) -> Document | None:
        row = self._conn.execute("SELECT * FROM documents WHERE id = ?", (doc_id,)).fetchone()
        return _row_to_document(row) if row else None

    def find_document(self, path: str) -> Document | None:
        """Exact path match, else the shortest stored path ending with ``path``."""
        row = self._conn.execute(
            "SELECT * FROM documents WHERE path = ? ORDER BY id LIMIT 1", (path,)
        ).fetchone()
        if row is None:
            row = self._conn.execute(
                """
                SELECT * FROM documents
                WHERE path LIKE ? ESCAPE '\\'
                ORDER BY length(path), path
                LIMIT 1
                """,
                (f"%{_escape_like(path)}",),
            ).fetchone()
        return _row_to_document(row) if row else None

    def documents_for_collection(self, name: str) -> List[Document]:
        rows = self._conn.execute(
            "SELECT * FROM documents WHERE collection = ? ORDER BY path", (name,)
        ).fetchall()
        return [_row_to_document(row) for row in rows]

    # Embeddings

    def documents_missing_embeddings(self, *, force: bool = False) -> List[Document]:
        sql = "SELECT * FROM documents"
        if not force:
            sql += " WHERE id NOT IN (SELECT document_id FROM embeddings)"
        sql += " ORDER BY id"
        return [_row_to_document(row) for row in self._conn.execute(sql).fetchall()]

    def upsert_embedding(self, doc_id: str, vector: np.ndarray) -> None:
        values = np.asarray(vector, dtype="float32")
        if values.shape != (self.dimension,):
            raise ValueError(
                f"Embedding has shape {values.shape}, expected ({self.dimension},)"
            )
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO embeddings(document_id, embedding, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(document_id) DO UPDATE SET
                    embedding = excluded.embedding,
                    created_at = excluded.created_at
                """,
                (doc_id, sqlite3.Binary(values.tobytes()), _now()),
            )

    # Queries

    def text_search(
        self,
        query: str,
        *,
        limit: int = 10,
        collection: str | None = None,
        min_score: float = 0.0,
    ) -> List[dict]:
        """BM25-ranked keyword search, most relevant first.

        Every word of ``query`` is matched as a quoted term, so free-text
        questions never hit FTS5 syntax errors. FTS5 ``bm25()`` is negative
        with lower meaning better; the returned ``score`` maps it to
        ``clamp(-bm25 / 10, 0, 1)``.
        """
        match = fts_query(query)
        if not match:
            return []

        sql = f"""
            SELECT
                d.id AS id,
                d.path AS path,
                d.title AS title,
                d.collection AS collection,
                snippet(documents_fts, -1, '**', '**', '...', {SNIPPET_TOKENS}) AS snippet,
                bm25(documents_fts) AS bm25_score
            FROM documents_fts
            JOIN documents d ON d.id = documents_fts.document_id
            WHERE documents_fts MATCH ?
        """
        params: List[object] = [match]
        if collection:
            sql += " AND d.collection = ?"
            params.append(collection)
        sql += " ORDER BY bm25_score, d.id LIMIT ?"
        params.append(limit)

        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.OperationalError as exc:
            raise SearchError(f"Malformed query {query!r}: {exc}") from exc

        results: List[dict] = []
        for row in rows:
            raw = float(row["bm25_score"])
            score = min(1.0, max(0.0, -raw / 10.0))
            if score < min_score:
                continue
            results.append(
                {
                    "id": row["id"],
                    "path": row["path"],
                    "title": row["title"],
                    "collection": row["collection"],
                    "snippet": clean_snippet(row["snippet"]),
                    "raw_score": raw,
                    "score": score,
                }
            )
        return results

    def vector_search(
        self,
        embedding: np.ndarray,
        *,
        limit: int = 10,
        collection: str | None = None,
        min_score: float = 0.0,
    ) -> List[dict]:
        """Rank stored embeddings by ascending cosine distance to ``embedding``."""
        query = np.asarray(embedding, dtype="float64")
        sql = """
            SELECT
                d.id AS id,
                d.path AS path,
                d.title AS title,
                d.collection AS collection,
                d.content AS content,
                e.embedding AS embedding
            FROM embeddings e
            JOIN documents d ON d.id = e.document_id
        """
        params: List[object] = []
        if collection:
            sql += " WHERE d.collection = ?"
            params.append(collection)
        rows = self._conn.execute(sql, params).fetchall()

        distances = [
            cosine_distance(np.frombuffer(row["embedding"], dtype="float32"), query)
            for row in rows
        ]

        order = sorted(range(len(rows)), key=lambda idx: (distances[idx], rows[idx]["id"]))

        results: List[dict] = []
        for idx in order:
            row = rows[idx]
            distance = float(distances[idx])
            score = 1.0 / (1.0 + distance)
            if score < min_score:
                continue
            results.append(
                {
                    "id": row["id"],
                    "path": row["path"],
                    "title": row["title"],
                    "collection": row["collection"],
                    "content": row["content"],
                    "distance": distance,
                    "score": score,
                }
            )
            if len(results) >= limit:
                break
        return results

    # Maintenance

    def get_stats(self) -> StoreStats:
        row = self._conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM collections) AS collections,
                (SELECT COUNT(*) FROM documents) AS documents,
                (SELECT COUNT(*) FROM embeddings) AS embeddings
            """
        ).fetchone()
        page_count = self._conn.execute("PRAGMA page_count").fetchone()[0]
        page_size = self._conn.execute("PRAGMA page_size").fetchone()[0]
        return StoreStats(
            collections=row["collections"],
            documents=row["documents"],
            embeddings=row["embeddings"],
            db_size_bytes=page_count * page_size,
        )

    def collection_stats(self, name: str) -> CollectionStats | None:
        row = self._conn.execute(
            """
            SELECT
                COUNT(*) AS documents,
                AVG(size) AS avg_size,
                SUM(size) AS total_size,
                MAX(modified_at) AS latest_modified,
                MIN(modified_at) AS earliest_modified
            FROM documents
            WHERE collection = ?
            """,
            (name,),
        ).fetchone()
        if not row["documents"]:
            return None
        return CollectionStats(
            documents=row["documents"],
            avg_size=round(row["avg_size"] or 0),
            total_size=row["total_size"] or 0,
            latest_modified=row["latest_modified"],
            earliest_modified=row["earliest_modified"],
        )

    def cleanup(self) -> int:
        """Remove orphaned rows and compact the database file."""
        with self.transaction() as conn:
            orphans = [
                row["id"]
                for row in conn.execute(
                    """
                    SELECT id FROM documents
                    WHERE collection NOT IN (SELECT name FROM collections)
                    """
                ).fetchall()
            ]
            removed = self._delete_document_rows(orphans)
            conn.execute(
                "DELETE FROM embeddings WHERE document_id NOT IN (SELECT id FROM documents)"
            )
            conn.execute(
                "DELETE FROM documents_fts WHERE document_id NOT IN (SELECT id FROM documents)"
            )
        self._conn.execute("VACUUM")
        LOGGER.info("Cleanup removed %d orphaned documents", removed)
        return removed
