"""FastAPI application exposing the NoteFinder operations over HTTP."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from notefinder.config import DEFAULT_MASK, AppConfig
from notefinder.engine import SearchEngine
from notefinder.errors import NotFoundError, SearchError, ValidationError
from notefinder.models import Collection

LOGGER = logging.getLogger(__name__)

MAX_LIMIT = 50

app = FastAPI(title="NoteFinder", version="0.1.0")


class SearchPayload(BaseModel):
    query: str
    mode: str = "hybrid"
    limit: int = 5
    collection: str | None = None
    min_score: float = 0.0
    db: Path | None = None


class CollectionPayload(BaseModel):
    name: str
    path: str
    mask: str = DEFAULT_MASK
    db: Path | None = None


class EmbeddingPayload(BaseModel):
    force: bool = False
    db: Path | None = None


def _resolve_db_path(db: Path | None) -> Path:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    return config.resolve_db_path(Path.cwd())


@contextmanager
def _open_engine(db: Path | None) -> Iterator[SearchEngine]:
    """Open an engine for one request and map library errors to HTTP errors."""
    engine = SearchEngine(AppConfig(db_path=_resolve_db_path(db)))
    try:
        with engine:
            yield engine
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (ValidationError, SearchError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _collection_dict(collection: Collection) -> dict[str, Any]:
    return {
        "name": collection.name,
        "path": str(collection.path),
        "mask": collection.mask,
        "files": collection.file_count,
        "created_at": collection.created_at,
        "updated_at": collection.updated_at,
    }


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/search")
def search_documents(payload: SearchPayload) -> dict[str, Any]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    limit = max(1, min(payload.limit, MAX_LIMIT))
    with _open_engine(payload.db) as engine:
        response = engine.search(
            query,
            mode=payload.mode,
            limit=limit,
            collection=payload.collection,
            min_score=payload.min_score,
        )
    return response.to_dict()


@app.get("/document")
def get_document(
    ref: str,
    max_lines: int | None = None,
    from_line: int = 1,
    db: Path | None = None,
) -> dict[str, Any]:
    """Fetch a document by ``#<id>`` or by (suffix of) its path."""
    with _open_engine(db) as engine:
        document = engine.get_document(ref, max_lines=max_lines, from_line=from_line)
    return {
        "id": document.id,
        "path": str(document.path),
        "title": document.title,
        "collection": document.collection,
        "content": document.content,
    }


@app.get("/collections")
def list_collections(db: Path | None = None) -> dict[str, List[dict[str, Any]]]:
    with _open_engine(db) as engine:
        collections = engine.list_collections()
    return {"collections": [_collection_dict(collection) for collection in collections]}


@app.post("/collections")
def add_collection(payload: CollectionPayload) -> dict[str, Any]:
    with _open_engine(payload.db) as engine:
        collection = engine.add_collection(payload.name, payload.path, payload.mask)
    return {"status": "ok", "collection": _collection_dict(collection)}


@app.delete("/collections/{name}")
def remove_collection(name: str, db: Path | None = None) -> dict[str, str]:
    with _open_engine(db) as engine:
        engine.remove_collection(name)
    return {"status": "ok", "removed": name}


@app.post("/collections/{name}/index")
def index_collection(name: str, db: Path | None = None) -> dict[str, Any]:
    with _open_engine(db) as engine:
        stats = engine.index_collection(name)
    return {
        "status": "ok",
        "stats": {
            "indexed": stats.indexed,
            "skipped": stats.skipped,
            "removed": stats.removed,
            "failed": stats.failed,
        },
    }


@app.post("/embeddings")
def generate_embeddings(payload: EmbeddingPayload) -> dict[str, Any]:
    with _open_engine(payload.db) as engine:
        stats = engine.generate_embeddings(force=payload.force)
    return {"status": "ok", "generated": stats.generated, "failed": stats.failed}


@app.get("/stats")
def get_stats(db: Path | None = None) -> dict[str, Any]:
    with _open_engine(db) as engine:
        stats = engine.get_stats()
        db_path = engine.db_path
    return {
        "db": str(db_path),
        "collections": stats.collections,
        "documents": stats.documents,
        "embeddings": stats.embeddings,
        "db_size_bytes": stats.db_size_bytes,
    }
