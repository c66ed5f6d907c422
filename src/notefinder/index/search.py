"""Keyword, vector and hybrid search over the document store.

Hybrid mode merges the keyword and vector rankings with Reciprocal Rank
Fusion::

    score(d) = 2 / (k + keyword_rank) + 1 / (k + vector_rank)

with ``k = 60``. Documents found by both searches get a 1.2x boost, a first
place in either list a further 1.1x, and the result is clamped to [0, 1].
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence

from notefinder.embedding.encoder import FeatureEmbedder
from notefinder.errors import SearchError, ValidationError
from notefinder.index.storage import SQLiteDocumentStore
from notefinder.utils.text import extract_snippet

LOGGER = logging.getLogger(__name__)

SEARCH_MODES: tuple[str, ...] = ("text", "vector", "hybrid")

RRF_K = 60
TEXT_WEIGHT = 2.0
VECTOR_WEIGHT = 1.0
BOTH_LISTS_BOOST = 1.2
TOP_RANK_BOOST = 1.1


@dataclass(slots=True)
class SearchResult:
    id: str
    path: Path
    title: str
    collection: str
    snippet: str
    score: float
    text_rank: int | None = None
    vector_rank: int | None = None
    text_score: float | None = None
    vector_score: float | None = None

    @property
    def in_both(self) -> bool:
        return self.text_rank is not None and self.vector_rank is not None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["path"] = str(self.path)
        return data


@dataclass(slots=True)
class SearchResponse:
    query: str
    mode: str
    results: List[SearchResult] = field(default_factory=list)

    @property
    def token_estimate(self) -> int:
        return round(sum(len(result.snippet) for result in self.results) / 4)

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "mode": self.mode,
            "results": [result.to_dict() for result in self.results],
            "token_estimate": self.token_estimate,
        }


def rrf_contribution(rank: int, weight: float = 1.0, k: int = RRF_K) -> float:
    return weight / (k + rank)


def fused_score(text_rank: int | None, vector_rank: int | None, k: int = RRF_K) -> float:
    score = 0.0
    if text_rank is not None:
        score += rrf_contribution(text_rank, TEXT_WEIGHT, k)
    if vector_rank is not None:
        score += rrf_contribution(vector_rank, VECTOR_WEIGHT, k)
    if text_rank is not None and vector_rank is not None:
        score *= BOTH_LISTS_BOOST
    if text_rank == 1 or vector_rank == 1:
        score *= TOP_RANK_BOOST
    return min(1.0, max(0.0, score))


def fuse_results(
    text_results: Sequence[SearchResult],
    vector_results: Sequence[SearchResult],
    *,
    k: int = RRF_K,
) -> List[SearchResult]:
    """Merge two ranked lists into one, ordered by fused score.

    Ties are broken by keyword rank, then vector rank, then id. The keyword
    snippet is kept for any document the keyword search found.
    """
    merged: Dict[str, SearchResult] = {}

    for rank, hit in enumerate(text_results, start=1):
        merged[hit.id] = SearchResult(
            id=hit.id,
            path=hit.path,
            title=hit.title,
            collection=hit.collection,
            snippet=hit.snippet,
            score=0.0,
            text_rank=rank,
            text_score=hit.score,
        )

    for rank, hit in enumerate(vector_results, start=1):
        existing = merged.get(hit.id)
        if existing is not None:
            existing.vector_rank = rank
            existing.vector_score = hit.score
            continue
        merged[hit.id] = SearchResult(
            id=hit.id,
            path=hit.path,
            title=hit.title,
            collection=hit.collection,
            snippet=hit.snippet,
            score=0.0,
            vector_rank=rank,
            vector_score=hit.score,
        )

    for result in merged.values():
        result.score = fused_score(result.text_rank, result.vector_rank, k)

    return sorted(
        merged.values(),
        key=lambda r: (
            -r.score,
            r.text_rank if r.text_rank is not None else math.inf,
            r.vector_rank if r.vector_rank is not None else math.inf,
            r.id,
        ),
    )


class Searcher:
    """High-level API to query the document store."""

    def __init__(
        self,
        embedder: FeatureEmbedder,
        store: SQLiteDocumentStore,
        *,
        snippet_chars: int = 200,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.snippet_chars = snippet_chars

    def text_search(
        self,
        query: str,
        *,
        limit: int = 5,
        collection: str | None = None,
        min_score: float = 0.0,
    ) -> List[SearchResult]:
        rows = self.store.text_search(
            query, limit=limit, collection=collection, min_score=min_score
        )
        return [
            SearchResult(
                id=row["id"],
                path=Path(row["path"]),
                title=row["title"] or "",
                collection=row["collection"],
                snippet=row["snippet"],
                score=row["score"],
                text_rank=rank,
                text_score=row["score"],
            )
            for rank, row in enumerate(rows, start=1)
        ]

    def vector_search(
        self,
        query: str,
        *,
        limit: int = 5,
        collection: str | None = None,
        min_score: float = 0.0,
    ) -> List[SearchResult]:
        embedding = self.embedder.embed_query(query)
        rows = self.store.vector_search(
            embedding, limit=limit, collection=collection, min_score=min_score
        )
        return [
            SearchResult(
                id=row["id"],
                path=Path(row["path"]),
                title=row["title"] or "",
                collection=row["collection"],
                snippet=extract_snippet(row["content"], query, max_length=self.snippet_chars),
                score=row["score"],
                vector_rank=rank,
                vector_score=row["score"],
            )
            for rank, row in enumerate(rows, start=1)
        ]

    def hybrid_search(
        self,
        query: str,
        *,
        limit: int = 5,
        collection: str | None = None,
        min_score: float = 0.0,
    ) -> List[SearchResult]:
        candidates = limit * 2
        text_results = self.text_search(query, limit=candidates, collection=collection)
        vector_results = self.vector_search(query, limit=candidates, collection=collection)
        LOGGER.debug(
            "Hybrid search %r: %d keyword, %d vector candidates",
            query,
            len(text_results),
            len(vector_results),
        )
        fused = fuse_results(text_results, vector_results)
        return [result for result in fused if result.score >= min_score][:limit]

    def search(
        self,
        query: str,
        *,
        mode: str = "hybrid",
        limit: int = 5,
        collection: str | None = None,
        min_score: float = 0.0,
    ) -> SearchResponse:
        query = query.strip()
        if not query:
            raise SearchError("Empty query")
        if mode not in SEARCH_MODES:
            raise SearchError(f"Unknown search mode: {mode}")
        if limit < 1:
            raise ValidationError("limit must be at least 1")

        if mode == "text":
            results = self.text_search(
                query, limit=limit, collection=collection, min_score=min_score
            )
        elif mode == "vector":
            results = self.vector_search(
                query, limit=limit, collection=collection, min_score=min_score
            )
        else:
            results = self.hybrid_search(
                query, limit=limit, collection=collection, min_score=min_score
            )
        return SearchResponse(query=query, mode=mode, results=results)
