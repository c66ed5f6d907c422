"""Tests for keyword, vector and hybrid search."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

from notefinder.errors import SearchError, ValidationError
from notefinder.index.search import (
    RRF_K,
    Searcher,
    SearchResponse,
    SearchResult,
    fuse_results,
    fused_score,
    rrf_contribution,
)


def hit(doc_id: str, snippet: str = "", score: float = 0.5) -> SearchResult:
    return SearchResult(
        id=doc_id,
        path=Path(f"/notes/{doc_id}.md"),
        title=doc_id.upper(),
        collection="notes",
        snippet=snippet,
        score=score,
    )


def text_row(doc_id: str, score: float = 0.5) -> dict:
    return {
        "id": doc_id,
        "path": f"/notes/{doc_id}.md",
        "title": doc_id.upper(),
        "collection": "notes",
        "snippet": f"**{doc_id}** keyword snippet",
        "raw_score": -score * 10,
        "score": score,
    }


def vector_row(doc_id: str, content: str = "Alpha. The api key lives here.", score: float = 0.8) -> dict:
    return {
        "id": doc_id,
        "path": f"/notes/{doc_id}.md",
        "title": doc_id.upper(),
        "collection": "notes",
        "content": content,
        "distance": 1 / score - 1,
        "score": score,
    }


@pytest.fixture
def store() -> MagicMock:
    store = MagicMock()
    store.text_search.return_value = [text_row("a"), text_row("b")]
    store.vector_search.return_value = [vector_row("b"), vector_row("c")]
    return store


@pytest.fixture
def searcher(store: MagicMock) -> Searcher:
    embedder = MagicMock()
    embedder.embed_query.return_value = np.ones(4)
    return Searcher(embedder, store)


class TestFusedScore:
    """Test Reciprocal Rank Fusion scoring."""

    def test_rrf_contribution(self) -> None:
        assert rrf_contribution(1) == pytest.approx(1 / 61)
        assert rrf_contribution(1, weight=2.0) == pytest.approx(2 / 61)

    def test_text_only_top_rank(self) -> None:
        assert fused_score(1, None) == pytest.approx(2 / 61 * 1.1)

    def test_vector_only(self) -> None:
        assert fused_score(None, 3) == pytest.approx(1 / 63)

    def test_both_lists_boosted(self) -> None:
        assert fused_score(2, 2) == pytest.approx((2 / 62 + 1 / 62) * 1.2)

    def test_both_lists_beat_either_alone(self) -> None:
        """A document in both lists should outscore one found by either search alone."""
        for rank in range(1, 20):
            both = fused_score(rank, rank)
            assert both > fused_score(rank, None)
            assert both > fused_score(None, rank)

    def test_text_rank_weighs_double(self) -> None:
        assert fused_score(5, None) > fused_score(None, 5)

    def test_clamped_to_one(self) -> None:
        assert fused_score(1, 1, k=0) == 1.0

    def test_default_k(self) -> None:
        assert RRF_K == 60


class TestFuseResults:
    """Test fuse_results merging."""

    def test_shared_document_ranks_first(self) -> None:
        fused = fuse_results([hit("a"), hit("b")], [hit("b"), hit("c")])

        assert [r.id for r in fused] == ["b", "a", "c"]
        assert fused[0].in_both
        assert (fused[0].text_rank, fused[0].vector_rank) == (2, 1)

    def test_keyword_snippet_kept(self) -> None:
        fused = fuse_results([hit("a", snippet="keyword")], [hit("a", snippet="vector")])

        assert fused[0].snippet == "keyword"

    def test_scores_recorded(self) -> None:
        fused = fuse_results([hit("a", score=0.3)], [hit("a", score=0.9)])

        assert fused[0].text_score == 0.3
        assert fused[0].vector_score == 0.9

    def test_single_list_keeps_rank_order(self) -> None:
        fused = fuse_results([], [hit("z"), hit("y")])

        assert [r.id for r in fused] == ["z", "y"]

    def test_empty_lists(self) -> None:
        assert fuse_results([], []) == []


class TestSearchResponse:
    """Test SearchResponse serialization."""

    def test_token_estimate(self) -> None:
        response = SearchResponse(query="q", mode="text", results=[hit("a", snippet="x" * 10)])

        assert response.token_estimate == 2

    def test_to_dict(self) -> None:
        data = SearchResponse(query="q", mode="text", results=[hit("a")]).to_dict()

        assert data["query"] == "q"
        assert data["results"][0]["path"] == "/notes/a.md"
        assert data["results"][0]["id"] == "a"


class TestSearcher:
    """Test Searcher.search across modes."""

    def test_text_mode(self, searcher: Searcher, store: MagicMock) -> None:
        response = searcher.search("api key", mode="text", limit=3, min_score=0.1)

        assert [r.id for r in response.results] == ["a", "b"]
        assert response.results[0].text_rank == 1
        store.text_search.assert_called_once_with(
            "api key", limit=3, collection=None, min_score=0.1
        )
        store.vector_search.assert_not_called()

    def test_vector_mode_builds_snippet(self, searcher: Searcher, store: MagicMock) -> None:
        response = searcher.search("api key", mode="vector")

        assert [r.id for r in response.results] == ["b", "c"]
        assert response.results[0].snippet == "The **api** **key** lives here"
        store.text_search.assert_not_called()

    def test_hybrid_fetches_twice_the_limit(self, searcher: Searcher, store: MagicMock) -> None:
        searcher.search("api key", limit=2, collection="notes")

        assert store.text_search.call_args.kwargs["limit"] == 4
        assert store.vector_search.call_args.kwargs["limit"] == 4
        assert store.text_search.call_args.kwargs["collection"] == "notes"

    def test_hybrid_order(self, searcher: Searcher) -> None:
        response = searcher.search("api key", mode="hybrid")

        assert response.mode == "hybrid"
        assert [r.id for r in response.results] == ["b", "a", "c"]
        assert response.results[0].snippet == "**b** keyword snippet"

    def test_hybrid_min_score(self, searcher: Searcher) -> None:
        response = searcher.search("api key", min_score=0.05)

        assert [r.id for r in response.results] == ["b"]

    def test_hybrid_limit(self, searcher: Searcher) -> None:
        response = searcher.search("api key", limit=2)

        assert [r.id for r in response.results] == ["b", "a"]

    def test_limit_above_available(self, searcher: Searcher) -> None:
        response = searcher.search("api key", limit=10)

        assert len(response.results) == 3

    def test_query_is_stripped(self, searcher: Searcher) -> None:
        assert searcher.search("  api  ", mode="text").query == "api"

    @pytest.mark.parametrize("query", ["", "   "])
    def test_empty_query(self, searcher: Searcher, query: str) -> None:
        with pytest.raises(SearchError, match="Empty query"):
            searcher.search(query)

    def test_unknown_mode(self, searcher: Searcher) -> None:
        with pytest.raises(SearchError, match="mode"):
            searcher.search("api", mode="fuzzy")

    def test_invalid_limit(self, searcher: Searcher) -> None:
        with pytest.raises(ValidationError):
            searcher.search("api", limit=0)
