"""Tests for parallel query evaluation."""

from __future__ import annotations

import math
from pathlib import Path
from unittest.mock import patch

import pytest

from termfinder.index.corpus import CorpusIndex, CorpusView
from termfinder.index.search import (
    QueryEngine,
    combine_results,
    dispatch_tasks,
    evaluate,
    process_term,
    process_terms,
    rank_results,
)
from termfinder.models import SearchResult

A = Path("/docs/a.xhtml")
B = Path("/docs/b.xhtml")
C = Path("/docs/c.xhtml")


@pytest.fixture
def index() -> CorpusIndex:
    corpus = CorpusIndex()
    corpus.add_document(A, ["gl", "Clear", "GL", "buffer"], 1)
    corpus.add_document(B, ["GL", "texture"], 2)
    corpus.add_document(C, ["vertex", "buffer", "array"], 3)
    return corpus


@pytest.fixture
def engine():
    with QueryEngine(workers=4) as query_engine:
        yield query_engine


class TestDispatchTasks:
    """Test the balanced chunk dispatch."""

    def test_even_split(self) -> None:
        assert dispatch_tasks(2, 4) == [(0, 2), (2, 2)]

    def test_first_chunks_take_remainder(self) -> None:
        assert dispatch_tasks(3, 7) == [(0, 3), (3, 2), (5, 2)]

    def test_more_workers_than_tasks(self) -> None:
        assert dispatch_tasks(8, 3) == [(0, 1), (1, 1), (2, 1)]

    def test_zero_workers_clamped_to_one(self) -> None:
        assert dispatch_tasks(0, 5) == [(0, 5)]

    def test_no_tasks(self) -> None:
        assert dispatch_tasks(4, 0) == []

    @pytest.mark.parametrize("tasks", range(1, 25))
    @pytest.mark.parametrize("workers", [-1, 0, 1, 2, 3, 4, 5, 7, 16, 40])
    def test_chunks_cover_every_task_once(self, workers: int, tasks: int) -> None:
        chunks = dispatch_tasks(workers, tasks)

        assert len(chunks) == min(max(workers, 1), tasks)
        position = 0
        for start, count in chunks:
            assert start == position
            assert count >= 1
            position += count
        assert position == tasks

        sizes = [count for _, count in chunks]
        assert max(sizes) - min(sizes) <= 1
        assert sizes == sorted(sizes, reverse=True)


class TestCombineResults:
    """Test additive merging."""

    def test_sums_overlapping_documents(self) -> None:
        results = {A: 1.0, B: 2.0}
        combine_results(results, {B: 0.5, C: 3.0})

        assert results == {A: 1.0, B: 2.5, C: 3.0}

    def test_merge_is_commutative(self) -> None:
        left = {A: 0.25, B: 1.5}
        right = {B: 0.75, C: 2.0}

        assert combine_results(dict(left), right) == combine_results(dict(right), left)


class TestProcessTerm:
    """Test per-term scoring."""

    def test_scores_matching_documents(self, index: CorpusIndex) -> None:
        results = process_term(index.view(), "gl")

        idf = math.log10(3 / 2)
        assert results == {A: pytest.approx(2 / 4 * idf), B: pytest.approx(1 / 2 * idf)}

    def test_result_is_sparse(self, index: CorpusIndex) -> None:
        assert C not in process_term(index.view(), "GL")

    def test_absent_term_scans_nothing(self, index: CorpusIndex) -> None:
        """An unknown term short-circuits before touching any document."""
        view = index.view()
        with patch.object(CorpusView, "tf") as mock_tf, patch.object(
            CorpusView, "paths"
        ) as mock_paths:
            assert process_term(view, "nonexistent") == {}
        mock_tf.assert_not_called()
        mock_paths.assert_not_called()

    def test_term_in_every_document_contributes_nothing(self) -> None:
        corpus = CorpusIndex()
        corpus.add_document(A, ["x", "y"], 0)
        corpus.add_document(B, ["x"], 0)

        assert process_term(corpus.view(), "x") == {}

    def test_process_terms_sums(self, index: CorpusIndex) -> None:
        view = index.view()
        results = process_terms(view, ["gl", "texture"])

        assert results[B] == pytest.approx(view.score(B, "gl") + view.score(B, "texture"))


class TestQueryEngine:
    """Test evaluate on the worker pool."""

    def test_empty_query(self, index: CorpusIndex, engine: QueryEngine) -> None:
        assert engine.evaluate(index.view(), "") == {}
        assert engine.evaluate(index.view(), "   \t ") == {}
        assert engine._executor is None

    def test_scores(self, index: CorpusIndex, engine: QueryEngine) -> None:
        view = index.view()
        results = engine.evaluate(view, "gl buffer")

        assert set(results) == {A, B, C}
        assert results[A] == pytest.approx(view.score(A, "gl") + view.score(A, "buffer"))
        assert results[C] == pytest.approx(view.score(C, "buffer"))

    def test_order_independent(self, index: CorpusIndex, engine: QueryEngine) -> None:
        forward = engine.evaluate(index.view(), "gl texture buffer")
        backward = engine.evaluate(index.view(), "buffer texture gl")

        assert forward.keys() == backward.keys()
        for path, score in forward.items():
            assert backward[path] == pytest.approx(score, rel=1e-9)

    @pytest.mark.parametrize("workers", [1, 2, 3, 8])
    def test_worker_count_does_not_change_scores(self, index: CorpusIndex, workers: int) -> None:
        query = "gl clear texture vertex buffer array gl"
        expected = process_terms(index.view(), query.split())

        with QueryEngine(workers) as query_engine:
            results = query_engine.evaluate(index.view(), query)

        assert results.keys() == expected.keys()
        for path, score in expected.items():
            assert results[path] == pytest.approx(score, rel=1e-9)

    def test_repeated_terms_add_up(self, index: CorpusIndex, engine: QueryEngine) -> None:
        once = engine.evaluate(index.view(), "texture")
        twice = engine.evaluate(index.view(), "texture texture")

        assert twice[B] == pytest.approx(2 * once[B])

    def test_absent_term(self, index: CorpusIndex, engine: QueryEngine) -> None:
        assert engine.evaluate(index.view(), "nonexistent") == {}

    def test_worker_failure_propagates(self, index: CorpusIndex, engine: QueryEngine) -> None:
        with patch("termfinder.index.search.process_term", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError, match="boom"):
                engine.evaluate(index.view(), "gl texture")

    def test_pool_is_reused(self, index: CorpusIndex, engine: QueryEngine) -> None:
        engine.evaluate(index.view(), "gl")
        executor = engine._executor
        engine.evaluate(index.view(), "texture")

        assert executor is not None
        assert engine._executor is executor

    def test_close(self, index: CorpusIndex) -> None:
        query_engine = QueryEngine(2)
        query_engine.evaluate(index.view(), "gl")
        query_engine.close()

        assert query_engine._executor is None

    def test_workers_clamped(self) -> None:
        assert QueryEngine(0).workers == 1

    def test_module_level_evaluate(self, index: CorpusIndex) -> None:
        results = evaluate(index, "GL", worker_count=2)

        assert results[A] == pytest.approx(index.score(A, "GL"))


class TestRankResults:
    """Test the caller-side ranking."""

    def test_sorted_descending(self) -> None:
        ranked = rank_results({A: 0.1, B: 0.5, C: 0.3})

        assert ranked == [SearchResult(B, 0.5), SearchResult(C, 0.3), SearchResult(A, 0.1)]

    def test_truncated(self) -> None:
        results = {Path(f"/docs/{i}.xhtml"): float(i + 1) for i in range(30)}

        ranked = rank_results(results, top_k=20)

        assert len(ranked) == 20
        assert ranked[0].score == 30.0

    def test_stops_at_zero(self) -> None:
        assert rank_results({A: 0.2, B: 0.0}) == [SearchResult(A, 0.2)]

    def test_empty(self) -> None:
        assert rank_results({}) == []
