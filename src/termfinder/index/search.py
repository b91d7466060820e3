"""Parallel TF-IDF query evaluation."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

from termfinder.index.corpus import CorpusIndex, CorpusView
from termfinder.models import QueryResult, SearchResult
from termfinder.utils.text import normalize

LOGGER = logging.getLogger(__name__)

DEFAULT_WORKERS = 4


def dispatch_tasks(threads_count: int, tasks: int) -> List[Tuple[int, int]]:
    """Split ``tasks`` items into contiguous ``(start, count)`` chunks.

    The worker count is clamped to ``[1, tasks]``. The first ``tasks %
    workers`` chunks get one item more than the others.
    """
    if tasks <= 0:
        return []
    threads_count = min(max(threads_count, 1), tasks)
    min_charge, overcharged = divmod(tasks, threads_count)

    dispatched: List[Tuple[int, int]] = []
    start = 0
    for i in range(threads_count):
        charge = min_charge + 1 if i < overcharged else min_charge
        dispatched.append((start, charge))
        start += charge
    return dispatched


def combine_results(results: QueryResult, partial: QueryResult) -> QueryResult:
    """Add the scores of ``partial`` into ``results`` in place."""
    for path, score in partial.items():
        results[path] = results.get(path, 0.0) + score
    return results


def process_term(view: CorpusView, term: str) -> QueryResult:
    """Score every document of the corpus for a single query term."""
    term = normalize(term)
    idf_value = view.idf(term)
    if idf_value == 0.0:
        return {}

    results: QueryResult = {}
    for path in view.paths():
        tf_value = view.tf(path, term)
        if tf_value == 0.0:
            continue
        results[path] = results.get(path, 0.0) + tf_value * idf_value
    return results


def process_terms(view: CorpusView, terms: Sequence[str]) -> QueryResult:
    results: QueryResult = {}
    for term in terms:
        combine_results(results, process_term(view, term))
    return results


class QueryEngine:
    """Evaluates queries on a reusable pool of worker threads.

    A query's terms are split into contiguous chunks with
    :func:`dispatch_tasks`, each chunk is scored on the pool and the partial
    results are summed. An exception raised by any worker propagates out of
    :meth:`evaluate`; partial results are never returned.
    """

    def __init__(self, workers: int = DEFAULT_WORKERS) -> None:
        self.workers = max(workers, 1)
        self._executor: Optional[ThreadPoolExecutor] = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="termfinder-query"
            )
        return self._executor

    def close(self) -> None:
        """Shutdown the thread pool executor."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "QueryEngine":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def evaluate(self, view: CorpusView, query_text: str) -> QueryResult:
        terms = query_text.split()
        if not terms:
            return {}

        executor = self._get_executor()
        futures = [
            executor.submit(process_terms, view, terms[start : start + count])
            for start, count in dispatch_tasks(self.workers, len(terms))
        ]
        LOGGER.debug("Dispatched %d terms to %d workers", len(terms), len(futures))

        results: QueryResult = {}
        for future in futures:
            combine_results(results, future.result())
        return results


def evaluate(index: CorpusIndex, query_text: str, worker_count: int = DEFAULT_WORKERS) -> QueryResult:
    """One-off evaluation on a pool that lives only for this query."""
    with QueryEngine(worker_count) as engine:
        return engine.evaluate(index.view(), query_text)


def rank_results(results: QueryResult, top_k: int = 20) -> List[SearchResult]:
    """Sort scores descending, keep at most ``top_k`` and stop at the first zero."""
    ranked: List[SearchResult] = []
    for path, score in sorted(results.items(), key=lambda item: item[1], reverse=True)[:top_k]:
        if score <= 0.0:
            break
        ranked.append(SearchResult(path=path, score=score))
    return ranked
