"""In-memory TF-IDF corpus index."""

from __future__ import annotations

import logging
import math
import stat
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, Iterable, KeysView, List, Mapping, Set

from termfinder.ingestion.extractors import DEFAULT_EXTRACTORS, ExtractionError, Extractor, extract
from termfinder.models import Document
from termfinder.utils.files import has_extension
from termfinder.utils.text import normalize, tokenize

LOGGER = logging.getLogger(__name__)

Tokenizer = Callable[[str], Iterable[str]]


class IndexConsistencyError(RuntimeError):
    """Raised when document frequencies disagree with the indexed documents."""


@dataclass(slots=True)
class IndexStats:
    indexed: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    processed_files: List[Path] = field(default_factory=list)

    def increment(self, status: str, path: Path) -> None:
        if status == "indexed":
            self.indexed += 1
        elif status == "unchanged":
            self.unchanged += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


class CorpusView:
    """Read-only access to a :class:`CorpusIndex` for query workers."""

    __slots__ = ("_index", "documents", "document_frequency")

    def __init__(self, index: "CorpusIndex") -> None:
        self._index = index
        self.documents: Mapping[Path, Document] = MappingProxyType(index.documents)
        self.document_frequency: Mapping[str, int] = MappingProxyType(index.document_frequency)

    @property
    def doc_count(self) -> int:
        return self._index.doc_count

    def paths(self) -> KeysView[Path]:
        return self.documents.keys()

    def corpus_size(self) -> int:
        return len(self.documents)

    def idf(self, term: str) -> float:
        """Inverse document frequency, 0.0 for a term no document contains."""
        frequency = self.document_frequency.get(normalize(term), 0)
        if frequency <= 0:
            return 0.0
        return math.log10(self.doc_count / frequency)

    def tf(self, path: Path, term: str) -> float:
        """Share of the document's tokens equal to ``term``.

        Unknown documents, absent terms and empty documents all yield 0.0.
        """
        document = self.documents.get(Path(path))
        if document is None or document.terms_count <= 0:
            return 0.0
        count = document.term_frequency.get(normalize(term), 0)
        return count / document.terms_count

    def score(self, path: Path, term: str) -> float:
        return self.tf(path, term) * self.idf(term)


class CorpusIndex:
    """Per-document term frequencies plus corpus-wide document frequencies.

    The index owns every mutation. Query code should only ever see the
    :class:`CorpusView` returned by :meth:`view`; mutating the index while a
    query runs is not supported.
    """

    def __init__(
        self,
        *,
        extractors: Mapping[str, Extractor] | None = None,
        tokenizer: Tokenizer = tokenize,
        logger: logging.Logger | None = None,
    ) -> None:
        self.tracked_dirs: Set[Path] = set()
        self.documents: Dict[Path, Document] = {}
        self.document_frequency: Dict[str, int] = {}
        self.doc_count = 0
        self.extractors = DEFAULT_EXTRACTORS if extractors is None else extractors
        self.tokenizer = tokenizer
        self.logger = logger or LOGGER
        self._view = CorpusView(self)

    def view(self) -> CorpusView:
        return self._view

    def corpus_size(self) -> int:
        return len(self.documents)

    def idf(self, term: str) -> float:
        return self._view.idf(term)

    def tf(self, path: Path, term: str) -> float:
        return self._view.tf(path, term)

    def score(self, path: Path, term: str) -> float:
        return self._view.score(path, term)

    def add_directory(self, dir_path: Path, *, skip_unchanged: bool = False) -> IndexStats:
        """Recursively index every supported file below ``dir_path``.

        ``OSError`` raised while listing a directory or reading file metadata
        aborts the whole walk. Files whose content cannot be extracted are
        logged and skipped. With ``skip_unchanged`` files already indexed with
        the same modification time are not extracted again.
        """
        dir_path = Path(dir_path)
        self.logger.info("Indexing directory: %s", dir_path)
        stats = IndexStats()
        self._walk(dir_path, stats, skip_unchanged)
        self.tracked_dirs.add(dir_path)
        return stats

    def _walk(self, dir_path: Path, stats: IndexStats, skip_unchanged: bool) -> None:
        for entry in sorted(dir_path.iterdir()):
            info = entry.lstat()
            if stat.S_ISLNK(info.st_mode):
                # Linked directories are never followed; linked files are indexed.
                if entry.is_dir():
                    self.logger.debug("Skipping linked directory %s", entry)
                    stats.increment("skipped", entry)
                    continue
                info = entry.stat()

            if stat.S_ISDIR(info.st_mode):
                self._walk(entry, stats, skip_unchanged)
                continue

            if not has_extension(entry, self.extractors):
                self.logger.debug("Skipping file %s", entry)
                stats.increment("skipped", entry)
                continue

            known = self.documents.get(entry)
            if skip_unchanged and known is not None and known.last_modified == info.st_mtime_ns:
                stats.increment("unchanged", entry)
                continue

            try:
                self.index_file(entry, info.st_mtime_ns)
            except ExtractionError as exc:
                self.logger.error("%s", exc)
                stats.increment("failed", entry)
            else:
                stats.increment("indexed", entry)

    def index_file(self, path: Path, last_modified: int) -> None:
        """Extract, tokenize and (re)index a single file.

        Raises ``ExtractionError`` before touching the index, so a failed
        extraction leaves any previous entry for ``path`` in place.
        """
        content = extract(path, self.extractors)
        self.add_document(path, self.tokenizer(content), last_modified)

    def add_document(self, path: Path, tokens: Iterable[str], last_modified: int) -> None:
        path = Path(path)
        self.remove_document(path)

        self.logger.debug("Indexing document: %s", path)
        term_frequency: Dict[str, int] = {}
        terms_count = 0
        for token in tokens:
            term = normalize(token)
            term_frequency[term] = term_frequency.get(term, 0) + 1
            terms_count += 1

        for term in term_frequency:
            self.document_frequency[term] = self.document_frequency.get(term, 0) + 1

        self.documents[path] = Document(
            terms_count=terms_count,
            last_modified=last_modified,
            term_frequency=term_frequency,
        )
        self.doc_count += 1

    def remove_document(self, path: Path) -> bool:
        """Retract a document's contribution. Returns False if it was not indexed."""
        document = self.documents.pop(Path(path), None)
        if document is None:
            return False

        self.doc_count -= 1
        for term in document.term_frequency:
            remaining = self.document_frequency.get(term, 0) - 1
            if remaining > 0:
                self.document_frequency[term] = remaining
            else:
                self.document_frequency.pop(term, None)
        return True

    def check_consistency(self) -> None:
        """Recompute the frequency tables and compare them with the stored ones."""
        if self.doc_count != len(self.documents):
            raise IndexConsistencyError(
                f"doc_count is {self.doc_count} but {len(self.documents)} documents are indexed"
            )

        expected: Dict[str, int] = {}
        for path, document in self.documents.items():
            if sum(document.term_frequency.values()) != document.terms_count:
                raise IndexConsistencyError(f"terms_count of {path} does not match its terms")
            for term, count in document.term_frequency.items():
                if count <= 0:
                    raise IndexConsistencyError(f"{path} holds a non-positive count for {term!r}")
                expected[term] = expected.get(term, 0) + 1

        if any(count < 0 for count in self.document_frequency.values()):
            raise IndexConsistencyError("negative document frequency")
        stored = {term: count for term, count in self.document_frequency.items() if count != 0}
        if stored != expected:
            raise IndexConsistencyError("document frequencies do not match the indexed documents")
