"""JSON state file persistence for the corpus index."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping

from termfinder.index.corpus import CorpusIndex, IndexConsistencyError
from termfinder.ingestion.extractors import ExtractionError, Extractor
from termfinder.models import Document
from termfinder.utils.files import last_modified

LOGGER = logging.getLogger(__name__)

FORMAT_VERSION = 1


class IndexFormatError(ValueError):
    """Raised when a state file cannot be turned back into an index."""


@dataclass(slots=True)
class ReconcileStats:
    removed: List[Path] = field(default_factory=list)
    updated: List[Path] = field(default_factory=list)
    failed: List[Path] = field(default_factory=list)
    discovered: int = 0


def index_to_dict(index: CorpusIndex) -> dict[str, Any]:
    return {
        "version": FORMAT_VERSION,
        "tracked_dirs": sorted(str(path) for path in index.tracked_dirs),
        "documents": {str(path): doc.to_dict() for path, doc in index.documents.items()},
        "document_frequency": dict(index.document_frequency),
        "doc_count": index.doc_count,
    }


def index_from_dict(
    payload: Mapping[str, Any],
    *,
    extractors: Mapping[str, Extractor] | None = None,
    logger: logging.Logger | None = None,
) -> CorpusIndex:
    """Rebuild an index from its serialized form, all or nothing."""
    if not isinstance(payload, Mapping):
        raise IndexFormatError("State file must contain a JSON object")

    version = payload.get("version", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise IndexFormatError(f"Unsupported state file version: {version!r}")

    if not isinstance(payload.get("tracked_dirs"), list):
        raise IndexFormatError("Malformed state file: tracked_dirs must be a list")

    index = CorpusIndex(extractors=extractors, logger=logger)
    try:
        index.tracked_dirs.update(Path(item) for item in payload["tracked_dirs"])
        index.documents.update(
            (Path(path), Document.from_dict(doc)) for path, doc in payload["documents"].items()
        )
        index.document_frequency.update(
            (str(term), int(count)) for term, count in payload["document_frequency"].items()
        )
        index.doc_count = int(payload["doc_count"])
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise IndexFormatError(f"Malformed state file: {exc!r}") from exc

    for path, doc in index.documents.items():
        if doc.terms_count < 0:
            raise IndexFormatError(f"Malformed state file: negative terms_count for {path}")
        if any(count <= 0 for count in doc.term_frequency.values()):
            raise IndexFormatError(f"Malformed state file: non-positive term count in {path}")
    if any(count < 0 for count in index.document_frequency.values()):
        raise IndexFormatError("Malformed state file: negative document frequency")
    for term in [term for term, count in index.document_frequency.items() if count == 0]:
        del index.document_frequency[term]

    try:
        index.check_consistency()
    except IndexConsistencyError as exc:
        raise IndexFormatError(f"Inconsistent state file: {exc}") from exc
    return index


def save_index(index: CorpusIndex, state_path: Path) -> None:
    """Write the whole index to ``state_path``, replacing it atomically."""
    state_path = Path(state_path)
    LOGGER.info("Saving index to %s...", state_path)
    payload = index_to_dict(index)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{state_path.name}.", suffix=".tmp", dir=state_path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False)
        os.replace(tmp_name, state_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    LOGGER.info("Done saving.")


def read_index(
    state_path: Path,
    *,
    extractors: Mapping[str, Extractor] | None = None,
    logger: logging.Logger | None = None,
) -> CorpusIndex:
    """Deserialize ``state_path`` without looking at the filesystem."""
    state_path = Path(state_path)
    try:
        with state_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise IndexFormatError(f"Malformed state file {state_path}: {exc}") from exc
    return index_from_dict(payload, extractors=extractors, logger=logger)


def reconcile(index: CorpusIndex, *, rewalk: bool = False) -> ReconcileStats:
    """Bring a freshly loaded index up to date with the filesystem.

    Documents whose file vanished are removed; documents whose modification
    time changed are extracted again. A failed extraction keeps the stale
    entry. Only indexed paths are visited unless ``rewalk`` is set, in which
    case every tracked directory is walked again to pick up new files.
    """
    stats = ReconcileStats()
    changed: List[tuple[Path, int]] = []

    for path, document in index.documents.items():
        try:
            modified = last_modified(path)
        except OSError:
            stats.removed.append(path)
            continue
        if modified != document.last_modified:
            changed.append((path, modified))

    for path in stats.removed:
        index.logger.info("Invalidating %s...", path)
        index.remove_document(path)

    for path, modified in changed:
        index.logger.info("Updating %s...", path)
        try:
            index.index_file(path, modified)
        except ExtractionError as exc:
            index.logger.error("Keeping stale entry for %s: %s", path, exc)
            stats.failed.append(path)
        else:
            stats.updated.append(path)

    if rewalk:
        for dir_path in sorted(index.tracked_dirs):
            if not dir_path.is_dir():
                index.logger.warning("Tracked directory %s is gone, not walking it", dir_path)
                continue
            walk_stats = index.add_directory(dir_path, skip_unchanged=True)
            stats.discovered += walk_stats.indexed

    return stats


def load_index(
    state_path: Path,
    *,
    extractors: Mapping[str, Extractor] | None = None,
    logger: logging.Logger | None = None,
    rewalk: bool = False,
) -> CorpusIndex:
    """Read ``state_path`` and reconcile it against the current files."""
    LOGGER.info("Loading the index from %s...", state_path)
    index = read_index(state_path, extractors=extractors, logger=logger)
    stats = reconcile(index, rewalk=rewalk)
    LOGGER.info(
        "Done loading index: %d removed, %d updated, %d failed, %d new",
        len(stats.removed),
        len(stats.updated),
        len(stats.failed),
        stats.discovered,
    )
    return index
