"""Plain-text extraction for the file formats TermFinder can index.

XHTML/XML documents are parsed with the standard library ElementTree and
their character data is joined with spaces. PDFs go through PyMuPDF (fitz).
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Callable, Dict, Iterator, Mapping

import fitz  # PyMuPDF

from termfinder.utils.text import normalize_whitespace

LOGGER = logging.getLogger(__name__)

Extractor = Callable[[Path], str]


class ExtractionError(Exception):
    """Raised when the text content of a file cannot be extracted."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Cannot extract {path}: {reason}")
        self.path = path
        self.reason = reason


def iter_xml_text(path: Path) -> Iterator[str]:
    """Yield the character data of an XML document in document order."""
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise ExtractionError(path, f"malformed XML ({exc})") from exc
    except OSError as exc:
        raise ExtractionError(path, str(exc)) from exc
    yield from root.itertext()


def extract_xml(path: Path) -> str:
    return " ".join(iter_xml_text(path))


def iter_pdf_text_parts(path: Path) -> Iterator[str]:
    """Yield text content from a PDF file page by page."""
    try:
        doc = fitz.open(path)
    except Exception as exc:
        raise ExtractionError(path, f"cannot open PDF ({exc})") from exc

    try:
        for index in range(len(doc)):
            try:
                text = doc[index].get_text() or ""
            except Exception as exc:  # pragma: no cover - depends on the PDF
                LOGGER.warning("Failed to read page %s in %s: %s", index, path, exc)
                continue
            normalized = normalize_whitespace([text])
            if normalized:
                yield normalized + "\n"
    finally:
        doc.close()


def extract_pdf(path: Path) -> str:
    return "".join(iter_pdf_text_parts(path))


def extract_plain_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ExtractionError(path, str(exc)) from exc


DEFAULT_EXTRACTORS: Dict[str, Extractor] = {
    ".xhtml": extract_xml,
    ".xml": extract_xml,
    ".html": extract_xml,
    ".pdf": extract_pdf,
    ".txt": extract_plain_text,
    ".md": extract_plain_text,
}


def extract(path: Path, extractors: Mapping[str, Extractor] | None = None) -> str:
    """Return the text content of ``path`` using the extractor for its suffix."""
    registry = DEFAULT_EXTRACTORS if extractors is None else extractors
    extractor = registry.get(path.suffix.lower())
    if extractor is None:
        raise ExtractionError(path, f"unsupported extension {path.suffix!r}")
    return extractor(path)
