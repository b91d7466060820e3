"""Core TermFinder data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

QueryResult = Dict[Path, float]


@dataclass(slots=True)
class Document:
    """Term statistics of a single indexed file."""

    terms_count: int
    last_modified: int
    term_frequency: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "terms_count": self.terms_count,
            "last_modified": self.last_modified,
            "term_frequency": dict(self.term_frequency),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "Document":
        return cls(
            terms_count=int(payload["terms_count"]),
            last_modified=int(payload["last_modified"]),
            term_frequency={str(k): int(v) for k, v in payload["term_frequency"].items()},
        )


@dataclass(slots=True)
class SearchResult:
    path: Path
    score: float
