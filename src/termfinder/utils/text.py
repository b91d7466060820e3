"""Tokenization and term normalization helpers."""

from __future__ import annotations

from typing import Iterable, Iterator


def normalize(token: str) -> str:
    """Map a raw token to the term used as an index key.

    Indexing and querying both go through this function, so two tokens that
    only differ in case always land on the same term.
    """
    return token.upper()


class Lexer:
    """Split text into tokens lazily.

    A token is a maximal run of digits, a maximal run of alphanumerics that
    starts with a letter, or any other single non-whitespace character.
    """

    def __init__(self, content: str) -> None:
        self.content = content

    def __iter__(self) -> Iterator[str]:
        content = self.content
        size = len(content)
        pos = 0
        while pos < size:
            char = content[pos]
            if char.isspace():
                pos += 1
                continue

            start = pos
            if char.isdigit():
                while pos < size and content[pos].isdigit():
                    pos += 1
            elif char.isalpha():
                while pos < size and content[pos].isalnum():
                    pos += 1
            else:
                pos += 1
            yield content[start:pos]


def tokenize(text: str) -> Iterable[str]:
    """Return a restartable token sequence for ``text``."""
    return Lexer(text)


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())
