"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from termfinder.index.search import DEFAULT_WORKERS

DEFAULT_DOCS_DIR = Path("docs.gl")


@dataclass(slots=True)
class AppConfig:
    state_path: Path = Path("termfinder.json")
    docs_dirs: Tuple[Path, ...] = field(default_factory=lambda: (DEFAULT_DOCS_DIR,))
    workers: int = DEFAULT_WORKERS
    top_k: int = 20
    rewalk: bool = False

    def resolve_state_path(self, base_dir: Path | None = None) -> Path:
        if Path(self.state_path).is_absolute() or base_dir is None:
            return Path(self.state_path)
        return base_dir / self.state_path
