"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from canonfinder.corpora import get_profile


def _get_default_home() -> Path:
    """Get the data directory holding the corpora and the index cache."""
    env_home = os.environ.get("CANONFINDER_HOME")
    if env_home:
        return Path(env_home).expanduser()

    # When running from a checkout, prefer local data/ if it exists
    local_home = Path("data")
    if local_home.is_dir():
        return local_home

    return Path.home() / ".canonfinder"


def _default_workers() -> int:
    return min(32, (os.cpu_count() or 1) + 4)


@dataclass(slots=True)
class AppConfig:
    home: Path | None = None
    cache_dir: Path | None = None
    corpus_roots: Dict[str, Path] = field(default_factory=dict)
    workers: int = 0
    default_max_chars: int = 8000
    headings_limit: int = 10
    context_bytes: int = 100

    def __post_init__(self) -> None:
        if self.home is None:
            self.home = _get_default_home()
        if self.cache_dir is None:
            self.cache_dir = Path(self.home) / "cache"
        if self.workers <= 0:
            self.workers = _default_workers()

    def resolve_corpus_root(self, corpus: str) -> Path:
        profile = get_profile(corpus)
        override = self.corpus_roots.get(profile.name)
        if override is not None:
            return Path(override).expanduser()
        return Path(self.home).joinpath(*profile.root_subpath)

    def resolve_index_path(self, corpus: str) -> Path:
        return Path(self.cache_dir) / f"{get_profile(corpus).name}-index.json"
