"""Flat JSON snapshot of a corpus index."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, List

from canonfinder.corpora import CorpusProfile, is_toc_name
from canonfinder.models import IndexEntry

LOGGER = logging.getLogger(__name__)

PATH_SAMPLE = 10


class IndexStore:
    """Reads, validates and rewrites the ``<corpus>-index.json`` snapshot.

    The snapshot is a cache: an unreadable or stale file is discarded and
    rebuilt, never repaired in place.
    """

    def __init__(self, path: Path, profile: CorpusProfile) -> None:
        self.path = Path(path)
        self.profile = profile

    def load(self) -> List[IndexEntry] | None:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Discarding unreadable index %s: %s", self.path, exc)
            return None
        if not isinstance(raw, list):
            return None
        try:
            entries = [IndexEntry.from_dict(item) for item in raw]
        except (KeyError, TypeError, AttributeError) as exc:
            LOGGER.warning("Discarding malformed index %s: %s", self.path, exc)
            return None
        return [entry for entry in entries if not is_toc_name(entry.path)]

    def save(self, entries: List[IndexEntry]) -> None:
        """Write the snapshot atomically; last writer wins."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([entry.to_dict() for entry in entries], ensure_ascii=False)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def is_valid(self, entries: List[IndexEntry]) -> bool:
        """Sampled staleness checks against the live corpus."""
        if not entries:
            return False
        for entry in entries[:PATH_SAMPLE]:
            if not entry.id or not entry.path or not Path(entry.path).exists():
                LOGGER.debug("Index stale: missing path %s", entry.path)
                return False
            if not entry.meta:
                LOGGER.debug("Index stale: %s has no meta", entry.id)
                return False
            version = entry.meta.get("indexVersion")
            if version is not None and version != self.profile.index_version:
                LOGGER.debug("Index stale: version %s", version)
                return False

        for entry in entries[: self.profile.required_meta_sample]:
            if any(entry.meta is None or key not in entry.meta for key in self.profile.required_meta):
                LOGGER.debug("Index stale: %s lacks %s", entry.id, self.profile.required_meta)
                return False

        for entry in entries[: self.profile.composite_alias_sample]:
            prefix = entry.meta_value("alias_prefix")
            if prefix in ("SN", "AN") and "." not in entry.meta_value("alias"):
                LOGGER.debug("Index stale: %s lacks composite alias", entry.id)
                return False
        return True

    def load_or_build(self, build: Callable[[], List[IndexEntry]]) -> List[IndexEntry]:
        entries = self.load()
        if entries is not None and self.is_valid(entries):
            return entries

        LOGGER.info("Rebuilding %s index at %s", self.profile.name, self.path)
        entries = [entry for entry in build() if not is_toc_name(entry.path)]
        try:
            self.save(entries)
        except OSError as exc:
            LOGGER.warning("Unable to write index %s: %s", self.path, exc)
        return entries
