"""Per-corpus policy data.

Every corpus family shares one extraction, indexing, search and resolution
code path; the differences between them are described here as data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

TOC_NAME_PARTS = ("toc", "sitemap", "tree")


class CorpusNotFoundError(FileNotFoundError):
    """Raised when a corpus root directory is missing or unreadable."""

    def __init__(self, corpus: str, root: object) -> None:
        super().__init__(f"Corpus '{corpus}' not found at {root}")
        self.corpus = corpus
        self.root = root


@dataclass(slots=True, frozen=True)
class CorpusProfile:
    name: str
    root_subpath: Tuple[str, ...]
    suffixes: Tuple[str, ...] = (".xml",)
    scanner: str = "tei"
    title_strategy: str = "main"
    max_events: int = 40_000
    id_from_stem: bool = False
    exclude_name_parts: Tuple[str, ...] = ()
    privileged_subdir: str | None = None
    fold: str | None = None
    skip_header: bool = False
    scan_body: bool = True
    plain_lines: bool = False
    index_version: str = "tei_index_v1"
    required_meta: Tuple[str, ...] = ()
    required_meta_sample: int = 10
    composite_alias_sample: int = 0
    search_meta_keys: Tuple[str, ...] | None = None
    aliases: bool = False
    canon_code_lookup: bool = False
    juan_hints: bool = False
    cjk_variant_regex: bool = False
    direct_suffixes: Tuple[str, ...] = (".xml",)
    direct_prefixes: Tuple[str, ...] = ()
    direct_subdirs: Tuple[str, ...] = ()

    def accepts(self, filename: str) -> bool:
        lower = filename.lower()
        if not lower.endswith(self.suffixes):
            return False
        return not any(part in lower for part in self.exclude_name_parts)


CORPORA: Dict[str, CorpusProfile] = {
    "cbeta": CorpusProfile(
        name="cbeta",
        root_subpath=("xml-p5",),
        title_strategy="cbeta",
        max_events=50_000,
        privileged_subdir="T",
        skip_header=True,
        plain_lines=True,
        index_version="cbeta_index_v2",
        required_meta=("indexVersion",),
        canon_code_lookup=True,
        juan_hints=True,
        cjk_variant_regex=True,
    ),
    "tipitaka": CorpusProfile(
        name="tipitaka",
        root_subpath=("tipitaka-xml", "romn"),
        scanner="rend",
        max_events=12_000,
        id_from_stem=True,
        exclude_name_parts=TOC_NAME_PARTS,
        fold="pali",
        index_version="tipitaka_index_v2",
        required_meta=("headsPreview",),
        required_meta_sample=20,
        composite_alias_sample=50,
        search_meta_keys=(
            "alias",
            "alias_prefix",
            "nikaya",
            "book",
            "title",
            "subhead",
            "subsubhead",
            "chapter",
            "headsPreview",
        ),
        aliases=True,
        direct_suffixes=(".xml", ".mul.xml", ".att.xml", ".tik.xml", ".nrf.xml"),
    ),
    "gretil": CorpusProfile(
        name="gretil",
        root_subpath=("GRETIL", "1_sanskr", "tei"),
        max_events=50_000,
        id_from_stem=True,
        fold="sanskrit",
        index_version="gretil_index_v1",
        required_meta=("indexVersion",),
        direct_prefixes=("sa_",),
    ),
    "sarit": CorpusProfile(
        name="sarit",
        root_subpath=("SARIT-corpus",),
        max_events=80_000,
        id_from_stem=True,
        fold="sanskrit",
        index_version="sarit_index_v1",
        required_meta=("indexVersion",),
        direct_subdirs=("transliterated",),
    ),
    "muktabodha": CorpusProfile(
        name="muktabodha",
        root_subpath=("MUKTABODHA",),
        suffixes=(".xml", ".txt"),
        scan_body=False,
        id_from_stem=True,
        fold="sanskrit",
        index_version="muktabodha_index_v1",
        required_meta=("indexVersion",),
        direct_suffixes=(".xml", ".txt"),
    ),
}


def get_profile(name: str) -> CorpusProfile:
    try:
        return CORPORA[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown corpus '{name}'. Known corpora: {', '.join(sorted(CORPORA))}") from None


def is_toc_name(filename: str) -> bool:
    return filename.lower().endswith(".toc.xml")
