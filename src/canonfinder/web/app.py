"""FastAPI application exposing the CanonFinder query surface."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from canonfinder.config import AppConfig
from canonfinder.corpora import CORPORA, CorpusNotFoundError
from canonfinder.models import ExtractionPolicy
from canonfinder.service import CanonLibrary

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="CanonFinder", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_CONFIG: AppConfig | None = None


def configure(config: AppConfig) -> AppConfig:
    global _CONFIG
    _CONFIG = config
    return config


def get_config() -> AppConfig:
    return _CONFIG if _CONFIG is not None else configure(AppConfig())


class TitleSearchPayload(BaseModel):
    query: str
    corpus: str = "cbeta"
    limit: int = 10


class ContentSearchPayload(BaseModel):
    pattern: str
    corpus: str = "cbeta"
    max_results: int = 20
    max_matches_per_file: int = 5


class FetchPayload(BaseModel):
    corpus: str = "cbeta"
    id: str | None = None
    query: str | None = None
    part: str | None = None
    line_number: int | None = None
    context_before: int = 10
    context_after: int = 100
    head_index: int | None = None
    head_query: str | None = None
    include_notes: bool = False
    start_char: int | None = None
    end_char: int | None = None
    max_chars: int | None = None
    page: int | None = None
    page_size: int | None = None
    highlight: str | None = None
    highlight_regex: bool = False


def _library(corpus: str) -> CanonLibrary:
    try:
        return CanonLibrary(get_config(), corpus)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown corpus '{corpus}'")


async def _run(func: Any, *args: Any, **kwargs: Any) -> Any:
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except CorpusNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except OSError as exc:  # pragma: no cover - defensive
        LOGGER.exception("Request failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.get("/corpora")
async def list_corpora() -> dict[str, List[Dict[str, Any]]]:
    config = get_config()
    corpora = [
        {"name": name, "root": str(config.resolve_corpus_root(name)), "available": config.resolve_corpus_root(name).is_dir()}
        for name in sorted(CORPORA)
    ]
    return {"corpora": corpora}


@app.post("/search/title")
async def search_title(payload: TitleSearchPayload) -> dict[str, Any]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")
    limit = max(1, min(payload.limit, 100))
    library = _library(payload.corpus)
    hits = await _run(library.search_title, query, limit)
    return {
        "results": [
            {"id": hit.entry.id, "title": hit.entry.title, "path": hit.entry.path, "score": hit.score, "meta": hit.entry.meta}
            for hit in hits
        ]
    }


@app.post("/search/content")
async def search_content(payload: ContentSearchPayload) -> dict[str, Any]:
    if not payload.pattern.strip():
        raise HTTPException(status_code=400, detail="Empty pattern")
    library = _library(payload.corpus)
    results = await _run(
        library.search_content,
        payload.pattern,
        max(1, min(payload.max_results, 200)),
        max(1, payload.max_matches_per_file),
    )
    return {"results": [dataclasses.asdict(result) for result in results]}


@app.post("/fetch")
async def fetch_document(payload: FetchPayload) -> dict[str, Any]:
    doc_id = (payload.id or "").strip()
    query = (payload.query or "").strip()
    if not doc_id and not query:
        raise HTTPException(status_code=400, detail="Either id or query must be provided")

    library = _library(payload.corpus)
    policy = ExtractionPolicy(
        include_notes=payload.include_notes,
        part=payload.part,
        line_number=payload.line_number,
        context_before=payload.context_before,
        context_after=payload.context_after,
        head_index=payload.head_index,
        head_query=payload.head_query,
    )
    slice_args = {
        "start_char": payload.start_char,
        "end_char": payload.end_char,
        "max_chars": payload.max_chars,
        "page": payload.page,
        "page_size": payload.page_size,
        "highlight": payload.highlight,
        "highlight_regex": payload.highlight_regex,
    }
    if doc_id:
        result = await _run(library.fetch_by_id, doc_id, policy, **slice_args)
    else:
        result = await _run(library.fetch_by_query, query, policy, **slice_args)
    if not result.found:
        raise HTTPException(status_code=404, detail="Document not found")
    return {"text": result.text, "meta": result.meta}
