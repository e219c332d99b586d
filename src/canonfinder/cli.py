"""Command line interface for CanonFinder."""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from canonfinder.config import AppConfig
from canonfinder.corpora import CORPORA, CorpusNotFoundError, get_profile
from canonfinder.models import ExtractionPolicy
from canonfinder.service import CanonLibrary

console = Console()
app = typer.Typer(help="CanonFinder - search and read Buddhist canon corpora")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _unknown_corpus(corpus: str) -> typer.BadParameter:
    return typer.BadParameter(f"Unknown corpus '{corpus}'. Known corpora: {', '.join(sorted(CORPORA))}")


def _make_config(home: Path | None, root: Path | None, corpus: str) -> AppConfig:
    config = AppConfig(home=home)
    if root is not None:
        # keyed by canonical profile name so "CBETA" and "cbeta" agree
        try:
            name = get_profile(corpus).name
        except KeyError as exc:
            raise _unknown_corpus(corpus) from exc
        config.corpus_roots[name] = root
    return config


def _open_library(config: AppConfig, corpus: str) -> CanonLibrary:
    try:
        return CanonLibrary(config, corpus)
    except KeyError as exc:
        raise _unknown_corpus(corpus) from exc


def _print_json(data: Any) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2))


@app.command()
def index(
    corpus: str = typer.Argument(..., help="Corpus name (cbeta, tipitaka, gretil, sarit, muktabodha)"),
    home: Path = typer.Option(None, "--home", help="Data directory holding the corpora"),
    root: Path = typer.Option(None, "--root", help="Override the corpus root directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Rebuild the index snapshot of a corpus."""
    _setup_logging(verbose)
    library = _open_library(_make_config(home, root, corpus), corpus)

    console.print(f"Indexing [bold]{library.root}[/bold]...")
    try:
        entries = library.rebuild_index()
    except CorpusNotFoundError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if not entries:
        console.print("[yellow]No documents found.[/yellow]")
        return
    stats = library.stats
    console.print(f"Indexed: {stats.indexed}, failed: {stats.failed} -> {library.store.path}")


@app.command("title-search")
def title_search(
    query: str = typer.Argument(..., help="Title, id or alias to look up"),
    corpus: str = typer.Option("cbeta", "--corpus", "-c", help="Corpus name"),
    home: Path = typer.Option(None, "--home", help="Data directory holding the corpora"),
    root: Path = typer.Option(None, "--root", help="Override the corpus root directory"),
    limit: int = typer.Option(10, help="Number of results to display"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Fuzzy search over titles, ids and aliases."""
    _setup_logging(verbose)
    library = _open_library(_make_config(home, root, corpus), corpus)
    try:
        hits = library.search_title(query, limit=limit)
    except CorpusNotFoundError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if as_json:
        _print_json([{"id": h.entry.id, "title": h.entry.title, "path": h.entry.path, "score": h.score} for h in hits])
        return
    if not hits:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Id")
    table.add_column("Title")
    for hit in hits:
        table.add_row(f"{hit.score:.3f}", hit.entry.id, hit.entry.title)
    console.print(table)


@app.command()
def search(
    pattern: str = typer.Argument(..., help="Regular expression or literal text"),
    corpus: str = typer.Option("cbeta", "--corpus", "-c", help="Corpus name"),
    home: Path = typer.Option(None, "--home", help="Data directory holding the corpora"),
    root: Path = typer.Option(None, "--root", help="Override the corpus root directory"),
    max_results: int = typer.Option(20, help="Maximum number of files"),
    max_matches: int = typer.Option(5, help="Maximum matches shown per file"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Grep the corpus content."""
    _setup_logging(verbose)
    library = _open_library(_make_config(home, root, corpus), corpus)
    try:
        results = library.search_content(pattern, max_results=max_results, max_matches_per_file=max_matches)
    except CorpusNotFoundError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if as_json:
        _print_json([dataclasses.asdict(result) for result in results])
        return
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Id")
    table.add_column("Title")
    table.add_column("Matches")
    table.add_column("Line")
    table.add_column("Context")
    for result in results:
        first = result.matches[0]
        context = first.context.replace("\n", " ")
        table.add_row(result.file_id, result.title, str(result.total_matches), str(first.line_number), context[:160])
    console.print(table)


@app.command()
def fetch(
    doc_id: Optional[str] = typer.Argument(None, help="Document id"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Fetch the best title match instead"),
    corpus: str = typer.Option("cbeta", "--corpus", "-c", help="Corpus name"),
    home: Path = typer.Option(None, "--home", help="Data directory holding the corpora"),
    root: Path = typer.Option(None, "--root", help="Override the corpus root directory"),
    part: Optional[str] = typer.Option(None, "--part", help="Fascicle (juan) number"),
    line: Optional[int] = typer.Option(None, "--line", help="Extract around this source line"),
    context_before: int = typer.Option(10, help="Source lines before --line"),
    context_after: int = typer.Option(100, help="Source lines after --line"),
    head_index: Optional[int] = typer.Option(None, "--head-index", help="Section after the n-th heading"),
    head_query: Optional[str] = typer.Option(None, "--head-query", help="Section after the first matching heading"),
    include_notes: bool = typer.Option(False, "--include-notes", help="Keep notes inline"),
    start_char: Optional[int] = typer.Option(None, "--start", help="First character to return"),
    max_chars: Optional[int] = typer.Option(None, "--max-chars", help="Maximum characters to return"),
    page: Optional[int] = typer.Option(None, help="Page number (with --page-size)"),
    page_size: Optional[int] = typer.Option(None, "--page-size", help="Characters per page"),
    highlight: Optional[str] = typer.Option(None, help="Report positions of this string"),
    highlight_regex: bool = typer.Option(False, "--highlight-regex", help="Treat --highlight as a regex"),
    as_json: bool = typer.Option(False, "--json", help="Print text and metadata as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Print the plain text of a document."""
    _setup_logging(verbose)
    if not doc_id and not query:
        raise typer.BadParameter("Provide a document id or --query")
    library = _open_library(_make_config(home, root, corpus), corpus)
    policy = ExtractionPolicy(
        include_notes=include_notes,
        part=part,
        line_number=line,
        context_before=context_before,
        context_after=context_after,
        head_index=head_index,
        head_query=head_query,
    )
    slice_args: dict[str, Any] = {
        "start_char": start_char,
        "max_chars": max_chars,
        "page": page,
        "page_size": page_size,
        "highlight": highlight,
        "highlight_regex": highlight_regex,
    }
    try:
        if doc_id:
            result = library.fetch_by_id(doc_id, policy, **slice_args)
        else:
            result = library.fetch_by_query(query or "", policy, **slice_args)
    except CorpusNotFoundError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if as_json:
        _print_json({"text": result.text, "meta": result.meta})
        return
    if not result.found:
        console.print("[yellow]Document not found.[/yellow]")
        return
    meta = result.meta
    console.print(
        f"[bold]{meta['id']}[/bold] ({meta['extractionMethod']}) "
        f"{meta['returnedStart']}-{meta['returnedEnd']} of {meta['totalLength']}"
    )
    typer.echo(result.text)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    home: Path = typer.Option(None, "--home", help="Data directory holding the corpora"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - defensive
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from canonfinder.web.app import app as web_app, configure

    config = configure(AppConfig(home=home))
    console.print(f"Starting web interface on http://{host}:{port} (data: {config.home})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
