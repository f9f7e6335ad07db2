"""Terminal client that reuses the in-process search services."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable

from menusearch.config import settings
from menusearch.container import ServiceContainer
from menusearch.errors import SearchServiceError
from menusearch.models import EntityKind, Pagination, SearchResult

GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"


def perform_query(container: ServiceContainer, kind: EntityKind, query: str, page: int, size: int) -> SearchResult:
    return container.search.search(kind, query, pagination=Pagination(page=page, size=size))


def pretty_print_result(result: SearchResult) -> None:
    color = GREEN if result.total else RED
    print(
        f"Query: {result.query!r} | {result.kind.value} | "
        f"{color}{result.total} matches{RESET} | page {result.page}/{max(result.total_pages, 1)}"
    )
    offset = (result.page - 1) * result.size
    for idx, hit in enumerate(result.hits, start=offset + 1):
        score_repr = f"{hit.score:.2f}" if isinstance(hit.score, (int, float)) else "-"
        source = hit.source
        if result.kind == EntityKind.PRODUCT:
            venue = (source.get("venue") or {}).get("name", "-")
            detail = f"{source.get('category')} | {source.get('price')} | {venue}"
        else:
            detail = f"{source.get('cuisine')} | rating={source.get('rating')}"
        print(f"  {idx:02d}. score={score_repr} | {source.get('name')} | {detail}")


def interactive_shell(container: ServiceContainer, kind: EntityKind, size: int) -> None:
    print(f"Interactive {kind.value} search. Type 'exit' to quit.")
    while True:
        try:
            query = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if query.lower() in {"exit", "quit"}:
            return
        try:
            pretty_print_result(perform_query(container, kind, query, 1, size))
        except SearchServiceError as exc:
            print(f"{RED}{exc}{RESET}")


def batch_mode(container: ServiceContainer, kind: EntityKind, file_path: Path, size: int) -> None:
    with file_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            query = line.strip()
            if not query:
                continue
            pretty_print_result(perform_query(container, kind, query, 1, size))


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="CLI client for the menu search service")
    parser.add_argument("query", nargs="?", help="Query string. If omitted, starts REPL mode.")
    parser.add_argument("--type", choices=[kind.value for kind in EntityKind], default=EntityKind.PRODUCT.value)
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--size", type=int, default=settings.default_page_size)
    parser.add_argument("--batch", type=Path, help="File with queries to execute line by line")
    parser.add_argument("--suggest", action="store_true", help="Treat the query as an autocomplete prefix")
    parser.add_argument("--reindex", action="store_true", help="Rebuild both indices from the system of record")
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(level=logging.getLevelName(settings.log_level.upper()))
    kind = EntityKind(args.type)
    container = ServiceContainer.build(settings)
    try:
        container.startup()
        if args.reindex:
            report = container.indexing.reindex_all()
            print(f"Indexed {report.venuesIndexed} restaurants and {report.productsIndexed} products")
            for failure in report.failures:
                print(f"{RED}{failure.kind.value}: {failure.failed} rejected ({', '.join(failure.ids[:10])}){RESET}")
            return 1 if report.failures else 0
        if args.batch:
            batch_mode(container, kind, args.batch, args.size)
            return 0
        if args.suggest:
            for item in container.suggestions.suggest(kind, args.query or "", args.size):
                print(f"  {item.text} ({item.score})")
            return 0
        if args.query is not None:
            pretty_print_result(perform_query(container, kind, args.query, args.page, args.size))
            return 0
        interactive_shell(container, kind, args.size)
        return 0
    except SearchServiceError as exc:
        print(f"{RED}{exc}{RESET}")
        return 2
    finally:
        container.close()


if __name__ == "__main__":
    raise SystemExit(main())
