"""Terminal client that reuses the in-process search logic."""
from __future__ import annotations

import argparse
import asyncio
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path
from typing import AsyncIterator, Iterable

from market_search.config import settings
from market_search.errors import IndexUnavailableError, SearchValidationError
from market_search.es_client import create_client
from market_search.index_client import SearchIndexClient
from market_search.logging_setup import configure_logging
from market_search.models import GlobalSearchResponse, SuggestionItem
from market_search.mongo import connect_to_mongodb
from market_search.services import SearchServices, build_services

MAX_RESULTS = 50
GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"


@asynccontextmanager
async def open_services() -> AsyncIterator[SearchServices]:
    mongo_client, db = await connect_to_mongodb(settings.mongodb_url, settings.mongodb_database)
    index = SearchIndexClient(
        settings.es_node,
        client_factory=partial(create_client, timeout=settings.es_timeout_seconds),
    )
    try:
        yield build_services(index, db)
    finally:
        index.close()
        mongo_client.close()


async def perform_query(query: str) -> GlobalSearchResponse:
    async with open_services() as services:
        return await services.global_search.search(query, MAX_RESULTS, MAX_RESULTS, MAX_RESULTS)


async def perform_suggest(text: str, limit: int) -> list[SuggestionItem]:
    async with open_services() as services:
        return await services.suggestions.suggest(text, limit)


async def perform_reindex() -> int:
    async with open_services() as services:
        if not services.index.is_enabled():
            print(f"{RED}Elasticsearch is not enabled. Set ELASTICSEARCH_NODE first.{RESET}")
            return 1
        try:
            await services.index.initialize()
        except IndexUnavailableError as exc:
            print(f"{RED}Reindex failed: {exc}{RESET}")
            return 1
        reports = await services.reindex.run()
    failed = False
    for report in reports:
        color = GREEN if report.failures == 0 else RED
        failed = failed or report.failures > 0
        print(
            f"{color}{report.entity_type.value}{RESET}: index={report.index_count} store={report.store_count} "
            f"action={report.action} indexed={report.indexed} failures={report.failures}"
        )
    return 1 if failed else 0


def pretty_print_response(payload: GlobalSearchResponse) -> None:
    print(f"Query: {payload.query}")
    sections = (
        ("products", payload.products.items, payload.products.total, lambda p: f"{p.name} | {p.price:g} {p.unit}"),
        ("posts", payload.posts.items, payload.posts.total, lambda p: p.content[:80].replace("\n", " ")),
        ("users", payload.users.items, payload.users.total, lambda u: f"{u.user_name} <{u.email}>"),
    )
    for name, items, total, describe in sections:
        color = GREEN if items else RED
        print(f"  {color}{name}{RESET}: {len(items)} shown / {total} total")
        for idx, item in enumerate(items[:MAX_RESULTS], start=1):
            print(f"    {idx:02d}. {item.id} | {describe(item)}")


def pretty_print_suggestions(text: str, items: list[SuggestionItem]) -> None:
    print(f"Suggest: {text} | results: {len(items)}")
    for idx, item in enumerate(items, start=1):
        print(f"  {idx:02d}. {item.id} | {item.name} | {item.price:g}")


def run_query(query: str) -> None:
    try:
        response = asyncio.run(perform_query(query))
    except SearchValidationError as exc:
        print(f"{RED}{exc}{RESET}")
        return
    pretty_print_response(response)


def interactive_shell() -> None:
    print("Interactive marketplace search. Type 'exit' to quit.")
    while True:
        try:
            query = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if not query:
            continue
        if query.lower() in {"exit", "quit"}:
            return
        run_query(query)


def batch_mode(file_path: Path) -> None:
    with file_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            query = line.strip()
            if not query:
                continue
            run_query(query)


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="CLI client for the marketplace search service")
    parser.add_argument("query", nargs="?", help="Query string. If omitted, starts REPL mode.")
    parser.add_argument("--batch", type=Path, help="File with queries to execute line by line")
    parser.add_argument("--suggest", action="store_true", help="Print autocomplete suggestions for the query")
    parser.add_argument("--limit", type=int, default=8, help="Suggestion count")
    parser.add_argument("--reindex", action="store_true", help="Reindex entity types the index under-counts")
    args = parser.parse_args(list(argv) if argv is not None else None)

    configure_logging(settings.log_level)
    if args.reindex:
        return asyncio.run(perform_reindex())
    if args.batch:
        batch_mode(args.batch)
        return 0
    if args.query and args.suggest:
        pretty_print_suggestions(args.query, asyncio.run(perform_suggest(args.query, args.limit)))
        return 0
    if args.query:
        run_query(args.query)
        return 0
    interactive_shell()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
