"""FastAPI application wiring the search layer."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from functools import partial
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request

from .cache import CacheBackend, create_cache
from .config import settings
from .errors import IndexUnavailableError, SearchValidationError
from .es_client import create_client
from .index_client import SearchIndexClient
from .logging_setup import configure_logging
from .models import (
    EntityType,
    GlobalSearchResponse,
    InspectResponse,
    PostEntity,
    ProductEntity,
    SearchQuery,
    SearchResultPage,
    SuggestionItem,
    clamp_limit,
)
from .mongo import connect_to_mongodb
from .orchestrator import DEFAULT_SUGGEST_LIMIT, validate_keyword
from .services import SearchServices, build_services

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Marketplace Search Service")


def _services(request: Request) -> SearchServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Search services are not initialized")
    return services


def _positive(value: Optional[int]) -> Optional[int]:
    return value if value is not None and value > 0 else None


@app.on_event("startup")
async def startup_event() -> None:
    mongo_client, db = await connect_to_mongodb(settings.mongodb_url, settings.mongodb_database)
    index = SearchIndexClient(
        settings.es_node,
        client_factory=partial(create_client, timeout=settings.es_timeout_seconds),
    )
    try:
        await index.initialize()
    except IndexUnavailableError as exc:
        logger.warning("Search index unavailable at startup, serving from MongoDB only: %s", exc)

    cache: Optional[CacheBackend] = None
    if settings.suggest_cache_ttl_seconds > 0:
        cache = await asyncio.to_thread(create_cache, settings.redis_host, settings.redis_port)

    services = build_services(index, db, cache, settings.suggest_cache_ttl_seconds)
    app.state.mongo_client = mongo_client
    app.state.services = services
    if settings.reindex_on_startup and index.is_ready:
        app.state.reindex_task = asyncio.create_task(services.reindex.run())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    services: Optional[SearchServices] = getattr(app.state, "services", None)
    if services is not None:
        services.index.close()
    mongo_client = getattr(app.state, "mongo_client", None)
    if mongo_client is not None:
        mongo_client.close()


@app.get("/health")
async def health(request: Request) -> dict:
    services = _services(request)
    index = services.index
    counts = {}
    payload = {"indexEnabled": index.is_enabled(), "indexReady": index.is_ready, "documents": counts}
    if index.is_enabled():
        try:
            for entity_type in EntityType:
                counts[entity_type.index_name] = await index.count_documents(entity_type)
        except IndexUnavailableError as exc:
            logger.warning("health check could not reach the search index: %s", exc)
            payload["indexError"] = str(exc)
        payload["indexReady"] = index.is_ready
    return payload


@app.get("/search", response_model=GlobalSearchResponse)
async def search(
    request: Request,
    q: str = Query("", description="Search keyword"),
    products_limit: Optional[int] = Query(None, alias="productsLimit"),
    posts_limit: Optional[int] = Query(None, alias="postsLimit"),
    users_limit: Optional[int] = Query(None, alias="usersLimit"),
) -> GlobalSearchResponse:
    services = _services(request)
    try:
        return await services.global_search.search(
            q,
            products_limit=_positive(products_limit),
            posts_limit=_positive(posts_limit),
            users_limit=_positive(users_limit),
        )
    except SearchValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/search/suggest", response_model=List[SuggestionItem])
async def suggest(
    request: Request,
    text: str = Query("", description="Prefix typed by the user"),
    limit: int = DEFAULT_SUGGEST_LIMIT,
) -> List[SuggestionItem]:
    return await _services(request).suggestions.suggest(text, limit)


@app.get("/search/products", response_model=SearchResultPage[ProductEntity])
async def search_products(request: Request, q: str = "", page: int = 1, limit: int = 12) -> SearchResultPage:
    services = _services(request)
    try:
        return await services.products.search(q, page=page, limit=limit)
    except SearchValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception:
        logger.exception("product search failed for q=%r", q)
        return SearchResultPage[ProductEntity].empty(page=max(page, 1), limit=clamp_limit(limit))


@app.get("/search/posts", response_model=SearchResultPage[PostEntity])
async def search_posts(request: Request, q: str = "", page: int = 1, limit: int = 12) -> SearchResultPage:
    services = _services(request)
    try:
        return await services.posts.search(q, page=page, limit=limit)
    except SearchValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception:
        logger.exception("post search failed for q=%r", q)
        return SearchResultPage[PostEntity].empty(page=max(page, 1), limit=clamp_limit(limit))


@app.get("/search/inspect", response_model=InspectResponse)
async def inspect(request: Request, text: str = "", limit: int = DEFAULT_SUGGEST_LIMIT) -> InspectResponse:
    """Side-by-side view of every stage for operational debugging. Not a stable contract."""
    services = _services(request)
    try:
        keyword = validate_keyword(text)
    except SearchValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    query = SearchQuery.build(keyword, limit=limit)
    report = InspectResponse(query=keyword)
    if services.index.is_enabled():
        try:
            report.raw_suggest = await services.index.raw_suggest(EntityType.PRODUCTS, query, query.limit)
        except Exception as exc:
            report.errors["rawSuggest"] = str(exc)
        try:
            report.raw_search = await services.index.raw_search(EntityType.PRODUCTS, query)
        except Exception as exc:
            report.errors["rawSearch"] = str(exc)
    else:
        report.errors["index"] = "disabled"

    report.suggestions = await services.suggestions.suggest(keyword, query.limit)
    report.global_search = await services.global_search.search(keyword, query.limit, query.limit, query.limit)
    return report


@app.post("/reindex")
async def reindex(request: Request) -> dict:
    services = _services(request)
    if not services.index.is_enabled():
        raise HTTPException(status_code=409, detail="Search index is not configured")
    reports = await services.reindex.run()
    return {"reports": [asdict(report) for report in reports]}
