"""Per-entity search orchestration.

Each request runs one pass of ``validate -> query index -> (if short) query
fallback -> merge``. The index is skipped when it is disabled and any index
error is treated exactly like "disabled": the request is answered from the
datastore alone. Orchestrators keep no per-request state and can be shared
across concurrent requests.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .cache import CacheBackend, hash_query
from .documents import suggestion_from_product
from .errors import SearchValidationError
from .index_client import SearchIndexClient
from .models import (
    DEFAULT_LIMIT,
    EntityType,
    PostEntity,
    ProductEntity,
    SearchQuery,
    SearchResultPage,
    SearchSection,
    SuggestionItem,
    UserEntity,
    clamp_limit,
)
from .reconcile import fallback_batch_size, merge_pages, merge_suggestions, needs_fallback, suggestion_fallback_size
from .repositories import CategoryRepository, FallbackQueryProvider, UserRepository

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 1
CATEGORY_LOOKUP_LIMIT = 8
DEFAULT_SUGGEST_LIMIT = 8

T = TypeVar("T")


def validate_keyword(keyword: Optional[str]) -> str:
    text = (keyword or "").strip()
    if not text:
        raise SearchValidationError("Search keyword must not be empty")
    if len(text) < MIN_QUERY_LENGTH:
        raise SearchValidationError(f"Search keyword must be at least {MIN_QUERY_LENGTH} characters long")
    return text


class HybridSearchOrchestrator(Generic[T]):
    """Index-first search with datastore fallback for one entity type."""

    entity_type: EntityType

    def __init__(self, index: SearchIndexClient, fallback: FallbackQueryProvider) -> None:
        self._index = index
        self._fallback = fallback

    async def search(self, keyword: str, page: int = 1, limit: int = DEFAULT_LIMIT) -> SearchResultPage[T]:
        query = SearchQuery.build(validate_keyword(keyword), page=page, limit=limit)
        primary = await self._query_index(query)
        if primary is not None and not needs_fallback(primary, query.limit, query.page):
            return primary

        criteria = await self._fallback_criteria(query)
        if primary is None:
            return await self._fallback.search(query.raw, query.page, query.limit, **criteria)

        try:
            batch = await self._fallback.search(query.raw, 1, fallback_batch_size(query.limit), **criteria)
        except Exception as exc:  # keep the index page when the top-up fails
            logger.warning("%s fallback top-up failed for q=%r: %s", self.entity_type.value, query.raw, exc)
            return primary
        return merge_pages(primary, batch, query.limit)

    async def _query_index(self, query: SearchQuery) -> Optional[SearchResultPage[T]]:
        if not self._index.is_enabled():
            return None
        try:
            return await self._index.search(self.entity_type, query)
        except Exception as exc:  # any index failure means datastore-only mode
            logger.warning(
                "%s index search failed for q=%r, using datastore only: %s",
                self.entity_type.value,
                query.raw,
                exc,
            )
            return None

    async def _fallback_criteria(self, query: SearchQuery) -> Dict[str, Any]:
        return {}


class ProductSearchOrchestrator(HybridSearchOrchestrator[ProductEntity]):
    entity_type = EntityType.PRODUCTS

    def __init__(
        self,
        index: SearchIndexClient,
        fallback: FallbackQueryProvider,
        categories: Optional[CategoryRepository] = None,
    ) -> None:
        super().__init__(index, fallback)
        self._categories = categories

    async def _fallback_criteria(self, query: SearchQuery) -> Dict[str, Any]:
        # Index scoring already covers category names; only the datastore
        # query needs the matching category ids.
        if self._categories is None:
            return {}
        try:
            categories = await self._categories.search_by_name(query.raw, CATEGORY_LOOKUP_LIMIT)
        except Exception as exc:
            logger.info("category lookup failed for q=%r, keyword-only fallback: %s", query.raw, exc)
            return {}
        category_ids = [category.id for category in categories if category.id]
        return {"category_ids": category_ids} if category_ids else {}


class PostSearchOrchestrator(HybridSearchOrchestrator[PostEntity]):
    entity_type = EntityType.POSTS


class UserSearchOrchestrator:
    """Users are not indexed; this is datastore search with a cheap ``has_more`` probe."""

    def __init__(self, users: UserRepository) -> None:
        self._users = users

    async def search(self, keyword: str, limit: int = DEFAULT_LIMIT) -> SearchSection[UserEntity]:
        text = validate_keyword(keyword)
        limit = clamp_limit(limit)
        users = await self._users.find_all(text, limit + 1, 0)
        has_more = len(users) > limit
        items = users[:limit]

        total = len(items) + (1 if has_more else 0)
        try:
            total = max(await self._users.count(text), len(items))
        except Exception as exc:
            logger.warning("user count failed for q=%r: %s", text, exc)
        return SearchSection[UserEntity](items=items, total=total, limit=limit, has_more=has_more)


class SuggestionOrchestrator:
    def __init__(
        self,
        index: SearchIndexClient,
        fallback: FallbackQueryProvider,
        cache: Optional[CacheBackend] = None,
        cache_ttl_seconds: int = 60,
    ) -> None:
        self._index = index
        self._fallback = fallback
        self._cache = cache
        self._cache_ttl_seconds = cache_ttl_seconds

    async def suggest(self, text: str, limit: int = DEFAULT_SUGGEST_LIMIT) -> List[SuggestionItem]:
        keyword = (text or "").strip()
        if len(keyword) < MIN_QUERY_LENGTH:
            return []
        limit = clamp_limit(limit, DEFAULT_SUGGEST_LIMIT)

        cache_key = hash_query(keyword, limit)
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return [SuggestionItem.model_validate(item) for item in cached.get("items", [])]

        degraded = False
        items: List[SuggestionItem] = []
        if self._index.is_enabled():
            try:
                items = (await self._index.suggest(EntityType.PRODUCTS, keyword, limit))[:limit]
            except Exception as exc:
                degraded = True
                logger.warning("index suggest failed for q=%r, using datastore: %s", keyword, exc)

        if len(items) < limit:
            try:
                fallback = await self._fallback.search(keyword, 1, suggestion_fallback_size(limit))
                items = merge_suggestions(items, [suggestion_from_product(p) for p in fallback.items], limit)
            except Exception as exc:
                degraded = True
                logger.warning("datastore suggest failed for q=%r: %s", keyword, exc)

        if not degraded:
            await self._cache_set(cache_key, {"items": [item.model_dump() for item in items]})
        return items

    async def _cache_get(self, key: str) -> Optional[Dict[str, Any]]:
        if self._cache is None or self._cache_ttl_seconds <= 0:
            return None
        return await asyncio.to_thread(self._cache.get, key)

    async def _cache_set(self, key: str, value: Dict[str, Any]) -> None:
        if self._cache is None or self._cache_ttl_seconds <= 0:
            return
        await asyncio.to_thread(self._cache.set, key, value, self._cache_ttl_seconds)
