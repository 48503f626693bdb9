"""Shared fakes for the search layer tests. No network access is needed."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import pytest

from market_search.models import (
    CategoryEntity,
    EntityType,
    PostEntity,
    ProductEntity,
    SearchResultPage,
    SuggestionItem,
    UserEntity,
)
from market_search.repositories import PostSearchResult, ProductSearchResult


def make_products(*ids: str, prefix: str = "Sản phẩm") -> List[ProductEntity]:
    return [ProductEntity(id=pid, name=f"{prefix} {pid}", price=10_000) for pid in ids]


def make_posts(*ids: str) -> List[PostEntity]:
    return [PostEntity(id=pid, user_id="u1", content=f"bài viết {pid}") for pid in ids]


class FakeIndexClient:
    """Stands in for SearchIndexClient at the orchestrator seam."""

    def __init__(
        self,
        enabled: bool = True,
        results: Optional[Dict[EntityType, tuple]] = None,
        suggestions: Optional[List[SuggestionItem]] = None,
        error: Optional[Exception] = None,
        count_error: Optional[Exception] = None,
    ) -> None:
        self.enabled = enabled
        self.count_error = count_error
        self.results = results or {}
        self.suggestions = suggestions or []
        self.error = error
        self.search_calls: List[tuple] = []
        self.suggest_calls: List[tuple] = []

    def is_enabled(self) -> bool:
        return self.enabled

    async def initialize(self) -> None:
        if self.count_error is not None:
            raise self.count_error

    @property
    def is_ready(self) -> bool:
        return self.enabled

    async def search(self, entity_type: EntityType, query) -> SearchResultPage:
        self.search_calls.append((entity_type, query))
        if self.error is not None:
            raise self.error
        items, total = self.results.get(entity_type, ([], 0))
        return SearchResultPage.build(items, total, query.page, query.limit)

    async def suggest(self, entity_type: EntityType, prefix: str, limit: int) -> List[SuggestionItem]:
        self.suggest_calls.append((entity_type, prefix, limit))
        if self.error is not None:
            raise self.error
        return list(self.suggestions)

    async def count_documents(self, entity_type: EntityType) -> int:
        if self.count_error is not None:
            raise self.count_error
        return 0


class FakeProductRepository:
    def __init__(self, products: Sequence[ProductEntity] = (), total: Optional[int] = None, error: Exception = None):
        self.products = list(products)
        self.total = len(self.products) if total is None else total
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def search(self, keyword, page, limit, category_ids=None) -> ProductSearchResult:
        self.calls.append({"keyword": keyword, "page": page, "limit": limit, "category_ids": category_ids})
        if self.error is not None:
            raise self.error
        return ProductSearchResult(products=self.products[:limit], total=self.total)


class FakeCategoryRepository:
    def __init__(self, categories: Sequence[CategoryEntity] = (), error: Exception = None):
        self.categories = list(categories)
        self.error = error
        self.calls: List[tuple] = []

    async def search_by_name(self, keyword, limit) -> List[CategoryEntity]:
        self.calls.append((keyword, limit))
        if self.error is not None:
            raise self.error
        return self.categories[:limit]


class FakePostRepository:
    def __init__(self, posts: Sequence[PostEntity] = (), total: Optional[int] = None, error: Exception = None):
        self.posts = list(posts)
        self.total = len(self.posts) if total is None else total
        self.error = error
        self.calls: List[tuple] = []

    async def search(self, keyword, page, limit) -> PostSearchResult:
        self.calls.append((keyword, page, limit))
        if self.error is not None:
            raise self.error
        return PostSearchResult(posts=self.posts[:limit], total=self.total, page=page)


class FakeUserRepository:
    def __init__(self, users: Sequence[UserEntity] = (), count_error: Exception = None, error: Exception = None):
        self.users = list(users)
        self.count_error = count_error
        self.error = error
        self.find_calls: List[tuple] = []

    async def find_all(self, search_term, limit, offset=0) -> List[UserEntity]:
        self.find_calls.append((search_term, limit, offset))
        if self.error is not None:
            raise self.error
        return self.users[offset : offset + limit]

    async def count(self, search_term) -> int:
        if self.count_error is not None:
            raise self.count_error
        return len(self.users)


class StubIndices:
    def __init__(self, existing: Sequence[str] = ()) -> None:
        self.existing = set(existing)
        self.created: List[str] = []
        self.mapping_updates: List[str] = []
        self.settings_updates: List[str] = []

    def exists(self, index):
        return index in self.existing

    def create(self, index, settings=None, mappings=None):
        self.existing.add(index)
        self.created.append(index)
        return {"acknowledged": True}

    def put_mapping(self, index, properties):
        self.mapping_updates.append(index)
        return {"acknowledged": True}

    def put_settings(self, index, settings):
        self.settings_updates.append(index)
        return {"acknowledged": True}


class StubElasticsearch:
    """Synchronous stand-in for ``elasticsearch.Elasticsearch``."""

    def __init__(self, alive: bool = True, existing: Sequence[str] = (), version: str = "8.13.0") -> None:
        self.alive = alive
        self.version = version
        self.indices = StubIndices(existing)
        self.ping_calls = 0
        self.search_calls: List[Dict[str, Any]] = []
        self.indexed: List[Dict[str, Any]] = []
        self.deleted: List[tuple] = []
        self.suggest_response: Dict[str, Any] = {"suggest": {}}
        self.search_response: Dict[str, Any] = {"hits": {"total": {"value": 0}, "hits": []}}
        self.counts: Dict[str, int] = {}
        self.fail_on: Dict[str, Exception] = {}
        self.closed = False

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def ping(self):
        self.ping_calls += 1
        return self.alive

    def info(self):
        return {"version": {"number": self.version}}

    def index(self, index, id, document, refresh=None):
        self._maybe_fail("index")
        self.indexed.append({"index": index, "id": id, "document": document, "refresh": refresh})
        return {"result": "created"}

    def delete(self, index, id, refresh=None):
        self._maybe_fail("delete")
        self.deleted.append((index, id))
        return {"result": "deleted"}

    def search(self, **kwargs):
        self.search_calls.append(kwargs)
        if "suggest" in kwargs:
            self._maybe_fail("suggest")
            return self.suggest_response
        self._maybe_fail("search")
        return self.search_response

    def count(self, index):
        self._maybe_fail("count")
        return {"count": self.counts.get(index, 0)}

    def close(self):
        self.closed = True


@pytest.fixture
def stub_es() -> StubElasticsearch:
    return StubElasticsearch()
