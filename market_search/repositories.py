"""Datastore contracts consumed by the search layer and the fallback provider.

The repositories belong to the surrounding CRUD system; only the narrow
keyword-search and counting surface used here is described. Each source keeps
its native result shape and is mapped into :class:`SearchResultPage` before
any merging happens.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Generic, List, Optional, Protocol, Sequence, TypeVar

from .documents import Entity
from .models import CategoryEntity, EntityType, PostEntity, ProductEntity, SearchResultPage, UserEntity

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class ProductSearchResult:
    products: List[ProductEntity] = field(default_factory=list)
    total: int = 0


@dataclass
class PostSearchResult:
    posts: List[PostEntity] = field(default_factory=list)
    total: int = 0
    has_more: Optional[bool] = None
    page: Optional[int] = None
    total_pages: Optional[int] = None


class ProductRepository(Protocol):
    async def search(
        self,
        keyword: str,
        page: int,
        limit: int,
        category_ids: Optional[Sequence[str]] = None,
    ) -> ProductSearchResult: ...


class CategoryRepository(Protocol):
    async def search_by_name(self, keyword: str, limit: int) -> List[CategoryEntity]: ...


class PostRepository(Protocol):
    async def search(self, keyword: str, page: int, limit: int) -> PostSearchResult: ...


class UserRepository(Protocol):
    async def find_all(self, search_term: str, limit: int, offset: int = 0) -> List[UserEntity]: ...

    async def count(self, search_term: str) -> int: ...


class SourceStore(Protocol):
    """Source of truth for the reindex job."""

    async def count_all(self, entity_type: EntityType) -> int: ...

    def iter_rows(self, entity_type: EntityType) -> AsyncIterator[Dict[str, Any]]: ...

    def to_entity(self, entity_type: EntityType, row: Dict[str, Any]) -> Entity: ...


def page_from_products(result: ProductSearchResult, page: int, limit: int) -> SearchResultPage[ProductEntity]:
    return SearchResultPage[ProductEntity].build(result.products, result.total, page, limit)


def page_from_posts(result: PostSearchResult, page: int, limit: int) -> SearchResultPage[PostEntity]:
    return SearchResultPage[PostEntity].build(result.posts, result.total, result.page or page, limit)


class FallbackQueryProvider(Generic[T, R]):
    """Keyword search straight against the datastore.

    Always available and slower than the index; it exists for resilience and
    is treated as ground truth when the two sources disagree.
    """

    def __init__(
        self,
        search: Callable[..., Awaitable[R]],
        to_page: Callable[[R, int, int], SearchResultPage[T]],
    ) -> None:
        self._search = search
        self._to_page = to_page

    async def search(self, keyword: str, page: int, limit: int, **criteria) -> SearchResultPage[T]:
        native = await self._search(keyword, page, limit, **criteria)
        return self._to_page(native, page, limit)


def product_fallback(repository: ProductRepository) -> FallbackQueryProvider[ProductEntity, ProductSearchResult]:
    return FallbackQueryProvider(repository.search, page_from_products)


def post_fallback(repository: PostRepository) -> FallbackQueryProvider[PostEntity, PostSearchResult]:
    return FallbackQueryProvider(repository.search, page_from_posts)
