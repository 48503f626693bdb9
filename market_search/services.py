"""Construction of the search object graph from a database and an index client."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from .cache import CacheBackend
from .global_search import GlobalSearchOrchestrator
from .index_client import SearchIndexClient
from .mongo import (
    MongoCategoryRepository,
    MongoPostRepository,
    MongoProductRepository,
    MongoSourceStore,
    MongoUserRepository,
)
from .orchestrator import (
    PostSearchOrchestrator,
    ProductSearchOrchestrator,
    SuggestionOrchestrator,
    UserSearchOrchestrator,
)
from .reindex import ReindexCoordinator
from .repositories import post_fallback, product_fallback


@dataclass
class SearchServices:
    index: SearchIndexClient
    products: ProductSearchOrchestrator
    posts: PostSearchOrchestrator
    users: UserSearchOrchestrator
    suggestions: SuggestionOrchestrator
    global_search: GlobalSearchOrchestrator
    reindex: ReindexCoordinator


def build_services(
    index: SearchIndexClient,
    db: AsyncIOMotorDatabase,
    cache: Optional[CacheBackend] = None,
    cache_ttl_seconds: int = 0,
) -> SearchServices:
    product_repository = MongoProductRepository(db)
    products = ProductSearchOrchestrator(index, product_fallback(product_repository), MongoCategoryRepository(db))
    posts = PostSearchOrchestrator(index, post_fallback(MongoPostRepository(db)))
    users = UserSearchOrchestrator(MongoUserRepository(db))
    return SearchServices(
        index=index,
        products=products,
        posts=posts,
        users=users,
        suggestions=SuggestionOrchestrator(index, product_fallback(product_repository), cache, cache_ttl_seconds),
        global_search=GlobalSearchOrchestrator(products, posts, users),
        reindex=ReindexCoordinator(index, MongoSourceStore(db)),
    )
