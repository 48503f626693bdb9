"""Fan-out search across products, posts and users."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from .models import (
    GlobalSearchResponse,
    PostEntity,
    PostsSection,
    ProductEntity,
    SearchResultPage,
    SearchSection,
    UserEntity,
    clamp_limit,
)
from .orchestrator import PostSearchOrchestrator, ProductSearchOrchestrator, UserSearchOrchestrator, validate_keyword

logger = logging.getLogger(__name__)


def _failed(section: str, keyword: str, result: object) -> bool:
    if isinstance(result, BaseException):
        logger.warning("global search section=%s failed for q=%r: %r", section, keyword, result)
        return True
    return False


class GlobalSearchOrchestrator:
    """Runs the three entity searches concurrently; a failing section comes back empty."""

    def __init__(
        self,
        products: ProductSearchOrchestrator,
        posts: PostSearchOrchestrator,
        users: UserSearchOrchestrator,
    ) -> None:
        self._products = products
        self._posts = posts
        self._users = users

    async def search(
        self,
        keyword: str,
        products_limit: Optional[int] = None,
        posts_limit: Optional[int] = None,
        users_limit: Optional[int] = None,
    ) -> GlobalSearchResponse:
        text = validate_keyword(keyword)
        products_limit = clamp_limit(products_limit)
        posts_limit = clamp_limit(posts_limit)
        users_limit = clamp_limit(users_limit)

        products_result, posts_result, users_result = await asyncio.gather(
            self._products.search(text, page=1, limit=products_limit),
            self._posts.search(text, page=1, limit=posts_limit),
            self._users.search(text, limit=users_limit),
            return_exceptions=True,
        )

        return GlobalSearchResponse(
            query=text,
            products=self._products_section(text, products_result, products_limit),
            posts=self._posts_section(text, posts_result, posts_limit),
            users=self._users_section(text, users_result, users_limit),
        )

    @staticmethod
    def _products_section(
        keyword: str,
        result: Union[SearchResultPage[ProductEntity], BaseException],
        limit: int,
    ) -> SearchSection[ProductEntity]:
        if _failed("products", keyword, result):
            return SearchSection[ProductEntity](items=[], total=0, limit=limit, has_more=False)
        return SearchSection[ProductEntity](
            items=result.items,
            total=result.total,
            limit=result.limit,
            has_more=result.total > result.limit,
        )

    @staticmethod
    def _posts_section(
        keyword: str,
        result: Union[SearchResultPage[PostEntity], BaseException],
        limit: int,
    ) -> PostsSection:
        if _failed("posts", keyword, result):
            return PostsSection(items=[], total=0, limit=limit, has_more=False, page=1, total_pages=0)
        return PostsSection(
            items=result.items,
            total=result.total,
            limit=result.limit,
            has_more=result.total > result.page * result.limit,
            page=result.page,
            total_pages=result.total_pages,
        )

    @staticmethod
    def _users_section(
        keyword: str,
        result: Union[SearchSection[UserEntity], BaseException],
        limit: int,
    ) -> SearchSection[UserEntity]:
        if _failed("users", keyword, result):
            return SearchSection[UserEntity](items=[], total=0, limit=limit, has_more=False)
        return result
