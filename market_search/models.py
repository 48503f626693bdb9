"""Domain entities, search value types and response payloads."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .text import build_search_tokens, normalize_text

DEFAULT_LIMIT = 6
MAX_LIMIT = 50

T = TypeVar("T")


class EntityType(str, Enum):
    PRODUCTS = "products"
    POSTS = "posts"
    CATEGORIES = "categories"

    @property
    def index_name(self) -> str:
        # Versioned so a new mapping can be rolled out next to the old index.
        return f"{self.value}_v1"


def clamp_limit(limit: Optional[int], default: int = DEFAULT_LIMIT) -> int:
    if limit is None:
        limit = default
    return min(max(int(limit), 1), MAX_LIMIT)


def total_pages_for(total: int, limit: int) -> int:
    if total <= 0 or limit <= 0:
        return 0
    return math.ceil(total / limit)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CategoryRef(CamelModel):
    id: str = ""
    name: Optional[str] = None
    slug: Optional[str] = None


class OwnerRef(CamelModel):
    id: str = ""
    user_name: Optional[str] = None


class UserRef(CamelModel):
    id: str
    user_name: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None


class ProductEntity(CamelModel):
    id: str
    name: str = ""
    name_en: Optional[str] = None
    category: CategoryRef = Field(default_factory=CategoryRef)
    owner: OwnerRef = Field(default_factory=OwnerRef)
    price: float = 0
    unit: str = ""
    description: str = ""
    images: list[str] = Field(default_factory=list)
    in_stock: bool = False
    stock_quantity: int = 0
    tags: list[str] = Field(default_factory=list)
    rating: float = 0
    review_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PostEntity(CamelModel):
    id: str
    user_id: str = ""
    content: str = ""
    images: list[str] = Field(default_factory=list)
    likes_count: int = 0
    comments_count: int = 0
    shares_count: int = 0
    visibility: str = "public"
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    original_post_id: Optional[str] = None
    user: Optional[UserRef] = None
    shared_by: Optional[UserRef] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryEntity(CamelModel):
    id: str
    name: str = ""
    name_en: Optional[str] = None
    slug: str = ""
    description: Optional[str] = None
    parent_id: Optional[str] = None
    level: int = 0
    is_active: bool = True
    product_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserEntity(CamelModel):
    id: str
    user_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    role: Optional[str] = None


class SuggestionItem(CamelModel):
    id: str
    name: str = ""
    price: float = 0
    image: Optional[str] = None


@dataclass(frozen=True)
class SearchQuery:
    """A user query prepared for both the index and the fallback path."""

    raw: str
    normalized: str
    tokens: tuple[str, ...]
    page: int = 1
    limit: int = DEFAULT_LIMIT

    @classmethod
    def build(cls, raw: str, page: int = 1, limit: Optional[int] = None) -> "SearchQuery":
        trimmed = (raw or "").strip()
        return cls(
            raw=trimmed,
            normalized=normalize_text(trimmed),
            tokens=tuple(build_search_tokens(trimmed)),
            page=max(1, int(page or 1)),
            limit=clamp_limit(limit),
        )

    @property
    def normalized_variant(self) -> Optional[str]:
        """The folded text, only when it differs from what the user typed."""
        if self.normalized and self.normalized != self.raw:
            return self.normalized
        return None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class SearchResultPage(CamelModel, Generic[T]):
    items: list[T] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = DEFAULT_LIMIT
    total_pages: int = 0

    @classmethod
    def build(cls, items: list[T], total: int, page: int, limit: int) -> "SearchResultPage[T]":
        items = list(items)[:limit]
        total = max(int(total or 0), len(items))
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages_for(total, limit),
        )

    @classmethod
    def empty(cls, page: int = 1, limit: int = DEFAULT_LIMIT) -> "SearchResultPage[T]":
        return cls(items=[], total=0, page=page, limit=limit, total_pages=0)


@dataclass
class ReconciliationReport:
    entity_type: EntityType
    index_count: int
    store_count: int
    action: Literal["none", "full-reindex"] = "none"
    indexed: int = 0
    failures: int = 0
    errors: list[str] = field(default_factory=list)


class SearchSection(CamelModel, Generic[T]):
    items: list[T] = Field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_LIMIT
    has_more: bool = False


class PostsSection(SearchSection[PostEntity]):
    page: int = 1
    total_pages: int = 0


class GlobalSearchResponse(CamelModel):
    query: str
    products: SearchSection[ProductEntity]
    posts: PostsSection
    users: SearchSection[UserEntity]


class InspectResponse(CamelModel):
    query: str
    raw_suggest: Optional[dict[str, Any]] = None
    raw_search: Optional[dict[str, Any]] = None
    suggestions: list[SuggestionItem] = Field(default_factory=list)
    global_search: Optional[GlobalSearchResponse] = None
    errors: dict[str, str] = Field(default_factory=dict)
