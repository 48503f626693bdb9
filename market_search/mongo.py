"""MongoDB implementations of the repository contracts.

These are the datastore side of the fallback path and the source of truth for
the reindex job. Keyword matching uses an accent-insensitive,
case-insensitive regex; it is slow on large collections and only meant to
carry traffic while the index is unavailable or under-returns.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from .documents import Entity
from .models import (
    CategoryEntity,
    CategoryRef,
    EntityType,
    OwnerRef,
    PostEntity,
    ProductEntity,
    UserEntity,
    UserRef,
    total_pages_for,
)
from .repositories import PostSearchResult, ProductSearchResult
from .text import folding_pattern

logger = logging.getLogger(__name__)

COLLECTIONS = {
    EntityType.PRODUCTS: "products",
    EntityType.POSTS: "posts",
    EntityType.CATEGORIES: "categories",
}
USERS_COLLECTION = "users"

_PRODUCT_LOOKUPS: List[Dict[str, Any]] = [
    {"$lookup": {"from": "categories", "localField": "category", "foreignField": "_id", "as": "category"}},
    {"$unwind": {"path": "$category", "preserveNullAndEmptyArrays": True}},
    {"$lookup": {"from": USERS_COLLECTION, "localField": "owner", "foreignField": "_id", "as": "owner"}},
    {"$unwind": {"path": "$owner", "preserveNullAndEmptyArrays": True}},
]
_POST_LOOKUPS: List[Dict[str, Any]] = [
    {"$lookup": {"from": USERS_COLLECTION, "localField": "userId", "foreignField": "_id", "as": "user"}},
    {"$unwind": {"path": "$user", "preserveNullAndEmptyArrays": True}},
    {"$lookup": {"from": USERS_COLLECTION, "localField": "sharedBy", "foreignField": "_id", "as": "sharedBy"}},
    {"$unwind": {"path": "$sharedBy", "preserveNullAndEmptyArrays": True}},
]


async def connect_to_mongodb(url: str, database: str) -> Tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    logger.info("Connecting to MongoDB at %s", url)
    client = AsyncIOMotorClient(url, serverSelectionTimeoutMS=5000, connectTimeoutMS=5000)
    try:
        await client.admin.command("ping")
    except (ConnectionFailure, ServerSelectionTimeoutError) as exc:
        logger.error("MongoDB connection failed: %s", exc)
        client.close()
        raise
    logger.info("MongoDB connected, database=%s", database)
    return client, client[database]


def _regex(keyword: str) -> Dict[str, str]:
    return {"$regex": folding_pattern(keyword), "$options": "i"}


def _object_id(value: Any) -> Any:
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _str_id(value: Any) -> str:
    if isinstance(value, dict):
        value = value.get("_id")
    return str(value) if value is not None else ""


def _date(value: Any) -> Optional[datetime]:
    return value if isinstance(value, datetime) else None


def product_from_row(row: Dict[str, Any]) -> ProductEntity:
    category = row.get("category") if isinstance(row.get("category"), dict) else {}
    owner = row.get("owner") if isinstance(row.get("owner"), dict) else {}
    return ProductEntity(
        id=str(row["_id"]),
        name=row.get("name") or "",
        name_en=row.get("nameEn"),
        category=CategoryRef(
            id=_str_id(category) or _str_id(row.get("category")),
            name=category.get("name"),
            slug=category.get("slug"),
        ),
        owner=OwnerRef(
            id=_str_id(owner) or _str_id(row.get("owner")),
            user_name=owner.get("userName") or owner.get("email"),
        ),
        price=row.get("price") or 0,
        unit=row.get("unit") or "",
        description=row.get("description") or "",
        images=list(row.get("images") or []),
        in_stock=bool(row.get("inStock")),
        stock_quantity=row.get("stockQuantity") or 0,
        tags=list(row.get("tags") or []),
        rating=row.get("rating") or 0,
        review_count=row.get("reviewCount") or 0,
        created_at=_date(row.get("createdAt")),
        updated_at=_date(row.get("updatedAt")),
    )


def _user_ref(value: Any) -> Optional[UserRef]:
    if not isinstance(value, dict):
        return None
    return UserRef(
        id=_str_id(value),
        user_name=value.get("userName"),
        email=value.get("email"),
        avatar=value.get("avatar"),
    )


def post_from_row(row: Dict[str, Any]) -> PostEntity:
    user = _user_ref(row.get("user"))
    shared_by = _user_ref(row.get("sharedBy"))
    if shared_by is None and row.get("sharedBy") is not None:
        shared_by = UserRef(id=_str_id(row.get("sharedBy")))
    return PostEntity(
        id=str(row["_id"]),
        user_id=user.id if user else _str_id(row.get("userId")),
        content=row.get("content") or "",
        images=list(row.get("images") or []),
        likes_count=row.get("likesCount") or 0,
        comments_count=row.get("commentsCount") or 0,
        shares_count=row.get("sharesCount") or 0,
        visibility=row.get("visibility") or "public",
        is_edited=bool(row.get("isEdited")),
        edited_at=_date(row.get("editedAt")),
        original_post_id=_str_id(row.get("originalPostId")) or None,
        user=user,
        shared_by=shared_by,
        created_at=_date(row.get("createdAt")),
        updated_at=_date(row.get("updatedAt")),
    )


def category_from_row(row: Dict[str, Any]) -> CategoryEntity:
    return CategoryEntity(
        id=str(row["_id"]),
        name=row.get("name") or "",
        name_en=row.get("nameEn"),
        slug=row.get("slug") or "",
        description=row.get("description"),
        parent_id=_str_id(row.get("parentId")) or None,
        level=row.get("level") or 0,
        is_active=bool(row.get("isActive", True)),
        product_count=row.get("productCount") or 0,
        created_at=_date(row.get("createdAt")),
        updated_at=_date(row.get("updatedAt")),
    )


def user_from_row(row: Dict[str, Any]) -> UserEntity:
    return UserEntity(
        id=str(row["_id"]),
        user_name=row.get("userName"),
        email=row.get("email"),
        phone=row.get("phone"),
        avatar=row.get("avatar"),
        role=row.get("role"),
    )


class MongoProductRepository:
    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._products: AsyncIOMotorCollection = db[COLLECTIONS[EntityType.PRODUCTS]]

    @staticmethod
    def build_filter(keyword: str, category_ids: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        pattern = _regex(keyword)
        clauses: List[Dict[str, Any]] = [
            {"name": pattern},
            {"nameEn": pattern},
            {"description": pattern},
            {"tags": pattern},
        ]
        if category_ids:
            clauses.append({"category": {"$in": [_object_id(category_id) for category_id in category_ids]}})
        return {"$or": clauses}

    async def search(
        self,
        keyword: str,
        page: int,
        limit: int,
        category_ids: Optional[Sequence[str]] = None,
    ) -> ProductSearchResult:
        query = self.build_filter(keyword, category_ids)
        pipeline = [
            {"$match": query},
            {"$sort": {"createdAt": -1}},
            {"$skip": (max(page, 1) - 1) * limit},
            {"$limit": limit},
            *_PRODUCT_LOOKUPS,
        ]
        rows = await self._products.aggregate(pipeline).to_list(length=limit)
        total = await self._products.count_documents(query)
        return ProductSearchResult(products=[product_from_row(row) for row in rows], total=total)


class MongoCategoryRepository:
    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._categories: AsyncIOMotorCollection = db[COLLECTIONS[EntityType.CATEGORIES]]

    async def search_by_name(self, keyword: str, limit: int) -> List[CategoryEntity]:
        pattern = _regex(keyword)
        cursor = self._categories.find({"$or": [{"name": pattern}, {"nameEn": pattern}, {"slug": pattern}]}).limit(limit)
        return [category_from_row(row) async for row in cursor]


class MongoPostRepository:
    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._posts: AsyncIOMotorCollection = db[COLLECTIONS[EntityType.POSTS]]

    async def search(self, keyword: str, page: int, limit: int) -> PostSearchResult:
        page = max(page, 1)
        query = {"content": _regex(keyword), "visibility": "public"}
        pipeline = [
            {"$match": query},
            {"$sort": {"createdAt": -1}},
            {"$skip": (page - 1) * limit},
            {"$limit": limit},
            *_POST_LOOKUPS,
        ]
        rows = await self._posts.aggregate(pipeline).to_list(length=limit)
        total = await self._posts.count_documents(query)
        return PostSearchResult(
            posts=[post_from_row(row) for row in rows],
            total=total,
            has_more=total > page * limit,
            page=page,
            total_pages=total_pages_for(total, limit),
        )


class MongoUserRepository:
    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._users: AsyncIOMotorCollection = db[USERS_COLLECTION]

    @staticmethod
    def build_filter(search_term: str) -> Dict[str, Any]:
        pattern = _regex(search_term)
        return {"$or": [{"email": pattern}, {"userName": pattern}, {"phone": pattern}]}

    async def find_all(self, search_term: str, limit: int, offset: int = 0) -> List[UserEntity]:
        cursor = self._users.find(self.build_filter(search_term)).skip(offset).limit(limit)
        return [user_from_row(row) async for row in cursor]

    async def count(self, search_term: str) -> int:
        return await self._users.count_documents(self.build_filter(search_term))


class MongoSourceStore:
    """Cursor access to every product, post and category for reindexing."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    async def count_all(self, entity_type: EntityType) -> int:
        return await self._db[COLLECTIONS[entity_type]].count_documents({})

    async def iter_rows(self, entity_type: EntityType) -> AsyncIterator[Dict[str, Any]]:
        collection = self._db[COLLECTIONS[entity_type]]
        if entity_type is EntityType.PRODUCTS:
            cursor = collection.aggregate(list(_PRODUCT_LOOKUPS))
        elif entity_type is EntityType.POSTS:
            cursor = collection.aggregate(list(_POST_LOOKUPS))
        else:
            cursor = collection.find({})
        async for row in cursor:
            yield row

    def to_entity(self, entity_type: EntityType, row: Dict[str, Any]) -> Entity:
        if entity_type is EntityType.PRODUCTS:
            return product_from_row(row)
        if entity_type is EntityType.POSTS:
            return post_from_row(row)
        return category_from_row(row)
