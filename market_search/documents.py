"""Mapping between domain entities and index documents.

Product documents store their searchable fields verbatim plus two derived
fields: ``searchTerms`` (exact token boost) and ``suggest.input`` (completion
suggester). Both come from every name-like value of the product, so a query
matching a category or owner token can still surface the product.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Optional, Union

from .models import (
    CategoryEntity,
    CategoryRef,
    EntityType,
    OwnerRef,
    PostEntity,
    ProductEntity,
    SuggestionItem,
    UserRef,
)
from .text import build_search_tokens

MAX_SUGGESTION_INPUTS = 32

Entity = Union[ProductEntity, PostEntity, CategoryEntity]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _drop_none(document: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in document.items() if value is not None}


def build_product_document(product: ProductEntity) -> Dict[str, Any]:
    search_terms = build_search_tokens(
        product.name,
        product.name_en,
        product.category.name,
        product.owner.user_name,
        *product.tags,
    )
    suggestion_inputs = search_terms[:MAX_SUGGESTION_INPUTS] or [name for name in [product.name] if name]
    return _drop_none(
        {
            "name": product.name,
            "nameEn": product.name_en,
            "unit": product.unit,
            "description": product.description,
            "categoryId": product.category.id or None,
            "categoryName": product.category.name,
            "categorySlug": product.category.slug,
            "tags": list(product.tags),
            "price": product.price,
            "rating": product.rating,
            "reviewCount": product.review_count,
            "inStock": product.in_stock,
            "stockQuantity": product.stock_quantity,
            "images": list(product.images),
            "ownerId": product.owner.id or None,
            "ownerName": product.owner.user_name,
            "suggest": {
                "input": suggestion_inputs,
                "weight": max(1, math.floor(product.rating * 10 + product.review_count)),
            },
            "searchTerms": search_terms,
            "createdAt": _iso(product.created_at),
            "updatedAt": _iso(product.updated_at),
        }
    )


def build_post_document(post: PostEntity) -> Dict[str, Any]:
    user = post.user
    shared_by = post.shared_by
    return _drop_none(
        {
            "userId": post.user_id,
            "userName": user.user_name if user else None,
            "userEmail": user.email if user else None,
            "userAvatar": user.avatar if user else None,
            "content": post.content,
            "visibility": post.visibility,
            "images": list(post.images),
            "likesCount": post.likes_count,
            "commentsCount": post.comments_count,
            "sharesCount": post.shares_count,
            "isEdited": post.is_edited,
            "editedAt": _iso(post.edited_at),
            "originalPostId": post.original_post_id,
            "sharedById": shared_by.id if shared_by else None,
            "sharedByName": shared_by.user_name if shared_by else None,
            "sharedByAvatar": shared_by.avatar if shared_by else None,
            "createdAt": _iso(post.created_at),
            "updatedAt": _iso(post.updated_at),
        }
    )


def build_category_document(category: CategoryEntity) -> Dict[str, Any]:
    return _drop_none(
        {
            "name": category.name,
            "nameEn": category.name_en,
            "slug": category.slug,
            "description": category.description,
            "parentId": category.parent_id,
            "level": category.level,
            "isActive": category.is_active,
            "productCount": category.product_count,
            "suggest": {"input": [value for value in (category.name, category.slug, category.name_en) if value]},
            "createdAt": _iso(category.created_at),
            "updatedAt": _iso(category.updated_at),
        }
    )


def build_document(entity_type: EntityType, entity: Entity) -> Dict[str, Any]:
    if entity_type is EntityType.PRODUCTS and isinstance(entity, ProductEntity):
        return build_product_document(entity)
    if entity_type is EntityType.POSTS and isinstance(entity, PostEntity):
        return build_post_document(entity)
    if entity_type is EntityType.CATEGORIES and isinstance(entity, CategoryEntity):
        return build_category_document(entity)
    raise TypeError(f"Cannot index {type(entity).__name__} into {entity_type.index_name}")


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, list) else []


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def product_from_source(doc_id: str, source: Dict[str, Any]) -> ProductEntity:
    return ProductEntity(
        id=doc_id,
        name=source.get("name") or "",
        name_en=source.get("nameEn"),
        category=CategoryRef(
            id=source.get("categoryId") or "",
            name=source.get("categoryName"),
            slug=source.get("categorySlug"),
        ),
        owner=OwnerRef(id=source.get("ownerId") or "", user_name=source.get("ownerName")),
        price=_as_float(source.get("price")),
        unit=source.get("unit") or "",
        description=source.get("description") or "",
        images=_as_list(source.get("images")),
        in_stock=bool(source.get("inStock")),
        stock_quantity=_as_int(source.get("stockQuantity")),
        tags=_as_list(source.get("tags")),
        rating=_as_float(source.get("rating")),
        review_count=_as_int(source.get("reviewCount")),
        created_at=source.get("createdAt"),
        updated_at=source.get("updatedAt"),
    )


def post_from_source(doc_id: str, source: Dict[str, Any]) -> PostEntity:
    user_id = source.get("userId") or ""
    shared_by_id = source.get("sharedById")
    return PostEntity(
        id=doc_id,
        user_id=user_id,
        content=source.get("content") or "",
        images=_as_list(source.get("images")),
        likes_count=_as_int(source.get("likesCount")),
        comments_count=_as_int(source.get("commentsCount")),
        shares_count=_as_int(source.get("sharesCount")),
        visibility=source.get("visibility") or "public",
        is_edited=bool(source.get("isEdited")),
        edited_at=source.get("editedAt"),
        original_post_id=source.get("originalPostId"),
        user=UserRef(
            id=user_id,
            user_name=source.get("userName"),
            email=source.get("userEmail"),
            avatar=source.get("userAvatar"),
        )
        if user_id
        else None,
        shared_by=UserRef(
            id=shared_by_id,
            user_name=source.get("sharedByName"),
            avatar=source.get("sharedByAvatar"),
        )
        if shared_by_id
        else None,
        created_at=source.get("createdAt"),
        updated_at=source.get("updatedAt"),
    )


def suggestion_from_option(option: Dict[str, Any]) -> SuggestionItem:
    source = option.get("_source") or {}
    images = source.get("images")
    return SuggestionItem(
        id=str(option.get("_id")),
        name=source.get("name") or "",
        price=_as_float(source.get("price")),
        image=images[0] if isinstance(images, list) and images else None,
    )


def suggestion_from_product(product: ProductEntity) -> SuggestionItem:
    return SuggestionItem(
        id=product.id,
        name=product.name,
        price=product.price,
        image=product.images[0] if product.images else None,
    )
