"""Index-first search with datastore fallback."""

import logging

import pytest

from conftest import (
    FakeCategoryRepository,
    FakeIndexClient,
    FakePostRepository,
    FakeProductRepository,
    FakeUserRepository,
    make_posts,
    make_products,
)
from market_search.cache import InMemoryCache
from market_search.errors import SearchValidationError
from market_search.models import CategoryEntity, EntityType, ProductEntity, SuggestionItem, UserEntity
from market_search.orchestrator import (
    CATEGORY_LOOKUP_LIMIT,
    PostSearchOrchestrator,
    ProductSearchOrchestrator,
    SuggestionOrchestrator,
    UserSearchOrchestrator,
    validate_keyword,
)
from market_search.repositories import post_fallback, product_fallback


def _products_orchestrator(index, repository, categories=None):
    return ProductSearchOrchestrator(index, product_fallback(repository), categories or FakeCategoryRepository())


@pytest.mark.asyncio
async def test_disabled_index_returns_fallback_page():
    """Keyword without accents still finds accented names through the datastore."""

    repository = FakeProductRepository(
        [
            ProductEntity(id="p1", name="Cà chua bi", price=30000),
            ProductEntity(id="p2", name="Cà chua đen", price=45000),
        ],
        total=2,
    )
    index = FakeIndexClient(enabled=False)

    result = await _products_orchestrator(index, repository).search("ca chua", limit=6)

    assert [item.name for item in result.items] == ["Cà chua bi", "Cà chua đen"]
    assert result.total == 2
    assert result.total_pages == 1
    assert index.search_calls == []
    assert repository.calls == [{"keyword": "ca chua", "page": 1, "limit": 6, "category_ids": None}]


@pytest.mark.asyncio
async def test_full_index_page_skips_fallback():
    index = FakeIndexClient(results={EntityType.PRODUCTS: (make_products(*[f"p{i}" for i in range(8)]), 8)})
    repository = FakeProductRepository(make_products("x1"))
    categories = FakeCategoryRepository([CategoryEntity(id="c1", name="Rau")])

    result = await _products_orchestrator(index, repository, categories).search("rau", limit=6)

    assert [item.id for item in result.items] == ["p0", "p1", "p2", "p3", "p4", "p5"]
    assert result.total == 8
    assert repository.calls == []
    assert categories.calls == []


@pytest.mark.asyncio
async def test_no_matches_anywhere_yields_zero_pages():
    index = FakeIndexClient(results={EntityType.PRODUCTS: ([], 0)})
    repository = FakeProductRepository([])

    result = await _products_orchestrator(index, repository).search("xyz_no_match")

    assert result.items == []
    assert result.total == 0
    assert result.total_pages == 0


@pytest.mark.asyncio
async def test_short_index_page_is_topped_up_from_fallback():
    index = FakeIndexClient(results={EntityType.PRODUCTS: (make_products("p1", "p2"), 2)})
    repository = FakeProductRepository(make_products("p2", "p3", "p4"), total=3)

    result = await _products_orchestrator(index, repository).search("rau", limit=6)

    assert [item.id for item in result.items] == ["p1", "p2", "p3", "p4"]
    assert result.total == 4
    assert result.total_pages == 1
    assert repository.calls[0]["page"] == 1
    assert repository.calls[0]["limit"] == 26


@pytest.mark.asyncio
async def test_second_page_is_not_topped_up():
    index = FakeIndexClient(results={EntityType.PRODUCTS: (make_products("p7"), 7)})
    repository = FakeProductRepository(make_products("x1"))

    result = await _products_orchestrator(index, repository).search("rau", page=2, limit=6)

    assert [item.id for item in result.items] == ["p7"]
    assert result.page == 2
    assert repository.calls == []


@pytest.mark.asyncio
async def test_index_error_degrades_to_fallback(caplog):
    index = FakeIndexClient(error=RuntimeError("cluster red"))
    repository = FakeProductRepository(make_products("p1"))

    with caplog.at_level(logging.WARNING, logger="market_search.orchestrator"):
        result = await _products_orchestrator(index, repository).search("rau", page=2, limit=6)

    assert [item.id for item in result.items] == ["p1"]
    assert repository.calls[0]["page"] == 2
    assert "cluster red" in caplog.text


@pytest.mark.asyncio
async def test_top_up_failure_keeps_index_page():
    index = FakeIndexClient(results={EntityType.PRODUCTS: (make_products("p1"), 1)})
    repository = FakeProductRepository(error=RuntimeError("mongo down"))

    result = await _products_orchestrator(index, repository).search("rau")

    assert [item.id for item in result.items] == ["p1"]


@pytest.mark.asyncio
async def test_fallback_only_failure_propagates():
    index = FakeIndexClient(enabled=False)
    repository = FakeProductRepository(error=RuntimeError("mongo down"))

    with pytest.raises(RuntimeError):
        await _products_orchestrator(index, repository).search("rau")


@pytest.mark.asyncio
async def test_category_ids_widen_fallback_query():
    index = FakeIndexClient(enabled=False)
    repository = FakeProductRepository(make_products("p1"))
    categories = FakeCategoryRepository([CategoryEntity(id="c1", name="Rau củ"), CategoryEntity(id="c2", name="Rau thơm")])

    await _products_orchestrator(index, repository, categories).search("rau")

    assert categories.calls == [("rau", CATEGORY_LOOKUP_LIMIT)]
    assert repository.calls[0]["category_ids"] == ["c1", "c2"]


@pytest.mark.asyncio
async def test_category_lookup_failure_is_ignored():
    index = FakeIndexClient(enabled=False)
    repository = FakeProductRepository(make_products("p1"))
    categories = FakeCategoryRepository(error=RuntimeError("boom"))

    result = await _products_orchestrator(index, repository, categories).search("rau")

    assert [item.id for item in result.items] == ["p1"]
    assert repository.calls[0]["category_ids"] is None


@pytest.mark.asyncio
async def test_empty_keyword_is_rejected_before_any_lookup():
    index = FakeIndexClient()
    repository = FakeProductRepository(make_products("p1"))

    with pytest.raises(SearchValidationError):
        await _products_orchestrator(index, repository).search("   ")

    assert index.search_calls == []
    assert repository.calls == []


def test_validate_keyword_trims():
    assert validate_keyword("  cà chua ") == "cà chua"
    with pytest.raises(ValueError):
        validate_keyword(None)


@pytest.mark.asyncio
async def test_limit_is_clamped():
    index = FakeIndexClient(results={EntityType.PRODUCTS: (make_products(*[f"p{i}" for i in range(60)]), 60)})
    repository = FakeProductRepository()

    result = await _products_orchestrator(index, repository).search("rau", limit=500)

    assert result.limit == 50
    assert len(result.items) == 50


@pytest.mark.asyncio
async def test_post_search_uses_post_fallback():
    index = FakeIndexClient(enabled=False)
    repository = FakePostRepository(make_posts("x1", "x2"), total=9)

    result = await PostSearchOrchestrator(index, post_fallback(repository)).search("bán", limit=2)

    assert [item.id for item in result.items] == ["x1", "x2"]
    assert result.total == 9
    assert result.total_pages == 5


@pytest.mark.asyncio
async def test_user_search_probes_one_extra_row():
    users = [UserEntity(id=f"u{i}", user_name=f"lan{i}") for i in range(4)]
    repository = FakeUserRepository(users)

    section = await UserSearchOrchestrator(repository).search("lan", limit=3)

    assert [user.id for user in section.items] == ["u0", "u1", "u2"]
    assert section.has_more is True
    assert section.total == 4
    assert repository.find_calls == [("lan", 4, 0)]


@pytest.mark.asyncio
async def test_user_count_failure_falls_back_to_probe():
    users = [UserEntity(id=f"u{i}") for i in range(5)]
    repository = FakeUserRepository(users, count_error=RuntimeError("timeout"))

    section = await UserSearchOrchestrator(repository).search("lan", limit=2)

    assert section.has_more is True
    assert section.total == 3


def _suggestions(*ids):
    return [SuggestionItem(id=item_id, name=f"Cà {item_id}") for item_id in ids]


@pytest.mark.asyncio
async def test_suggestions_merge_index_then_fallback():
    index = FakeIndexClient(suggestions=_suggestions("p1", "p2", "p3"))
    repository = FakeProductRepository(make_products("p2", "p3", "p9"))

    items = await SuggestionOrchestrator(index, product_fallback(repository)).suggest("ca", limit=5)

    assert [item.id for item in items] == ["p1", "p2", "p3", "p9"]
    assert repository.calls[0]["limit"] == 10


@pytest.mark.asyncio
async def test_suggestions_for_blank_text_are_empty():
    index = FakeIndexClient(suggestions=_suggestions("p1"))

    assert await SuggestionOrchestrator(index, product_fallback(FakeProductRepository())).suggest("  ") == []
    assert index.suggest_calls == []


@pytest.mark.asyncio
async def test_suggestions_are_served_from_cache():
    index = FakeIndexClient(suggestions=_suggestions("p1", "p2"))
    repository = FakeProductRepository()
    orchestrator = SuggestionOrchestrator(index, product_fallback(repository), InMemoryCache(), cache_ttl_seconds=60)

    first = await orchestrator.suggest("ca", limit=2)
    second = await orchestrator.suggest("ca", limit=2)

    assert first == second
    assert len(index.suggest_calls) == 1


@pytest.mark.asyncio
async def test_degraded_suggestions_are_not_cached():
    index = FakeIndexClient(error=RuntimeError("cluster red"))
    repository = FakeProductRepository(make_products("p1"))
    orchestrator = SuggestionOrchestrator(index, product_fallback(repository), InMemoryCache(), cache_ttl_seconds=60)

    assert [item.id for item in await orchestrator.suggest("ca")] == ["p1"]
    await orchestrator.suggest("ca")

    assert len(index.suggest_calls) == 2
