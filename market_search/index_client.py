"""Search index access: bootstrap, document upkeep, queries and suggestions.

:class:`SearchIndexClient` is the only owner of the Elasticsearch connection.
It is constructed explicitly by the wiring layer and injected into the
orchestrators. Bootstrap runs at most once per instance; the ``_ready`` flag is
checked and set without a lock because re-running index creation is harmless.
"""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from elasticsearch import Elasticsearch
from elasticsearch.exceptions import ApiError, BadRequestError, NotFoundError, TransportError

from .documents import Entity, build_document, post_from_source, product_from_source, suggestion_from_option
from .errors import IndexUnavailableError
from .es_client import create_client
from .models import EntityType, SearchQuery, SearchResultPage, SuggestionItem
from .query_builder import build_completion_suggest, build_post_query, build_product_query

logger = logging.getLogger(__name__)

MAPPINGS_DIR = Path(__file__).with_name("mappings")
# Size of the completion prefetch used to boost full-text product search.
PREFETCH_SUGGEST_SIZE = 12
MIN_SUPPORTED_MAJOR_VERSION = 7


def _load_mapping(entity_type: EntityType, mappings_dir: Path = MAPPINGS_DIR) -> dict:
    mapping_path = mappings_dir / f"{entity_type.index_name}.json"
    with mapping_path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _body(response: Any) -> Dict[str, Any]:
    body = getattr(response, "body", response)
    return body if isinstance(body, dict) else {}


def _hits_total(hits: Dict[str, Any]) -> int:
    total = hits.get("total")
    if isinstance(total, dict):
        return int(total.get("value", 0))
    if isinstance(total, int):
        return total
    return len(hits.get("hits", []))


def _suggest_options(response: Dict[str, Any], key: str) -> List[dict]:
    entries = (response.get("suggest") or {}).get(key) or []
    if not entries:
        return []
    return list(entries[0].get("options") or [])


class SearchIndexClient:
    def __init__(
        self,
        node: str,
        *,
        client_factory: Callable[[str], Elasticsearch] = create_client,
        mappings_dir: Path = MAPPINGS_DIR,
    ) -> None:
        self._node = (node or "").strip()
        self._client_factory = client_factory
        self._mappings_dir = mappings_dir
        self._client: Optional[Elasticsearch] = None
        self._ready = False
        if not self._node:
            logger.warning("ELASTICSEARCH_NODE is empty; search index features are disabled")

    def is_enabled(self) -> bool:
        return bool(self._node)

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        """Connect and make sure every index exists. Safe to call repeatedly."""
        if not self.is_enabled():
            logger.warning("Skipping index initialization because ELASTICSEARCH_NODE is not configured")
            return
        await self._ensure_client()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._ready = False

    async def _ensure_client(self) -> Elasticsearch:
        if not self.is_enabled():
            raise IndexUnavailableError("Elasticsearch node is not configured")
        if self._client is None:
            self._client = self._client_factory(self._node)
        if not self._ready:
            await self._bootstrap(self._client)
            self._ready = True
        return self._client

    async def _bootstrap(self, es: Elasticsearch) -> None:
        try:
            alive = await asyncio.to_thread(es.ping)
            if not alive:
                raise IndexUnavailableError(f"Elasticsearch at {self._node} did not answer ping")
            await self._log_server_version(es)
            for entity_type in EntityType:
                await self._ensure_index(es, entity_type.index_name, _load_mapping(entity_type, self._mappings_dir))
        except IndexUnavailableError:
            logger.error("Unable to connect to Elasticsearch at %s", self._node)
            raise
        except (ApiError, TransportError) as exc:
            logger.error("Elasticsearch bootstrap failed: %s", exc)
            raise IndexUnavailableError(str(exc)) from exc
        logger.info("Connected to Elasticsearch, indices ready")

    async def _log_server_version(self, es: Elasticsearch) -> None:
        try:
            info = _body(await asyncio.to_thread(es.info))
        except (ApiError, TransportError) as exc:
            logger.warning("Could not read Elasticsearch server info: %s", exc)
            return
        version = str((info.get("version") or {}).get("number", "unknown"))
        logger.info("Elasticsearch server version=%s", version)
        major = version.split(".")[0]
        if major.isdigit() and int(major) < MIN_SUPPORTED_MAJOR_VERSION:
            logger.warning("Elasticsearch server %s looks too old for this client", version)

    async def _ensure_index(self, es: Elasticsearch, index: str, body: dict) -> None:
        exists = await asyncio.to_thread(es.indices.exists, index=index)
        if exists:
            properties = (body.get("mappings") or {}).get("properties")
            if properties:
                try:
                    await asyncio.to_thread(es.indices.put_mapping, index=index, properties=properties)
                except ApiError as exc:
                    logger.warning("Failed to update mapping for %s: %s", index, exc)
            if body.get("settings"):
                try:
                    await asyncio.to_thread(es.indices.put_settings, index=index, settings=body["settings"])
                except ApiError as exc:
                    logger.warning("Failed to update settings for %s: %s", index, exc)
            return

        logger.info("Creating index %s", index)
        try:
            await asyncio.to_thread(
                es.indices.create,
                index=index,
                settings=body.get("settings"),
                mappings=body.get("mappings"),
            )
        except BadRequestError as exc:
            if getattr(exc, "error", "") == "resource_already_exists_exception":
                logger.info("Index %s already exists", index)
                return
            raise

    async def index_document(self, entity_type: EntityType, entity: Entity, *, refresh: Any = "wait_for") -> bool:
        """Upsert one document. Failures are logged and reported, never raised."""
        try:
            es = await self._ensure_client()
            document = build_document(entity_type, entity)
            await asyncio.to_thread(
                es.index,
                index=entity_type.index_name,
                id=entity.id,
                document=document,
                refresh=refresh,
            )
        except Exception as exc:  # catalog writes never fail on indexing
            logger.error("index_document failed for %s/%s: %s", entity_type.index_name, entity.id, exc)
            return False
        return True

    async def remove_document(self, entity_type: EntityType, entity_id: str) -> bool:
        try:
            es = await self._ensure_client()
            await asyncio.to_thread(es.delete, index=entity_type.index_name, id=entity_id, refresh="wait_for")
        except Exception as exc:  # same contract as index_document
            logger.warning("remove_document skipped for %s/%s: %s", entity_type.index_name, entity_id, exc)
            return False
        return True

    async def count_documents(self, entity_type: EntityType) -> int:
        """Document count of an index; a missing index counts as zero.

        Raises :class:`IndexUnavailableError` when the cluster cannot be
        reached, so callers can tell "down" apart from "empty".
        """
        if not self.is_enabled():
            return 0
        es = await self._ensure_client()
        try:
            response = _body(await asyncio.to_thread(es.count, index=entity_type.index_name))
        except NotFoundError:
            return 0
        except (ApiError, TransportError) as exc:
            raise IndexUnavailableError(f"count failed for {entity_type.index_name}: {exc}") from exc
        return int(response.get("count", 0) or 0)

    async def raw_suggest(self, entity_type: EntityType, query: SearchQuery, size: int) -> Dict[str, Any]:
        if entity_type is EntityType.POSTS:
            raise ValueError("posts index has no completion field")
        es = await self._ensure_client()
        response = await asyncio.to_thread(
            es.search,
            index=entity_type.index_name,
            size=0,
            suggest=build_completion_suggest(query, size),
        )
        return _body(response)

    async def _suggested_ids(self, query: SearchQuery) -> List[str]:
        try:
            response = await self.raw_suggest(EntityType.PRODUCTS, query, PREFETCH_SUGGEST_SIZE)
        except (ApiError, TransportError) as exc:
            logger.debug("suggest prefetch failed for q=%r: %s", query.raw, exc)
            return []
        ids: List[str] = []
        for option in _suggest_options(response, "primary") + _suggest_options(response, "normalized"):
            doc_id = str(option.get("_id") or "")
            if doc_id and doc_id not in ids:
                ids.append(doc_id)
            if len(ids) >= PREFETCH_SUGGEST_SIZE:
                break
        return ids

    async def raw_search(self, entity_type: EntityType, query: SearchQuery) -> Dict[str, Any]:
        if entity_type is EntityType.PRODUCTS:
            body = build_product_query(query, await self._suggested_ids(query))
        elif entity_type is EntityType.POSTS:
            body = build_post_query(query)
        else:
            raise ValueError(f"full-text search is not supported for {entity_type.value}")
        es = await self._ensure_client()
        response = await asyncio.to_thread(
            es.search,
            index=entity_type.index_name,
            from_=query.offset,
            size=query.limit,
            query=body,
        )
        return _body(response)

    async def search(self, entity_type: EntityType, query: SearchQuery) -> SearchResultPage:
        """One page of ranked hits. ``total`` is the index's own estimate."""
        response = await self.raw_search(entity_type, query)
        hits = response.get("hits") or {}
        mapper = product_from_source if entity_type is EntityType.PRODUCTS else post_from_source
        items = [mapper(str(hit.get("_id")), hit.get("_source") or {}) for hit in hits.get("hits", [])]
        total = _hits_total(hits)
        logger.info(
            "index search index=%s q=%r normalized=%r page=%s hits=%s total=%s took=%sms",
            entity_type.index_name,
            query.raw,
            query.normalized,
            query.page,
            len(items),
            total,
            response.get("took", 0),
        )
        return SearchResultPage.build(items, total, query.page, query.limit)

    async def suggest(self, entity_type: EntityType, prefix: str, limit: int) -> List[SuggestionItem]:
        """Completion suggestions; raw-prefix matches rank before folded-prefix ones."""
        query = SearchQuery.build(prefix, limit=limit)
        if not query.raw:
            return []
        response = await self.raw_suggest(entity_type, query, query.limit)
        seen: Dict[str, SuggestionItem] = {}
        for option in _suggest_options(response, "primary") + _suggest_options(response, "normalized"):
            doc_id = option.get("_id")
            if not doc_id or str(doc_id) in seen:
                continue
            seen[str(doc_id)] = suggestion_from_option(option)
            if len(seen) >= query.limit:
                break
        return list(seen.values())
