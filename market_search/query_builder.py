"""Elasticsearch query bodies for product and post search.

Every product clause is a ``should``; any single signal surfaces a document
and several signals compound the score. From weakest to strongest boost:
fuzzy multi-field match, phrase prefix on the name, exact token match on the
precomputed ``searchTerms`` and finally the ids returned by the completion
suggester.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from .models import SearchQuery

logger = logging.getLogger(__name__)

PRODUCT_TEXT_FIELDS = [
    "name^4",
    "name.keyword^6",
    "nameEn^2",
    "categoryName^3",
    "description",
    "tags^2",
]
PRODUCT_NORMALIZED_FIELDS = ["name^3", "nameEn^2", "categoryName^2", "description"]
POST_TEXT_FIELDS = ["content^4", "userName^2", "userEmail"]

PHRASE_PREFIX_BOOST = 2.0
NORMALIZED_PHRASE_PREFIX_BOOST = 1.5
SEARCH_TERMS_BOOST = 2.0
SUGGESTED_IDS_BOOST = 4.0

SUGGEST_FIELD = "suggest"
SUGGEST_FUZZINESS = 1


def _multi_match(text: str, fields: List[str]) -> dict:
    return {
        "multi_match": {
            "query": text,
            "fields": fields,
            "fuzziness": "AUTO",
            "operator": "and",
        }
    }


def _phrase_prefix(text: str, boost: float) -> dict:
    return {"match_phrase_prefix": {"name": {"query": text, "boost": boost}}}


def build_product_query(query: SearchQuery, suggested_ids: Sequence[str] = ()) -> Dict[str, Any]:
    should: List[dict] = [
        _multi_match(query.raw, PRODUCT_TEXT_FIELDS),
        _phrase_prefix(query.raw, PHRASE_PREFIX_BOOST),
    ]

    normalized = query.normalized_variant
    if normalized:
        should.append(_multi_match(normalized, PRODUCT_NORMALIZED_FIELDS))
        should.append(_phrase_prefix(normalized, NORMALIZED_PHRASE_PREFIX_BOOST))

    # query.tokens already holds the folded form of every token.
    if query.tokens:
        should.append({"terms": {"searchTerms": list(query.tokens), "boost": SEARCH_TERMS_BOOST}})

    if suggested_ids:
        should.append({"ids": {"values": list(suggested_ids), "boost": SUGGESTED_IDS_BOOST}})

    body = {"bool": {"should": should, "minimum_should_match": 1}}
    logger.debug("product query payload=%s", body)
    return body


def build_post_query(query: SearchQuery) -> Dict[str, Any]:
    return _multi_match(query.raw, POST_TEXT_FIELDS)


def _completion(prefix: str, size: int) -> dict:
    return {
        "prefix": prefix,
        "completion": {
            "field": SUGGEST_FIELD,
            "size": size,
            "skip_duplicates": True,
            "fuzzy": {"fuzziness": SUGGEST_FUZZINESS},
        },
    }


def build_completion_suggest(query: SearchQuery, size: int) -> Dict[str, Any]:
    """Suggest body with a ``primary`` entry and, for accented input, a ``normalized`` one."""
    suggest: Dict[str, Any] = {"primary": _completion(query.raw, size)}
    normalized = query.normalized_variant
    if normalized:
        suggest["normalized"] = _completion(normalized, size)
    return suggest
