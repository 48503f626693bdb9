"""Elasticsearch client factory.

The rest of the code works against the official synchronous client. Blocking
calls are wrapped via ``asyncio.to_thread`` by the caller where necessary.
"""
from __future__ import annotations

import logging

from elasticsearch import Elasticsearch

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def create_client(node: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Elasticsearch:
    logger.info("Connecting to Elasticsearch at %s", node)
    return Elasticsearch(node, request_timeout=timeout)
