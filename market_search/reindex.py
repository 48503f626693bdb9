"""Batch reconciliation between the datastore and the search index.

For every entity type the index document count is compared with the
datastore count. When the index has fewer documents, every source row is
streamed from a cursor and re-indexed one by one. A failing row is logged and
counted and the stream carries on, so a pass can finish incomplete; the next
run picks up what is still missing. Running the job repeatedly is harmless.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence

from .errors import IndexUnavailableError
from .index_client import SearchIndexClient
from .models import EntityType, ReconciliationReport
from .repositories import SourceStore

logger = logging.getLogger(__name__)

ALL_ENTITY_TYPES: Sequence[EntityType] = tuple(EntityType)
MAX_REPORTED_ERRORS = 20


class ReindexCoordinator:
    def __init__(
        self,
        index: SearchIndexClient,
        store: SourceStore,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._index = index
        self._store = store
        self._log = log or logger

    async def run(self, entity_types: Iterable[EntityType] = ALL_ENTITY_TYPES) -> List[ReconciliationReport]:
        """Reconcile the given entity types concurrently; each touches its own index."""
        entity_types = list(entity_types)
        results = await asyncio.gather(
            *(self.reconcile(entity_type) for entity_type in entity_types),
            return_exceptions=True,
        )
        reports: List[ReconciliationReport] = []
        for entity_type, result in zip(entity_types, results):
            if isinstance(result, BaseException):
                self._log.error("reindex %s aborted: %r", entity_type.value, result)
                continue
            reports.append(result)
        return reports

    async def reconcile(self, entity_type: EntityType) -> ReconciliationReport:
        if not self._index.is_enabled():
            self._log.warning("reindex %s skipped: search index is disabled", entity_type.value)
            return ReconciliationReport(entity_type=entity_type, index_count=0, store_count=0)

        store_count = await self._store.count_all(entity_type)
        try:
            await self._index.initialize()
            index_count = await self._index.count_documents(entity_type)
        except IndexUnavailableError as exc:
            # An unreachable index is not an empty one; skip instead of streaming rows.
            self._log.warning("reindex %s skipped: search index unavailable: %s", entity_type.value, exc)
            report = ReconciliationReport(entity_type=entity_type, index_count=0, store_count=store_count)
            report.errors.append(f"index unavailable: {exc}")
            return report
        report = ReconciliationReport(entity_type=entity_type, index_count=index_count, store_count=store_count)
        if index_count >= store_count:
            self._log.info("reindex %s ok: index=%s store=%s", entity_type.value, index_count, store_count)
            return report

        self._log.info(
            "reindex %s: index has %s documents, store has %s; reindexing",
            entity_type.value,
            index_count,
            store_count,
        )
        report.action = "full-reindex"
        async for row in self._store.iter_rows(entity_type):
            entity_id = str(row.get("_id", "?"))
            try:
                entity = self._store.to_entity(entity_type, row)
            except Exception as exc:
                self._record_failure(report, entity_id, exc)
                continue
            # index_document already logs the cause and never raises.
            if await self._index.index_document(entity_type, entity, refresh=False):
                report.indexed += 1
            else:
                self._record_failure(report, entity_id, "index_document failed")

        self._log.info(
            "reindex %s done: indexed=%s failures=%s",
            entity_type.value,
            report.indexed,
            report.failures,
        )
        return report

    def _record_failure(self, report: ReconciliationReport, entity_id: str, cause: object) -> None:
        report.failures += 1
        if len(report.errors) < MAX_REPORTED_ERRORS:
            report.errors.append(f"{entity_id}: {cause}")
        self._log.warning("reindex %s failed for id=%s: %s", report.entity_type.value, entity_id, cause)
