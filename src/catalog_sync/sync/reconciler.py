"""Apply catalog change events to the vector store.

Every operation is best-effort idempotent: an UPDATE deletes whatever is
indexed for the item before adding the current record, so replaying the
same event leaves exactly one document behind.  Reconciliation never
touches the progress registry.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from catalog_sync.errors import SyncError
from catalog_sync.ingestion.models import CatalogRecord
from catalog_sync.ingestion.transformer import to_document, to_documents
from catalog_sync.retrieval.models import MetadataFilter
from catalog_sync.sync.events import EventType, SyncEvent

if TYPE_CHECKING:
    from catalog_sync.ingestion.source import CatalogSource
    from catalog_sync.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


class SyncReconciler:
    """Translate sync events into vector-store writes.

    Parameters
    ----------
    store:
        Vector store to keep in sync.
    source:
        Catalog source used when an event carries no record snapshot.
    search_k:
        How many nearest documents to inspect when looking up the
        documents indexed for an item.
    """

    def __init__(self, store: VectorStoreBase, source: CatalogSource, *, search_k: int = 10) -> None:
        self._store = store
        self._source = source
        self._search_k = search_k

    def handle(self, event: SyncEvent) -> None:
        """Dispatch *event* on its type; untyped events are treated as CREATE.

        Raises
        ------
        SyncError
            When the vector-store add fails.  Lookup and delete failures
            are logged and absorbed.
        """
        logger.info(
            "Handling %s event for item %d (source=%s, operator=%s)",
            event.event_type.value if event.event_type else "untyped",
            event.item_id,
            event.source,
            event.operator_id,
        )
        if event.event_type is EventType.DELETE:
            self.handle_delete(event.item_id)
        elif event.event_type is EventType.UPDATE:
            self.handle_update(event.item_id, event.item_data)
        else:
            if event.event_type is None:
                logger.info("Item %d: event type missing or unknown, handling as create", event.item_id)
            self.handle_create(event.item_id, event.item_data)

    def handle_create(self, item_id: int, record: CatalogRecord | dict[str, Any] | None = None) -> bool:
        """Index *item_id*; returns ``False`` when no record could be resolved."""
        resolved = self._resolve(item_id, record)
        if resolved is None:
            logger.warning("Item %d not found in the catalog, skipping create", item_id)
            return False
        self._add_one(item_id, resolved)
        logger.info("Item %d indexed", item_id)
        return True

    def handle_update(self, item_id: int, record: CatalogRecord | dict[str, Any] | None = None) -> bool:
        """Replace whatever is indexed for *item_id* with the current record."""
        removed = self._delete_item(item_id)
        logger.debug("Item %d: removed %d stale documents before update", item_id, removed)
        resolved = self._resolve(item_id, record)
        if resolved is None:
            logger.warning("Item %d not found in the catalog, nothing to re-index", item_id)
            return False
        self._add_one(item_id, resolved)
        logger.info("Item %d re-indexed", item_id)
        return True

    def handle_delete(self, item_id: int) -> int:
        """Remove every document indexed for *item_id*; returns how many went."""
        removed = self._delete_item(item_id)
        logger.info("Item %d: deleted %d documents", item_id, removed)
        return removed

    def batch_sync(self, records: Iterable[CatalogRecord | dict[str, Any]]) -> int:
        """Bulk-index *records* in one write; returns the number of documents added."""
        documents = to_documents(list(records))
        if not documents:
            return 0
        try:
            self._store.add(documents)
        except Exception as exc:
            logger.error("Batch sync of %d items failed: %s", len(documents), exc)
            raise SyncError(f"Batch sync of {len(documents)} items failed") from exc
        logger.info("Batch-synced %d items", len(documents))
        return len(documents)

    # -- internals ------------------------------------------------------------

    def _resolve(self, item_id: int, record: CatalogRecord | dict[str, Any] | None) -> Any:
        if record is not None:
            return record
        try:
            return self._source.fetch_by_id(item_id)
        except Exception:
            logger.error("Failed to fetch item %d from the catalog", item_id, exc_info=True)
            return None

    def _add_one(self, item_id: int, record: Any) -> None:
        try:
            self._store.add([to_document(record)])
        except Exception as exc:
            logger.error("Indexing item %d failed: %s", item_id, exc)
            raise SyncError(f"Indexing item {item_id} failed") from exc

    def _delete_item(self, item_id: int) -> int:
        target = str(item_id)
        try:
            hits = self._store.similarity_search_by_text(
                f"id:{item_id}",
                k=self._search_k,
                filters=[MetadataFilter.equals("id", target)],
            )
            ids = [hit["id"] for hit in hits if str((hit.get("metadata") or {}).get("id")) == target]
            if ids:
                self._store.delete(ids)
        except Exception:
            logger.error("Failed to delete documents for item %d", item_id, exc_info=True)
            return 0
        return len(ids)
