"""Similarity queries over ingested catalog data.

Usage::

    from catalog_sync.retrieval.retriever import CatalogRetriever

    retriever = CatalogRetriever()
    for hit in retriever.search("waterproof hiking boots", k=5):
        print(hit.item_id, hit.content[:80])

Ranking is whatever the backend returns; no re-ranking is applied.
"""

from __future__ import annotations

import logging

from catalog_sync.config import settings
from catalog_sync.ingestion.transformer import DOCUMENT_TYPE
from catalog_sync.retrieval.base import VectorStoreBase
from catalog_sync.retrieval.models import MetadataFilter, SearchHit

logger = logging.getLogger(__name__)


class CatalogRetriever:
    """Thin query wrapper around any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        A concrete vector-store backend.  When *None*, a default
        :class:`~catalog_sync.retrieval.chroma_store.ChromaVectorStore`
        is created from the global settings.
    default_k:
        Default number of results returned by :meth:`search`.
    score_threshold:
        Minimum similarity score; results below this are discarded.
    products_only:
        Restrict results to documents carrying the catalog discriminator.
    """

    def __init__(
        self,
        store: VectorStoreBase | None = None,
        *,
        default_k: int = settings.search_k,
        score_threshold: float = 0.0,
        products_only: bool = True,
    ) -> None:
        if store is None:
            from catalog_sync.retrieval.chroma_store import ChromaVectorStore

            store = ChromaVectorStore()
        self._store = store
        self.default_k = default_k
        self.score_threshold = score_threshold
        self.products_only = products_only

    def search(
        self,
        query: str,
        *,
        k: int | None = None,
        filters: list[MetadataFilter] | None = None,
    ) -> list[SearchHit]:
        """Run a similarity search and return typed hits.

        Parameters
        ----------
        query:
            Natural-language query string.
        k:
            Number of results (defaults to ``self.default_k``).
        filters:
            Optional metadata filters forwarded to the vector store.
        """
        k = k or self.default_k
        all_filters = list(filters or [])
        if self.products_only:
            all_filters.append(MetadataFilter.equals("type", DOCUMENT_TYPE))

        raw_hits = self._store.similarity_search_by_text(query, k=k, filters=all_filters or None)
        hits = []
        for raw in raw_hits:
            score = raw.get("score")
            if score is not None and score < self.score_threshold:
                continue
            hits.append(
                SearchHit(
                    document_id=raw.get("id"),
                    content=raw.get("content", ""),
                    score=score,
                    metadata=raw.get("metadata") or {},
                )
            )
        logger.debug("Search %r returned %d hits", query, len(hits))
        return hits
