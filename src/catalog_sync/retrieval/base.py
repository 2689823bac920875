"""Abstract base class for vector-store backends.

The loaders, the batch committer and the sync reconciler only ever talk
to :class:`VectorStoreBase`; adding a backend (Milvus, Elasticsearch,
Qdrant …) means subclassing it and implementing the abstract methods.

Backends should raise :class:`~catalog_sync.errors.VectorStoreError`
with an explicit :class:`~catalog_sync.errors.ErrorKind` so the retry
ladders can tell network blips from persistent failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from catalog_sync.retrieval.models import MetadataFilter

if TYPE_CHECKING:
    from langchain_core.documents import Document


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def add(self, documents: list[Document]) -> list[str]:
        """Embed and store *documents*; return the backend ids assigned.

        The write is all-or-nothing from the caller's point of view: an
        exception means none of the documents may be assumed stored.
        """
        ...

    @abstractmethod
    def similarity_search_by_text(
        self,
        query: str,
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        """Return the top-*k* stored documents closest to *query*.

        Each result dict **must** contain at least:

        * ``"id"`` – backend document identifier (usable with :meth:`delete`)
        * ``"content"`` – the textual content
        * ``"score"`` – similarity score (higher = more similar)
        * ``"metadata"`` – associated metadata dict
        """
        ...

    @abstractmethod
    def delete(self, ids: list[str]) -> None:
        """Delete documents by their backend ids."""
        ...

    # -- optional overrides ---------------------------------------------------

    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        return True
