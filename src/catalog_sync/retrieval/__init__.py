"""
Retrieval — vector-store abstraction and similarity queries.

Everything that writes to or reads from the vector index goes through
:class:`VectorStoreBase`, so ingestion and reconciliation never need to
know which database backs the index.

Public surface
--------------
- :class:`VectorStoreBase` — abstract backend.
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`CatalogRetriever` — similarity queries over ingested data.
- :class:`MetadataFilter`, :class:`SearchHit` — data models.
"""

from catalog_sync.retrieval.base import VectorStoreBase
from catalog_sync.retrieval.models import MetadataFilter, SearchHit
from catalog_sync.retrieval.retriever import CatalogRetriever

__all__ = [
    "CatalogRetriever",
    "ChromaVectorStore",
    "MetadataFilter",
    "SearchHit",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from catalog_sync.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
