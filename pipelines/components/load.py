"""KFP v2 component — Load the item catalog into the vector store.

Runs one catalog load task to completion inside the pipeline step, using
the same loaders as the web service.  A task that fails is reported in
the metrics and re-raised so the pipeline run is marked failed.

Local testing
-------------
    from pipelines.components.load import load_catalog
    load_catalog.python_func(
        catalog_base_url="http://localhost:8081",
        chroma_host="localhost",
        chroma_port=8000,
        collection_name="catalog_items",
        metrics=_FakeArtifact("/tmp/metrics"),
    )
"""

import os

from kfp import dsl

# Built from the repository Dockerfile; it carries catalog_sync and its dependencies.
COMPONENT_IMAGE = os.environ.get("CATALOG_SYNC_IMAGE", "catalog-sync:0.1.0")


@dsl.component(base_image=COMPONENT_IMAGE)
def load_catalog(
    catalog_base_url: str,
    chroma_host: str,
    chroma_port: int,
    collection_name: str,
    metrics: dsl.Output[dsl.Metrics],
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2",
    mode: str = "sequential",
    page_size: int = 100,
    batch_size: int = 10,
    thread_count: int = 3,
) -> str:
    """Page through the catalog and index every item.

    Parameters
    ----------
    catalog_base_url:
        Root URL of the item service.
    chroma_host / chroma_port / collection_name:
        Chroma connection details and target collection.
    metrics:
        Output Metrics artifact with load statistics.
    embedding_model:
        HuggingFace model identifier for embedding.
    mode:
        ``"sequential"`` | ``"parallel"``
    page_size / batch_size:
        Items per catalog page and per vector-store write.
    thread_count:
        Page-workers (parallel mode only).

    Returns
    -------
    str
        Summary, e.g. ``"Loaded 250 items (COMPLETED) → collection 'catalog_items'"``.
    """
    import logging

    from catalog_sync.ingestion.committer import BatchCommitter
    from catalog_sync.ingestion.loader import SequentialLoader
    from catalog_sync.ingestion.models import TaskStatus
    from catalog_sync.ingestion.parallel import ParallelLoader
    from catalog_sync.ingestion.progress import ProgressRegistry
    from catalog_sync.ingestion.source import HttpCatalogSource
    from catalog_sync.retrieval.chroma_store import ChromaVectorStore

    logging.basicConfig(level=logging.INFO)
    log = logging.getLogger("load_catalog")

    store = ChromaVectorStore(
        collection_name,
        host=chroma_host,
        port=chroma_port,
        embedding_model=embedding_model,
    )
    source = HttpCatalogSource(catalog_base_url)
    registry = ProgressRegistry()
    committer = BatchCommitter(store, registry)

    options = {}
    if mode == "parallel":
        loader = ParallelLoader(source, committer, registry)
        options["thread_count"] = thread_count
    elif mode == "sequential":
        loader = SequentialLoader(source, committer, registry)
    else:
        raise ValueError(f"Unknown load mode {mode!r}")

    progress = loader.begin(page_size=page_size, batch_size=batch_size, **options)
    try:
        loader.run(progress.task_id)
    finally:
        final = registry.require(progress.task_id)
        metrics.log_metric("items_processed", final.processed_items)
        metrics.log_metric("items_total", final.total_items or 0)
        metrics.log_metric("pages_total", final.total_pages or 0)
        metrics.log_metric("completed", int(final.status is TaskStatus.COMPLETED))
        close = getattr(loader, "close", None)
        if close is not None:
            close()

    msg = f"Loaded {final.processed_items} items ({final.status.value}) → collection '{collection_name}'"
    log.info(msg)
    return msg
