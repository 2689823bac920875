"""KFP v2 pipeline — Catalog ingestion into the vector store.

A single step wrapping the resumable catalog loader, so a full re-index
can be scheduled as a recurring pipeline run next to the live sync
consumer.

Compile
-------
    python -m pipelines.catalog_pipeline --compile
"""

from kfp import compiler, dsl

from pipelines.components.load import load_catalog


# ──────────────────────────────────────────────────────────────────────
# Pipeline definition
# ──────────────────────────────────────────────────────────────────────


@dsl.pipeline(
    name="catalog-ingestion-pipeline",
    description="Page through the item catalog and index every item in Chroma.",
)
def catalog_pipeline(
    # ── Source ──────────────────────────────────────────────────────
    catalog_base_url: str = "http://item-service:8081",
    # ── Loader ─────────────────────────────────────────────────────
    mode: str = "sequential",
    page_size: int = 100,
    batch_size: int = 10,
    thread_count: int = 3,
    # ── Vector DB ──────────────────────────────────────────────────
    chroma_host: str = "chroma.kubeflow.svc.cluster.local",
    chroma_port: int = 8000,
    collection_name: str = "catalog_items",
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2",
) -> None:
    """Full catalog load.

    Parameters
    ----------
    catalog_base_url:
        Root URL of the item service.
    mode:
        ``"sequential"`` | ``"parallel"``
    page_size / batch_size / thread_count:
        Loader parameters.
    chroma_host / chroma_port / collection_name:
        Chroma connection details.
    embedding_model:
        HuggingFace model identifier for embedding.
    """
    load_catalog(
        catalog_base_url=catalog_base_url,
        chroma_host=chroma_host,
        chroma_port=chroma_port,
        collection_name=collection_name,
        embedding_model=embedding_model,
        mode=mode,
        page_size=page_size,
        batch_size=batch_size,
        thread_count=thread_count,
    )


# ──────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Catalog ingestion pipeline")
    parser.add_argument(
        "--compile",
        action="store_true",
        help="Compile pipeline to YAML",
    )
    parser.add_argument(
        "--output",
        default="pipelines/compiled/catalog_pipeline.yaml",
        help="Output path for compiled YAML",
    )
    args = parser.parse_args()

    if args.compile:
        compiler.Compiler().compile(catalog_pipeline, args.output)
        print(f"Pipeline compiled → {args.output}")
