"""
Pipelines — Kubeflow Pipelines (KFP v2) definitions for catalog re-indexing.

Components are self-contained ``@kfp.dsl.component`` functions that import
``catalog_sync`` inside their body, so each runs in its own container.
"""
