"""
Ingestion — paging the catalog into the vector store.

This package holds the resumable batch loaders and everything they lean
on: the catalog source adapter, the record → document transformer, the
progress registry and the batch committer with its retry ladders.
"""
