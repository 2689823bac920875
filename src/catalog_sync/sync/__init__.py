"""
Sync — keeping the vector index in step with catalog changes.

Create / update / delete events arrive over the message broker and are
applied by :class:`~catalog_sync.sync.reconciler.SyncReconciler`.
"""
