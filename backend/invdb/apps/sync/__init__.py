"""
Inventory synchronisation.

Debounced, best-effort replication of the item collection to a remote
key-value store, with a local JSON cache as fallback.
"""
