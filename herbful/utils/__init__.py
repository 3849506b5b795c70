"""
Utility modules for the back-office.

Cross-cutting concerns:
- Storage: collection store, blob store and local state backends
- Firebase: Realtime Database and Cloud Storage adapters
- Pagination, timestamps and per-key locking helpers
"""
