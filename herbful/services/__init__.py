"""
Service implementations for the back-office.

- Treatment Catalog (listing, search, CRUD, images)
- Review Service (CRUD, listing, rating recompute)
- Rating Aggregator (pandas reports, dashboard)
- Treatment Transfer (JSON export/import)
- Admin Auth (local mock login)
- Validation (form field rules)
"""
