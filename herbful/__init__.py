"""
Herbful admin back-office.

Catalog, review and symptom-index management for the herbal remedy
database, plus the local admin login used by the back-office screens.
"""
