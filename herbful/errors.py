"""
Error hierarchy for the back-office.

Exception Tree::

    HerbfulError (base)
    ├── NotFound
    ├── AlreadyExists
    ├── ValidationFailed
    ├── UpstreamReadFailed
    └── UpstreamWriteFailed
"""

from typing import Dict, Optional


class HerbfulError(Exception):
    """
    Base exception for all back-office errors.

    Attributes:
        message: Human-readable error description
        details: Structured context (ids, paths, field errors)
    """

    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFound(HerbfulError):
    """Referenced treatment or review does not exist."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(
            f"{kind.capitalize()} not found: {record_id!r}",
            details={"kind": kind, "id": record_id}
        )
        self.kind = kind
        self.record_id = record_id


class AlreadyExists(HerbfulError):
    """A record with the derived id is already stored."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(
            f"{kind.capitalize()} already exists: {record_id!r}",
            details={"kind": kind, "id": record_id}
        )
        self.kind = kind
        self.record_id = record_id


class ValidationFailed(HerbfulError, ValueError):
    """
    One or more form fields violate their constraints.

    ``errors`` maps the field name to the message shown next to it.
    """

    def __init__(self, errors: Dict[str, str]):
        summary = "; ".join(f"{field}: {msg}" for field, msg in errors.items())
        super().__init__(f"Validation failed ({summary})", details={"errors": dict(errors)})
        self.errors = dict(errors)


class UpstreamReadFailed(HerbfulError):
    """Backend read failed (network error, unreadable file, bad payload)."""


class UpstreamWriteFailed(HerbfulError):
    """Backend rejected a write or delete."""
