"""Document persistence for subscriber settings and reminders."""

from .documents import (
    DocumentStore,
    SqliteDocumentStore,
    apply_update,
    matches_filter,
)

__all__ = ["DocumentStore", "SqliteDocumentStore", "apply_update", "matches_filter"]
