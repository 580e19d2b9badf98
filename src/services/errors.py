"""Exception types raised by the reconciliation engine."""

from typing import Optional


class ReconciliationError(Exception):
    pass


class SourceError(ReconciliationError):
    """The input could not be read as a sequence of records."""


class RecordInvalid(ReconciliationError):
    """A single record lacks a title or a category list."""

    def __init__(self, message: str, raw: Optional[object] = None):
        super().__init__(message)
        self.raw = raw


class StoreError(ReconciliationError):
    """A catalog store operation failed."""


class RaceError(StoreError):
    """Entity insert lost a uniqueness race against another writer."""

    def __init__(self, entity_type: str, name: str, slug: str):
        super().__init__(f"{entity_type} '{name}' conflicts on slug '{slug}'")
        self.entity_type = entity_type
        self.name = name
        self.slug = slug
