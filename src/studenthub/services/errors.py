class StoreError(Exception):
    """Raised by a document store backend when a read or write fails."""


class DuplicateRecordError(StoreError):
    """Raised when a write collides with a record that must be unique."""
