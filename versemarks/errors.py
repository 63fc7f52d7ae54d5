"""Error kinds raised by the bookmark engine.

Identity errors are caller contract violations and are never corrected
silently. Storage failures wrap whatever the database layer raised.
"""


class BookmarkError(Exception):
    """Base error with an optional offending id."""

    error_code = 'BOOKMARK_ERROR'

    def __init__(self, detail, entity_id=None):
        self.detail = detail
        self.entity_id = entity_id
        super().__init__(detail)


class InvalidIdentity(BookmarkError):
    """A mutating label operation got a negative (virtual) id."""

    error_code = 'INVALID_IDENTITY'


class UnpersistedLabel(BookmarkError):
    """An association referenced a label or bookmark with no id yet."""

    error_code = 'UNPERSISTED_LABEL'


class NotFound(BookmarkError):
    error_code = 'NOT_FOUND'


class StorageFailure(BookmarkError):
    error_code = 'STORAGE_FAILURE'
