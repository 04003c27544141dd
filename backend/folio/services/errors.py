"""
Error taxonomy for the annotation and search services.

Whole-operation failures (merge transaction, durable writes) are converted
into typed ``OperationResult`` values by the engines; per-page failures are
absorbed where they happen. ``SearchCanceled`` is an internal control signal
and is never surfaced to callers.
"""


class FolioError(Exception):
    """Base class for all annotation/search errors."""

    code = "error"


class InvalidSelection(FolioError):
    """Raised when a selection has no usable rects after normalization."""

    code = "invalid_selection"


# Name used by the highlight engine when the selection collapses to nothing
EmptySelection = InvalidSelection


class InvalidNote(FolioError):
    """Raised when a note has no content or is anchored to an invalid page."""

    code = "invalid_note"


class NotFound(FolioError):
    """Raised when operating on a missing highlight, book or owner."""

    code = "not_found"


class PersistenceError(FolioError):
    """Raised when a storage transaction could not complete."""

    code = "persistence_error"


class ExtractionError(FolioError):
    """Raised when the text of a page is unavailable."""

    code = "extraction_error"


class SearchCanceled(FolioError):
    """Raised inside a search run that has been superseded."""

    code = "canceled"


HTTP_STATUS_BY_CODE = {
    InvalidSelection.code: 400,
    InvalidNote.code: 400,
    NotFound.code: 404,
    ExtractionError.code: 422,
    PersistenceError.code: 500,
}


def http_status_for(code: str | None) -> int:
    """Map an error code to the HTTP status the routers answer with."""
    return HTTP_STATUS_BY_CODE.get(code or "", 500)
