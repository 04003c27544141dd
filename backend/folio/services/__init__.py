"""
Services Package

This package contains the annotation, search and reading-position services
of the reader: SQLite persistence for highlights, reading progress,
bookmarks and notes, the highlight merge engine, the incremental document
search with its on-page overlay, and the reading position autosave. A facade
wires them together for the HTTP routers.
"""

from .base_database_service import BaseDatabaseService
from .bookmarks_service import BookmarksService
from .highlight_engine import HighlightEngine
from .highlights_service import HighlightsService
from .notes_service import NotesService
from .reader_services import ReaderServices, get_reader_services, init_reader_services
from .reading_position_autosave import AutosaveRegistry, ReadingPositionAutosave
from .reading_progress_service import ReadingProgressService
from .search_engine import SearchEngine
from .search_overlay import SearchOverlaySynchronizer

__all__ = [
    "ReaderServices",
    "get_reader_services",
    "init_reader_services",
    "BaseDatabaseService",
    "HighlightsService",
    "ReadingProgressService",
    "BookmarksService",
    "NotesService",
    "HighlightEngine",
    "SearchEngine",
    "SearchOverlaySynchronizer",
    "ReadingPositionAutosave",
    "AutosaveRegistry",
]
