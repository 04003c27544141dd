"""
Reader Services Module

Facade wiring the persistence services, the highlight engine and the open
reading sessions together for the HTTP routers.

A reading session is one book open for one user: the PDF document, its
search engine, the search overlay of the page on screen and the reading
position autosave. Opening a book restores the saved position; closing it
or shutting down the process flushes the pending position write and
finalizes deferred highlight deletions.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..models.highlights import Owner
from ..models.search import SearchResult
from .base_database_service import DEFAULT_DB_PATH
from .bookmarks_service import BookmarksService
from .errors import ExtractionError, FolioError, NotFound
from .highlight_engine import UNDO_GRACE_SECONDS, HighlightEngine
from .highlights_service import HighlightsService
from .notes_service import NotesService
from .pdf_service import PDFService
from .reading_position_autosave import (
    QUIET_SECONDS,
    AutosaveRegistry,
    ReadingPositionAutosave,
)
from .reading_progress_service import ReadingProgressService
from .search_engine import SearchEngine
from .search_overlay import OverlayState, SearchOverlaySynchronizer

logger = logging.getLogger(__name__)

DEFAULT_PDF_DIR = "pdfs"


@dataclass
class ReaderSession:
    """One book open for one user."""

    owner: Owner
    filename: str
    document: PDFService
    search: SearchEngine
    overlay: SearchOverlaySynchronizer
    autosave: ReadingPositionAutosave
    page_count: int
    _unsubscribe: Callable[[], None] | None = field(default=None, repr=False)

    def attach(self) -> None:
        """Feed partial search results into the overlay as they arrive."""

        def on_results(results: list[SearchResult], is_searching: bool) -> None:
            self.overlay.set_results(results)

        self._unsubscribe = self.search.subscribe(on_results)

    def set_query(self, query: str) -> asyncio.Task | None:
        task = self.search.set_query(query)
        self.overlay.set_query(query, self.search.results)
        return task

    def clear_query(self) -> None:
        self.search.clear_query()
        self.overlay.set_query("", [])

    def select_match(self, index: int) -> SearchResult | None:
        result = self.search.select_match(index)
        if result is not None:
            self.overlay.set_active_index(self.search.active_index)
        return result

    def next_match(self) -> SearchResult | None:
        result = self.search.next_match()
        self.overlay.set_active_index(self.search.active_index)
        return result

    def previous_match(self) -> SearchResult | None:
        result = self.search.previous_match()
        self.overlay.set_active_index(self.search.active_index)
        return result

    async def show_page(self, page: int, scale: float = 1.0) -> OverlayState:
        """
        Put a page on screen and return its settled search overlay.

        A new text layer is only attached when the page or scale changed.
        """
        if page < 1 or page > self.page_count:
            raise NotFound(f"Page {page} not found")

        layer = self.overlay.text_layer
        stale = layer is None or layer.page != page
        if stale or getattr(layer, "scale", None) != scale:
            self.overlay.set_text_layer(self.document.text_layer(page, scale))
        await self.overlay.wait()
        return self.overlay.state

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.search.reset()
        await self.autosave.close()


class ReaderServices:
    """
    A facade over the annotation, search and reading-position services.
    """

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        pdf_dir: str | Path = DEFAULT_PDF_DIR,
        undo_grace_seconds: float = UNDO_GRACE_SECONDS,
        autosave_quiet_seconds: float = QUIET_SECONDS,
    ):
        """
        Initialize the services.

        Args:
            db_path (str): Path to the SQLite database file
            pdf_dir (str | Path): Directory PDF files are opened from
            undo_grace_seconds (float): Undo window of highlight deletions
            autosave_quiet_seconds (float): Quiet interval of position autosave
        """
        self.db_path = db_path
        self.pdf_dir = Path(pdf_dir)
        self.autosave_quiet_seconds = autosave_quiet_seconds

        self.highlights = HighlightsService(db_path)
        self.reading_progress = ReadingProgressService(db_path)
        self.bookmarks = BookmarksService(db_path)
        self.notes = NotesService(db_path)
        self.highlight_engine = HighlightEngine(
            self.highlights, undo_grace_seconds=undo_grace_seconds
        )
        self.autosaves = AutosaveRegistry()
        self._sessions: dict[tuple[str, str], ReaderSession] = {}

    def resolve_pdf(self, filename: str) -> Path:
        """Resolve a PDF filename inside the PDF directory."""
        # Only the final path component is honored
        return self.pdf_dir / Path(filename).name

    async def open_session(
        self, owner: Owner, filename: str
    ) -> tuple[ReaderSession, int]:
        """
        Open a book for a user, replacing a session already open for it.

        Args:
            owner: Reader and book identifier
            filename: PDF file inside the PDF directory

        Returns:
            tuple[ReaderSession, int]: The session and the page to open

        Raises:
            NotFound: If the owner is blank or the file does not exist
            ExtractionError: If the file cannot be read as a PDF
        """
        key = owner.key()
        if not all(key):
            raise NotFound("Book not found")
        if key in self._sessions:
            await self.close_session(owner)

        try:
            document = PDFService(self.resolve_pdf(filename))
            page_count = await asyncio.to_thread(getattr, document, "page_count")
        except FolioError:
            raise
        except Exception as e:
            raise ExtractionError(f"Could not open {filename}: {e}") from e

        autosave = ReadingPositionAutosave(
            self.reading_progress,
            owner,
            quiet_seconds=self.autosave_quiet_seconds,
            registry=self.autosaves,
        )
        autosave.document_loaded(page_count)
        page = await autosave.restore()

        session = ReaderSession(
            owner=owner,
            filename=document.pdf_path.name,
            document=document,
            search=SearchEngine(document),
            overlay=SearchOverlaySynchronizer(),
            autosave=autosave,
            page_count=page_count,
        )
        session.attach()
        self._sessions[key] = session
        logger.info(
            f"Opened {session.filename} for {key[0]} ({page_count} pages, page {page})"
        )
        return session, page

    def get_session(self, owner: Owner) -> ReaderSession:
        session = self._sessions.get(owner.key())
        if session is None:
            raise NotFound("No book is open for this reader")
        return session

    async def close_session(self, owner: Owner) -> bool:
        session = self._sessions.pop(owner.key(), None)
        if session is None:
            return False
        await session.close()
        logger.info(f"Closed {session.filename} for {owner.key()[0]}")
        return True

    async def shutdown(self) -> None:
        """Close every session and finalize deferred work."""
        for user_id, book_id in list(self._sessions):
            await self.close_session(Owner(user_id=user_id, book_id=book_id))
        await self.autosaves.flush_all()
        await self.highlight_engine.shutdown()


_reader_services: ReaderServices | None = None


def init_reader_services(
    db_path: str = DEFAULT_DB_PATH, pdf_dir: str | Path = DEFAULT_PDF_DIR, **kwargs
) -> ReaderServices:
    """Create the process-wide services, replacing any earlier instance."""
    global _reader_services
    _reader_services = ReaderServices(db_path, pdf_dir, **kwargs)
    return _reader_services


def get_reader_services() -> ReaderServices:
    if _reader_services is None:
        return init_reader_services()
    return _reader_services
