"""
Search Engine Module

Incremental, cancellable, case-insensitive substring search across every
page of the open document.

Each query gets a search token from a monotonically increasing counter. A
run captures its token when it starts and re-checks it after every await;
once a newer query or a document change has issued a newer token the run
returns without touching shared state. Partial results are published every
few pages so callers can render progressively.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TypeAlias

from ..models.document import DocumentSource
from ..models.search import SearchResult
from .errors import SearchCanceled
from .page_text_cache import PageTextCache

logger = logging.getLogger(__name__)

# Configuration constants
PAGE_BATCH_SIZE = 7
MAX_RESULTS = 200
SNIPPET_RADIUS = 40
ELLIPSIS = "..."

SearchListener: TypeAlias = Callable[[list[SearchResult], bool], None]


class SearchState(Enum):
    """State of a search run."""

    IDLE = auto()
    RUNNING = auto()
    CANCELED = auto()
    DONE = auto()


@dataclass
class SearchRun:
    """Bookkeeping for one query."""

    token: int
    needle: str
    state: SearchState = SearchState.RUNNING
    pages_scanned: int = 0
    task: asyncio.Task | None = field(default=None, repr=False)


def fold_case(text: str) -> str:
    """
    Lowercase text without changing its length.

    Characters whose lowercase form is longer than one character are kept
    as they are so match offsets stay valid in the original text.
    """
    lowered = text.lower()
    if len(lowered) == len(text):
        return lowered
    return "".join(c if len(c.lower()) != 1 else c.lower() for c in text)


def find_occurrences(
    haystack: str, needle: str, limit: int | None = None
) -> list[tuple[int, int]]:
    """
    Find non-overlapping occurrences of an already case-folded needle.

    The scan resumes after the end of each match.

    Args:
        haystack: Case-folded text to scan
        needle: Case-folded, non-empty query
        limit: Stop after this many matches

    Returns:
        list[tuple[int, int]]: (start, end) offsets of each match
    """
    matches: list[tuple[int, int]] = []
    if not needle:
        return matches

    from_index = 0
    while from_index < len(haystack):
        if limit is not None and len(matches) >= limit:
            break
        start = haystack.find(needle, from_index)
        if start < 0:
            break
        end = start + len(needle)
        matches.append((start, end))
        from_index = end
    return matches


def build_snippet(
    text: str, match_start: int, match_end: int, radius: int = SNIPPET_RADIUS
) -> tuple[str, int, int]:
    """
    Cut a bounded window of context around a match.

    Args:
        text: Full page text
        match_start: Offset of the match in ``text``
        match_end: End offset of the match in ``text``
        radius: Characters of context kept on each side

    Returns:
        tuple[str, int, int]: The snippet and the match offsets within it
    """
    snippet_start = max(0, match_start - radius)
    snippet_end = min(len(text), match_end + radius)
    prefix = ELLIPSIS if snippet_start > 0 else ""
    suffix = ELLIPSIS if snippet_end < len(text) else ""
    snippet = f"{prefix}{text[snippet_start:snippet_end]}{suffix}"
    start = len(prefix) + (match_start - snippet_start)
    end = start + (match_end - match_start)
    return snippet, start, end


class SearchEngine:
    """
    Full-document search over a DocumentSource with a shared page-text cache.
    """

    def __init__(
        self,
        document: DocumentSource | None = None,
        page_batch_size: int = PAGE_BATCH_SIZE,
        max_results: int = MAX_RESULTS,
        snippet_radius: int = SNIPPET_RADIUS,
    ) -> None:
        """
        Initialize the search engine.

        Args:
            document: Open document to search, if any
            page_batch_size: Publish partial results every this many pages
            max_results: Stop scanning once this many matches were found
            snippet_radius: Context characters on each side of a match
        """
        if page_batch_size < 1:
            raise ValueError("page_batch_size must be at least 1")
        self.page_batch_size = page_batch_size
        self.max_results = max_results
        self.snippet_radius = snippet_radius

        self._document = document
        self._cache = PageTextCache(document)
        self._token = 0
        self._run: SearchRun | None = None
        self._query = ""
        self._results: list[SearchResult] = []
        self._is_searching = False
        self._active_index = -1
        self._listeners: list[SearchListener] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def document(self) -> DocumentSource | None:
        return self._document

    @property
    def cache(self) -> PageTextCache:
        return self._cache

    @property
    def query(self) -> str:
        return self._query

    @property
    def results(self) -> list[SearchResult]:
        return list(self._results)

    @property
    def is_searching(self) -> bool:
        return self._is_searching

    @property
    def token(self) -> int:
        return self._token

    @property
    def state(self) -> SearchState:
        if self._run is None:
            return SearchState.IDLE
        return self._run.state

    @property
    def active_index(self) -> int:
        return self._active_index

    @property
    def active_result(self) -> SearchResult | None:
        if 0 <= self._active_index < len(self._results):
            return self._results[self._active_index]
        return None

    def subscribe(self, listener: SearchListener) -> Callable[[], None]:
        """
        Register a callback receiving ``(results, is_searching)`` on every update.

        Returns:
            Callable[[], None]: Function removing the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = list(self._results)
        for listener in list(self._listeners):
            try:
                listener(snapshot, self._is_searching)
            except Exception as e:
                logger.error(f"Search listener failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def _issue_token(self) -> int:
        self._token += 1
        if self._run is not None and self._run.state == SearchState.RUNNING:
            self._run.state = SearchState.CANCELED
        return self._token

    def _is_current(self, run: SearchRun) -> bool:
        return run.token == self._token

    def _check_current(self, run: SearchRun) -> None:
        if not self._is_current(run):
            raise SearchCanceled(f"Search {run.token} was superseded")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def set_document(self, document: DocumentSource | None) -> None:
        """Switch to another document, dropping query, results and cache."""
        self._document = document
        self.reset()

    def reset(self) -> None:
        """Cancel any run and clear query, results and cached page text."""
        self._issue_token()
        self._run = None
        self._query = ""
        self._results = []
        self._is_searching = False
        self._active_index = -1
        self._cache.reset(self._document)
        self._publish()

    def clear_query(self) -> None:
        self.set_query("")

    def set_query(self, query: str) -> asyncio.Task | None:
        """
        Start searching for a query, superseding any running search.

        A blank query (after trimming) clears the results without scanning.
        Must be called from a running event loop when the query is not blank.

        Args:
            query: Text to look for

        Returns:
            asyncio.Task | None: The scan task, or None when nothing is scanned
        """
        token = self._issue_token()
        self._query = query
        self._active_index = -1
        trimmed = query.strip()

        if self._document is None or not trimmed:
            self._run = None
            self._results = []
            self._is_searching = False
            self._publish()
            return None

        # Results of the superseded query are never served for the new one
        self._results = []
        self._is_searching = True
        run = SearchRun(token=token, needle=fold_case(trimmed))
        self._run = run
        self._publish()

        run.task = asyncio.create_task(self._scan(run, self._document))
        return run.task

    async def wait(self) -> None:
        """Wait until the current run (if any) has finished or been canceled."""
        run = self._run
        if run is not None and run.task is not None:
            await asyncio.shield(run.task)

    def next_match(self) -> SearchResult | None:
        """Move the active match forward, wrapping at the end."""
        if not self._results:
            return None
        self._active_index = (self._active_index + 1) % len(self._results)
        return self._results[self._active_index]

    def previous_match(self) -> SearchResult | None:
        """Move the active match backward, wrapping at the start."""
        if not self._results:
            return None
        if self._active_index <= 0:
            self._active_index = len(self._results) - 1
        else:
            self._active_index -= 1
        return self._results[self._active_index]

    def select_match(self, index: int) -> SearchResult | None:
        if not 0 <= index < len(self._results):
            return None
        self._active_index = index
        return self._results[index]

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _scan_page(
        self, page: int, text: str, needle: str, budget: int
    ) -> list[SearchResult]:
        matches = []
        for start, end in find_occurrences(fold_case(text), needle, limit=budget):
            snippet, snippet_start, snippet_end = build_snippet(
                text, start, end, self.snippet_radius
            )
            matches.append(
                SearchResult(page=page, snippet=snippet, start=snippet_start, end=snippet_end)
            )
        return matches

    async def _scan(self, run: SearchRun, document: DocumentSource) -> None:
        found: list[SearchResult] = []
        try:
            page_count = document.page_count
            for page in range(1, page_count + 1):
                self._check_current(run)

                try:
                    text = await self._cache.get(page)
                except Exception as e:
                    # A page without text simply has no matches
                    logger.debug(f"Skipping page {page} during search: {e}")
                    text = ""

                self._check_current(run)

                if text:
                    budget = self.max_results - len(found)
                    found.extend(self._scan_page(page, text, run.needle, budget))
                run.pages_scanned = page

                if page % self.page_batch_size == 0 or len(found) >= self.max_results:
                    self._results = list(found)
                    self._publish()
                    await asyncio.sleep(0)

                if len(found) >= self.max_results:
                    break
        except SearchCanceled:
            logger.debug(
                f"Search for {run.needle!r} superseded after "
                f"{run.pages_scanned} page(s)"
            )
            return
        except Exception as e:
            logger.error(f"Search for {run.needle!r} failed: {e}", exc_info=True)

        if not self._is_current(run):
            return

        self._results = found
        self._is_searching = False
        run.state = SearchState.DONE
        logger.info(
            f"Search for {run.needle!r} finished: {len(found)} match(es) "
            f"in {run.pages_scanned} page(s)"
        )
        self._publish()
