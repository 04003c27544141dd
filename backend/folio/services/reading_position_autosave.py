"""
Reading Position Autosave Module

Debounces frequent page changes into a single durable write of the reader's
position, and flushes a pending write when the view goes away or the
process shuts down.
"""

import asyncio
import logging

from ..models.highlights import Owner
from .errors import FolioError
from .reading_progress_service import ReadingProgressService

logger = logging.getLogger(__name__)

# Configuration constants
QUIET_SECONDS = 0.4


class ReadingPositionAutosave:
    """
    Autosave of the last page for one (user, book) pair.

    Page changes are ignored until the document is loaded and the saved
    position has been restored, so a transient default page never
    overwrites the user's real position.
    """

    def __init__(
        self,
        store: ReadingProgressService,
        owner: Owner,
        quiet_seconds: float = QUIET_SECONDS,
        registry: "AutosaveRegistry | None" = None,
    ) -> None:
        """
        Initialize the autosave.

        Args:
            store: Persistence collaborator for reading progress
            owner: User and book the position belongs to
            quiet_seconds: Time without page changes before writing
            registry: Registry flushed at process shutdown
        """
        self.store = store
        self.owner = owner
        self.quiet_seconds = quiet_seconds

        self._page_count: int | None = None
        self._restored = False
        self._closed = False
        self._pending_page: int | None = None
        self._last_written: int | None = None
        self._timer: asyncio.Task | None = None
        self._registry = registry
        if registry is not None:
            registry.register(self)

    @property
    def pending_page(self) -> int | None:
        return self._pending_page

    @property
    def is_ready(self) -> bool:
        return self._page_count is not None and self._restored and not self._closed

    def document_loaded(self, page_count: int) -> None:
        """Record that the document finished loading."""
        self._page_count = max(1, page_count)

    async def restore(self) -> int:
        """
        Read the saved position and mark the restore as applied.

        Returns:
            int: Page to open, clamped to the document (1 when nothing is saved)
        """
        try:
            saved = await asyncio.to_thread(self.store.get_last_page, *self.owner.key())
        except FolioError as e:
            logger.warning(f"Could not read reading position: {e}")
            saved = None

        page = saved or 1
        if self._page_count is not None:
            page = min(page, self._page_count)
        self._last_written = saved
        self._restored = True
        return page

    def on_page_change(self, page: int) -> bool:
        """
        Schedule a write of the new page after the quiet interval.

        Any write scheduled earlier is canceled.

        Returns:
            bool: False if the change was suppressed
        """
        if not self.is_ready:
            return False

        self._pending_page = page
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.create_task(self._write_after_quiet())
        return True

    async def _write_after_quiet(self) -> None:
        await asyncio.sleep(self.quiet_seconds)
        page = self._pending_page
        self._pending_page = None
        if page is not None:
            await self._write(page)

    async def _write(self, page: int) -> None:
        if page == self._last_written:
            return
        try:
            written = await asyncio.to_thread(
                self.store.set_last_page, *self.owner.key(), page
            )
        except FolioError as e:
            # Autosave failures never block navigation
            logger.warning(f"Autosave of page {page} dropped: {e}")
            return
        if written:
            self._last_written = page

    async def flush(self) -> None:
        """Write any pending page now, bypassing the quiet interval."""
        timer = self._timer
        page = self._pending_page
        if page is None:
            # A timer past its delay may be writing right now
            if timer is not None and not timer.done():
                await asyncio.shield(timer)
            return

        self._pending_page = None
        if timer is not None:
            timer.cancel()
        self._timer = None
        await self._write(page)

    async def close(self) -> None:
        """Flush and stop accepting page changes (view teardown)."""
        await self.flush()
        self._closed = True
        if self._registry is not None:
            self._registry.unregister(self)


class AutosaveRegistry:
    """Tracks live autosaves so shutdown can flush all of them."""

    def __init__(self) -> None:
        self._autosaves: list[ReadingPositionAutosave] = []

    def __len__(self) -> int:
        return len(self._autosaves)

    def register(self, autosave: ReadingPositionAutosave) -> None:
        if autosave not in self._autosaves:
            self._autosaves.append(autosave)

    def unregister(self, autosave: ReadingPositionAutosave) -> None:
        if autosave in self._autosaves:
            self._autosaves.remove(autosave)

    def get(self, owner: Owner) -> ReadingPositionAutosave | None:
        for autosave in self._autosaves:
            if autosave.owner.key() == owner.key():
                return autosave
        return None

    async def flush_all(self) -> int:
        """
        Flush every registered autosave.

        Returns:
            int: Number of autosaves flushed
        """
        autosaves = list(self._autosaves)
        for autosave in autosaves:
            await autosave.flush()
        if autosaves:
            logger.info(f"Flushed {len(autosaves)} reading position autosave(s)")
        return len(autosaves)
