"""
Page Text Cache Module

Per-document cache of extracted page text. Concurrent requests for the same
page share one extraction task instead of extracting twice.
"""

import asyncio
import logging

from ..models.document import DocumentSource
from .errors import ExtractionError

logger = logging.getLogger(__name__)


class PageTextCache:
    """
    Single-flight cache mapping page numbers to extracted text.

    Lifetime is one open document: ``reset`` drops everything, including
    extractions still in flight, whose results are then discarded.
    """

    def __init__(self, source: DocumentSource | None = None) -> None:
        self._source = source
        self._texts: dict[int, str] = {}
        self._pending: dict[int, asyncio.Task[str]] = {}
        self._generation = 0

    @property
    def source(self) -> DocumentSource | None:
        return self._source

    def __contains__(self, page: int) -> bool:
        return page in self._texts

    def __len__(self) -> int:
        return len(self._texts)

    def reset(self, source: DocumentSource | None = None) -> None:
        """Forget all cached text and switch to a new document."""
        self._source = source
        self._texts.clear()
        self._pending.clear()
        self._generation += 1

    async def get(self, page: int) -> str:
        """
        Get the text of a page, extracting it at most once.

        Args:
            page: 1-based page number

        Returns:
            str: Page text ("" when no document is open)

        Raises:
            ExtractionError: If the page text could not be extracted
        """
        cached = self._texts.get(page)
        if cached is not None:
            return cached

        if self._source is None:
            return ""

        task = self._pending.get(page)
        if task is None:
            task = asyncio.create_task(self._extract(self._source, page, self._generation))
            self._pending[page] = task

        # Shielded so one canceled waiter does not abort the shared extraction
        return await asyncio.shield(task)

    async def _extract(self, source: DocumentSource, page: int, generation: int) -> str:
        try:
            text = await source.get_page_text(page)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Could not extract page {page}: {e}") from e
        finally:
            if generation == self._generation:
                self._pending.pop(page, None)

        if generation == self._generation:
            self._texts[page] = text
        return text
