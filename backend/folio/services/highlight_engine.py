"""
Highlight Engine Module

Turns raw selection rectangles into canonical highlight records and
reconciles each new selection against the highlights already stored on the
same page. Also owns the deferred delete with its undo grace window.

All storage calls are pushed to a worker thread so that every transaction
is a suspension point on the event loop; merges touching the same
(user, book, page) key are serialized with a per-key lock.
"""

import asyncio
import logging
import weakref
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, TypeAlias

from ..models.geometry import Rect
from ..models.highlights import Highlight, HighlightRect, Owner
from ..models.results import OperationResult
from . import rect_geometry
from .base_database_service import normalize_page
from .errors import EmptySelection, FolioError, InvalidSelection, NotFound
from .highlights_service import HighlightsService

logger = logging.getLogger(__name__)

# Configuration constants
UNDO_GRACE_SECONDS = 5.0

PageKey: TypeAlias = tuple[str, str, int]


@dataclass
class PendingDelete:
    """A highlight hidden from view whose durable delete has not run yet."""

    highlight: Highlight
    task: asyncio.Task


def _coerce_rect(raw: Any) -> Rect | None:
    if isinstance(raw, Rect):
        return raw
    if isinstance(raw, HighlightRect):
        return raw.to_rect()
    if isinstance(raw, dict):
        try:
            return Rect.from_dict(raw)
        except (KeyError, TypeError, ValueError):
            return None
    return None


class HighlightEngine:
    """
    Builds, merges and deletes highlights on top of a HighlightsService.
    """

    def __init__(
        self,
        store: HighlightsService,
        undo_grace_seconds: float = UNDO_GRACE_SECONDS,
        overlap_epsilon: float = rect_geometry.OVERLAP_EPSILON,
        gap_epsilon: float = rect_geometry.GAP_EPSILON,
        min_rect_size: float = rect_geometry.MIN_RECT_SIZE,
    ) -> None:
        """
        Initialize the engine.

        Args:
            store: Persistence collaborator for highlight rows
            undo_grace_seconds: Delay before a deleted highlight is durably removed
            overlap_epsilon: Tolerance for the overlap test
            gap_epsilon: Tolerance for joining rects on the same line
            min_rect_size: Rects at or below this width/height are dropped
        """
        self.store = store
        self.undo_grace_seconds = undo_grace_seconds
        self.overlap_epsilon = overlap_epsilon
        self.gap_epsilon = gap_epsilon
        self.min_rect_size = min_rect_size

        self._locks: weakref.WeakValueDictionary[PageKey, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._pending: dict[str, PendingDelete] = {}

    def _lock_for(self, key: PageKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _page_key(self, owner: Owner, page: Any) -> PageKey:
        user_id, book_id = owner.key()
        safe_page = normalize_page(page)
        if not user_id or not book_id:
            raise NotFound("Book not found")
        if not safe_page:
            raise InvalidSelection("Invalid page")
        return user_id, book_id, safe_page

    def _normalize_all(self, raw_rects: Iterable[Any]) -> list[Rect]:
        rects = []
        for raw in raw_rects or []:
            rect = _coerce_rect(raw)
            if rect is None:
                continue
            normalized = rect_geometry.normalize(rect, self.min_rect_size)
            if normalized is not None:
                rects.append(normalized)
        return rects

    def _merge(self, rects: list[Rect]) -> list[Rect]:
        return rect_geometry.merge_all(rects, self.overlap_epsilon, self.gap_epsilon)

    @property
    def pending_ids(self) -> set[str]:
        return set(self._pending)

    async def create_from_selection(
        self, owner: Owner, page: int, raw_rects: Iterable[Any]
    ) -> OperationResult[Highlight]:
        """
        Create a highlight from a selection, folding in overlapping highlights.

        Existing highlights on the page that overlap the selection are
        deleted and their rects merged into the new highlight, all in one
        transaction. Overlapping highlights that are waiting out their undo
        window are deleted for good in the same transaction.

        Args:
            owner: The user and book the highlight belongs to
            page: 1-based page number
            raw_rects: Selection rects in unit page coordinates

        Returns:
            OperationResult[Highlight]: The stored highlight, or a typed failure
        """
        try:
            key = self._page_key(owner, page)
            candidate = self._merge(self._normalize_all(raw_rects))
            if not candidate:
                raise EmptySelection("At least one highlight rect is required.")

            async with self._lock_for(key):
                existing = await asyncio.to_thread(self.store.list_highlights, *key)

                remove_ids: list[str] = []
                hidden_ids: list[str] = []
                combined = list(candidate)
                for highlight in existing:
                    geometry = highlight.geometry()
                    if not rect_geometry.any_overlap(
                        candidate, geometry, self.overlap_epsilon
                    ):
                        continue
                    remove_ids.append(highlight.id)
                    if highlight.id in self._pending:
                        # Hidden highlights are dropped, not revived
                        hidden_ids.append(highlight.id)
                    else:
                        combined.extend(geometry)

                final_rects = self._merge(combined)
                created = await asyncio.to_thread(
                    self.store.replace_highlights, *key, remove_ids, final_rects
                )

                for highlight_id in hidden_ids:
                    pending = self._pending.pop(highlight_id, None)
                    if pending is not None:
                        pending.task.cancel()
        except FolioError as e:
            logger.warning(f"Could not create highlight on page {page}: {e}")
            return OperationResult[Highlight].failure(e)

        return OperationResult[Highlight].success(created)

    async def insert_raw(
        self, owner: Owner, page: int, raw_rects: Iterable[Any]
    ) -> OperationResult[Highlight]:
        """
        Store normalized rects as a new highlight without reconciliation.
        """
        try:
            key = self._page_key(owner, page)
            rects = self._normalize_all(raw_rects)
            if not rects:
                raise EmptySelection("At least one highlight rect is required.")
            async with self._lock_for(key):
                created = await asyncio.to_thread(self.store.insert_highlight, *key, rects)
        except FolioError as e:
            logger.warning(f"Could not insert highlight on page {page}: {e}")
            return OperationResult[Highlight].failure(e)

        return OperationResult[Highlight].success(created)

    async def list_for_page(
        self, owner: Owner, page: int
    ) -> OperationResult[list[Highlight]]:
        """
        List the visible highlights of a page.

        Highlights waiting out their undo window are left out.
        """
        try:
            key = self._page_key(owner, page)
            highlights = await asyncio.to_thread(self.store.list_highlights, *key)
        except FolioError as e:
            return OperationResult[list[Highlight]].failure(e)

        visible = [h for h in highlights if h.id not in self._pending]
        return OperationResult[list[Highlight]].success(visible)

    async def delete_with_undo(self, highlight_id: str) -> OperationResult[Highlight]:
        """
        Hide a highlight now and delete it durably once the grace window ends.

        Args:
            highlight_id: Highlight to delete

        Returns:
            OperationResult[Highlight]: The hidden highlight, or NotFound
        """
        pending = self._pending.get(highlight_id)
        if pending is not None:
            return OperationResult[Highlight].success(pending.highlight)

        highlight = await asyncio.to_thread(self.store.get_highlight_by_id, highlight_id)
        if highlight is None:
            return OperationResult[Highlight].failure(NotFound("Highlight not found"))
        if highlight_id in self._pending:
            return OperationResult[Highlight].success(self._pending[highlight_id].highlight)

        task = asyncio.create_task(self._delete_after_grace(highlight_id))
        self._pending[highlight_id] = PendingDelete(highlight=highlight, task=task)
        logger.info(
            f"Highlight {highlight_id} hidden, deleting in {self.undo_grace_seconds}s"
        )
        return OperationResult[Highlight].success(highlight)

    async def _delete_after_grace(self, highlight_id: str) -> None:
        await asyncio.sleep(self.undo_grace_seconds)
        entry = self._pending.pop(highlight_id, None)
        if entry is None:
            return
        await self._finalize(entry.highlight)

    async def _finalize(self, highlight: Highlight) -> None:
        try:
            await asyncio.to_thread(
                self.store.delete_highlight, highlight.id, highlight.user_id
            )
        except FolioError as e:
            logger.error(f"Deferred delete of highlight {highlight.id} failed: {e}")

    async def undo(self, highlight_id: str) -> OperationResult[Highlight]:
        """
        Cancel a pending delete and bring the highlight back.

        The row is normally still stored, so the highlight returns with its
        own identity. If it has gone missing in the meantime it is inserted
        again with the original rects as a new record.

        Args:
            highlight_id: Highlight passed to ``delete_with_undo``

        Returns:
            OperationResult[Highlight]: The restored highlight, or NotFound
            once the grace window has elapsed
        """
        not_found = NotFound("Nothing to undo for this highlight")
        entry = self._pending.get(highlight_id)
        if entry is None:
            return OperationResult[Highlight].failure(not_found)

        original = entry.highlight
        key = (original.user_id, original.book_id, original.page)
        try:
            # A merge on the same page may be dropping this highlight right now
            async with self._lock_for(key):
                entry = self._pending.pop(highlight_id, None)
                if entry is None:
                    return OperationResult[Highlight].failure(not_found)
                entry.task.cancel()

                stored = await asyncio.to_thread(
                    self.store.get_highlight_by_id, original.id
                )
                if stored is not None:
                    restored = stored
                else:
                    restored = await asyncio.to_thread(
                        self.store.insert_highlight,
                        original.user_id,
                        original.book_id,
                        original.page,
                        original.geometry(),
                        None,
                        original.created_at,
                    )
        except FolioError as e:
            logger.error(f"Could not restore highlight {highlight_id}: {e}")
            return OperationResult[Highlight].failure(e)

        logger.info(f"Restored highlight {highlight_id}")
        return OperationResult[Highlight].success(restored)

    async def delete_now(
        self, highlight_id: str, user_id: str | None = None
    ) -> OperationResult[None]:
        """
        Delete a highlight durably, skipping the grace window.
        """
        entry = self._pending.pop(highlight_id, None)
        if entry is not None:
            entry.task.cancel()
        try:
            deleted = await asyncio.to_thread(
                self.store.delete_highlight, highlight_id, user_id
            )
        except FolioError as e:
            return OperationResult[None].failure(e)
        if not deleted:
            return OperationResult[None].failure(NotFound("Highlight not found"))
        return OperationResult[None].success()

    async def shutdown(self) -> int:
        """
        Finalize every pending delete immediately.

        Returns:
            int: Number of highlights whose deletion was finalized
        """
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            entry.task.cancel()
        for entry in entries:
            await self._finalize(entry.highlight)
        if entries:
            logger.info(f"Finalized {len(entries)} pending highlight deletion(s)")
        return len(entries)
