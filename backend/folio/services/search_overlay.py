"""
Search Overlay Module

Places search matches on the live text layer of the page on screen.

Every change that can move text (query, active match, page or scale,
resize/mutation of the rendering surface) schedules a recomputation. A
scheduled run waits a short debounce, then waits for the layout to settle,
then computes one group of line-level pixel rects per match. Each run
carries a run id and only the most recently scheduled run may publish.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeAlias

from ..models.document import TextLayer, TextSpan
from ..models.geometry import Rect
from ..models.search import SearchResult
from . import rect_geometry
from .search_engine import find_occurrences, fold_case

logger = logging.getLogger(__name__)

# Configuration constants
DEBOUNCE_SECONDS = 0.05
POLL_INTERVAL_SECONDS = 0.05
STABLE_SNAPSHOTS = 3
MAX_POLLS = 40

OverlayListener: TypeAlias = Callable[["OverlayState"], None]


@dataclass(frozen=True)
class MatchGroup:
    """Line-level pixel rects covering one match on the page."""

    occurrence: int
    rects: tuple[Rect, ...]
    active: bool = False


@dataclass(frozen=True)
class OverlayState:
    """Published result of one overlay computation."""

    run_id: int
    page: int | None
    groups: tuple[MatchGroup, ...] = ()
    reason: str = ""

    @property
    def active_group(self) -> MatchGroup | None:
        """The group to draw distinctly and scroll into view."""
        for group in self.groups:
            if group.active:
                return group
        return None


@dataclass
class _Inputs:
    query: str = ""
    results: list[SearchResult] = field(default_factory=list)
    active_index: int = -1
    layer: TextLayer | None = None


def _flatten(spans: tuple[TextSpan, ...]) -> tuple[str, list[Rect | None]]:
    """
    Concatenate spans into one string with a box per character.

    Spans are joined with a single space, matching how page text is built
    for the search engine; the joining space has no box.
    """
    parts: list[str] = []
    boxes: list[Rect | None] = []
    for index, span in enumerate(spans):
        if index > 0:
            parts.append(" ")
            boxes.append(None)
        parts.append(span.text)
        span_boxes = list(span.boxes[: len(span.text)])
        span_boxes.extend([None] * (len(span.text) - len(span_boxes)))
        boxes.extend(span_boxes)
    return "".join(parts), boxes


def active_occurrence(
    results: list[SearchResult], active_index: int, page: int
) -> int | None:
    """
    Map the active result to its occurrence number on the given page.

    The n-th result on a page corresponds to the n-th occurrence of the
    query on that page's text layer.
    """
    if not 0 <= active_index < len(results):
        return None
    if results[active_index].page != page:
        return None
    return sum(1 for r in results[:active_index] if r.page == page)


def compute_groups(
    spans: tuple[TextSpan, ...],
    query: str,
    width: float,
    height: float,
    active: int | None = None,
) -> tuple[MatchGroup, ...]:
    """
    Compute line-level pixel rects for every match of a query on a page.

    Glyph boxes of a match are merged in unit coordinates with the same
    primitive used for highlights, then scaled back to pixels.

    Args:
        spans: Text layer spans with per-character pixel boxes
        query: Raw query; trimmed and case-folded here
        width: Pixel width of the rendered page
        height: Pixel height of the rendered page
        active: Occurrence number to flag as active

    Returns:
        tuple[MatchGroup, ...]: One group per match, in reading order
    """
    needle = fold_case(query.strip())
    if not needle or width <= 0 or height <= 0:
        return ()

    text, boxes = _flatten(spans)
    groups = []
    for occurrence, (start, end) in enumerate(find_occurrences(fold_case(text), needle)):
        unit_rects = []
        for box in boxes[start:end]:
            if box is None:
                continue
            normalized = rect_geometry.normalize(rect_geometry.from_pixels(box, width, height))
            if normalized is not None:
                unit_rects.append(normalized)
        merged = rect_geometry.merge_all(unit_rects)
        pixel_rects = tuple(rect_geometry.to_pixels(r, width, height) for r in merged)
        groups.append(
            MatchGroup(occurrence=occurrence, rects=pixel_rects, active=occurrence == active)
        )
    return tuple(groups)


class SearchOverlaySynchronizer:
    """
    Keeps the search overlay of the page on screen in sync with the search.
    """

    def __init__(
        self,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        stable_snapshots: int = STABLE_SNAPSHOTS,
        max_polls: int = MAX_POLLS,
    ) -> None:
        self.debounce_seconds = debounce_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.stable_snapshots = stable_snapshots
        self.max_polls = max_polls

        self._inputs = _Inputs()
        self._run_id = 0
        self._task: asyncio.Task | None = None
        self._state = OverlayState(run_id=0, page=None)
        self._listeners: list[OverlayListener] = []

    @property
    def state(self) -> OverlayState:
        return self._state

    @property
    def run_id(self) -> int:
        return self._run_id

    @property
    def text_layer(self) -> TextLayer | None:
        return self._inputs.layer

    def subscribe(self, listener: OverlayListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Triggers

    def set_query(
        self, query: str, results: list[SearchResult] | None = None
    ) -> asyncio.Task:
        self._inputs.query = query
        self._inputs.results = list(results or [])
        self._inputs.active_index = -1
        return self.schedule("query")

    def set_results(self, results: list[SearchResult]) -> asyncio.Task:
        self._inputs.results = list(results)
        return self.schedule("results")

    def set_active_index(self, active_index: int) -> asyncio.Task:
        self._inputs.active_index = active_index
        return self.schedule("active-match")

    def set_text_layer(self, layer: TextLayer | None) -> asyncio.Task:
        """Page or scale changed: a new text layer is on screen."""
        self._inputs.layer = layer
        return self.schedule("page")

    def notify_layout_changed(self) -> asyncio.Task:
        """The rendering surface was resized or its text layer mutated."""
        return self.schedule("layout")

    def schedule(self, reason: str) -> asyncio.Task:
        """
        Schedule a recomputation; earlier scheduled runs become stale.

        Returns:
            asyncio.Task: The new run
        """
        self._run_id += 1
        run_id = self._run_id
        self._task = asyncio.create_task(self._run(run_id, reason))
        return self._task

    async def wait(self) -> None:
        """Wait for the most recently scheduled run."""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    def _is_current(self, run_id: int) -> bool:
        return run_id == self._run_id

    def _publish(self, state: OverlayState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Overlay listener failed: {e}", exc_info=True)

    async def _run(self, run_id: int, reason: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if not self._is_current(run_id):
            return

        inputs = self._inputs
        layer = inputs.layer
        if layer is None or not inputs.query.strip():
            self._publish(
                OverlayState(run_id=run_id, page=layer.page if layer else None, reason=reason)
            )
            return

        try:
            spans = await self._wait_for_layout(run_id, layer)
        except Exception as e:
            logger.warning(f"Could not read text layer of page {layer.page}: {e}")
            spans = None
        if spans is None or not self._is_current(run_id):
            return

        active = active_occurrence(inputs.results, inputs.active_index, layer.page)
        groups = compute_groups(spans, inputs.query, layer.width, layer.height, active)
        if not self._is_current(run_id):
            return

        self._publish(
            OverlayState(run_id=run_id, page=layer.page, groups=groups, reason=reason)
        )

    async def _wait_for_layout(
        self, run_id: int, layer: TextLayer
    ) -> tuple[TextSpan, ...] | None:
        """
        Return text layer spans once the layout has settled.

        Layers that can report completion are trusted; otherwise snapshots
        are polled until STABLE_SNAPSHOTS consecutive ones are identical or
        MAX_POLLS is reached. Returns None if the run went stale meanwhile.
        """
        wait_until_ready = getattr(layer, "wait_until_ready", None)
        if wait_until_ready is not None:
            ready = await wait_until_ready()
            if not self._is_current(run_id):
                return None
            if ready:
                return await layer.snapshot()

        previous: tuple[TextSpan, ...] | None = None
        streak = 0
        for _ in range(self.max_polls):
            current = await layer.snapshot()
            if not self._is_current(run_id):
                return None
            streak = streak + 1 if current == previous else 1
            previous = current
            if streak >= self.stable_snapshots:
                return current
            await asyncio.sleep(self.poll_interval_seconds)
            if not self._is_current(run_id):
                return None

        logger.debug(f"Text layer of page {layer.page} did not settle, using last snapshot")
        return previous
