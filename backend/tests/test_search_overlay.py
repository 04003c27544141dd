"""
Unit tests for the search overlay.

Tests cover:
- Line-level rect groups computed from glyph boxes
- Mapping of the active search result onto page occurrences
- Debounced runs where only the latest run may publish
- Waiting for the text layer to settle before measuring
"""

import asyncio

import pytest

from folio.models.document import TextSpan
from folio.models.geometry import Rect
from folio.models.search import SearchResult
from folio.services.search_overlay import (
    SearchOverlaySynchronizer,
    active_occurrence,
    compute_groups,
)


def line_span(text: str, x: float, y: float, char_width: float = 10, height: float = 20):
    """A span with one box per character laid out left to right."""
    boxes = tuple(Rect(x + i * char_width, y, char_width, height) for i in range(len(text)))
    return TextSpan(text=text, boxes=boxes)


def as_tuple(rect: Rect) -> tuple[float, float, float, float]:
    return (rect.x, rect.y, rect.w, rect.h)


class FakeLayer:
    """Text layer whose snapshots follow a script, repeating the last one."""

    def __init__(self, page, snapshots, width=1000, height=1000):
        self.page = page
        self.width = width
        self.height = height
        self._snapshots = list(snapshots)
        self.calls = 0

    async def snapshot(self):
        index = min(self.calls, len(self._snapshots) - 1)
        self.calls += 1
        return self._snapshots[index]


class ReadyLayer(FakeLayer):
    """Text layer that reports when its layout is complete."""

    async def wait_until_ready(self):
        return True


class ShiftingLayer(FakeLayer):
    """Text layer that never settles."""

    async def snapshot(self):
        self.calls += 1
        return (line_span("the cat", 100 + self.calls, 100),)


class BrokenLayer(FakeLayer):
    async def snapshot(self):
        raise RuntimeError("layer detached")


PAGE_SPANS = (line_span("the cat sat", 100, 100),)


def fast_synchronizer(**kwargs):
    options = dict(debounce_seconds=0.001, poll_interval_seconds=0.001)
    options.update(kwargs)
    return SearchOverlaySynchronizer(**options)


class TestComputeGroups:
    """Test geometry of match groups"""

    def test_single_match_single_rect(self):
        groups = compute_groups(PAGE_SPANS, "cat", 1000, 1000)

        assert len(groups) == 1
        assert len(groups[0].rects) == 1
        assert as_tuple(groups[0].rects[0]) == pytest.approx((140, 100, 30, 20))

    def test_case_insensitive_and_trimmed(self):
        assert len(compute_groups(PAGE_SPANS, "  CAT ", 1000, 1000)) == 1

    def test_every_occurrence_grouped(self):
        spans = (line_span("the cat and the dog", 100, 100),)

        groups = compute_groups(spans, "the", 1000, 1000, active=1)

        assert [g.occurrence for g in groups] == [0, 1]
        assert [g.active for g in groups] == [False, True]

    def test_match_across_lines(self):
        """Test that a match wrapping onto the next line yields one rect per line"""
        spans = (line_span("the", 100, 100), line_span("cat", 100, 130))

        groups = compute_groups(spans, "the cat", 1000, 1000)

        assert len(groups) == 1
        rects = groups[0].rects
        assert len(rects) == 2
        assert rects[0].y < rects[1].y

    def test_blank_query(self):
        assert compute_groups(PAGE_SPANS, "   ", 1000, 1000) == ()

    def test_unsized_page(self):
        assert compute_groups(PAGE_SPANS, "cat", 0, 1000) == ()


class TestActiveOccurrence:
    """Test mapping the active result to an occurrence on a page"""

    RESULTS = [
        SearchResult(page=1, snippet="the", start=0, end=3),
        SearchResult(page=2, snippet="the", start=0, end=3),
        SearchResult(page=2, snippet="the", start=0, end=3),
    ]

    def test_second_match_on_page(self):
        assert active_occurrence(self.RESULTS, 2, 2) == 1

    def test_first_match_on_page(self):
        assert active_occurrence(self.RESULTS, 1, 2) == 0

    def test_active_match_on_other_page(self):
        assert active_occurrence(self.RESULTS, 2, 1) is None

    def test_no_active_match(self):
        assert active_occurrence(self.RESULTS, -1, 1) is None


class TestSynchronizer:
    """Test scheduling and publishing of overlay runs"""

    @pytest.mark.asyncio
    async def test_publishes_groups_for_page(self):
        sync = fast_synchronizer()
        results = [SearchResult(page=1, snippet="the cat sat", start=4, end=7)]

        sync.set_text_layer(FakeLayer(1, [PAGE_SPANS]))
        sync.set_query("cat", results)
        sync.set_active_index(0)
        await sync.wait()

        state = sync.state
        assert state.page == 1
        assert state.run_id == sync.run_id
        assert len(state.groups) == 1
        assert state.active_group is state.groups[0]

    @pytest.mark.asyncio
    async def test_only_latest_run_publishes(self):
        sync = fast_synchronizer(debounce_seconds=0.01)
        published = []
        sync.subscribe(published.append)
        sync.set_query("cat")

        sync.set_text_layer(FakeLayer(1, [PAGE_SPANS]))
        sync.set_text_layer(FakeLayer(2, [PAGE_SPANS]))
        await sync.wait()

        assert len(published) == 1
        assert published[0].page == 2
        assert published[0].run_id == sync.run_id

    @pytest.mark.asyncio
    async def test_run_superseded_while_waiting_for_layout(self):
        """Test that a run still polling an unsettled layer never publishes"""
        sync = fast_synchronizer(poll_interval_seconds=0.01)
        published = []
        sync.subscribe(published.append)
        sync.set_query("cat")
        shifting = ShiftingLayer(1, [])

        sync.set_text_layer(shifting)
        await asyncio.sleep(0.05)
        sync.set_text_layer(FakeLayer(2, [PAGE_SPANS]))
        await sync.wait()

        assert shifting.calls > 0
        assert [state.page for state in published] == [2]

    @pytest.mark.asyncio
    async def test_waits_for_stable_snapshots(self):
        empty = ()
        layer = FakeLayer(1, [empty, empty, PAGE_SPANS])
        sync = fast_synchronizer(stable_snapshots=3)

        sync.set_query("cat")
        sync.set_text_layer(layer)
        await sync.wait()

        assert layer.calls == 5
        assert len(sync.state.groups) == 1

    @pytest.mark.asyncio
    async def test_unsettled_layer_uses_last_snapshot(self):
        layer = ShiftingLayer(1, [])
        sync = fast_synchronizer(max_polls=5)

        sync.set_query("cat")
        sync.set_text_layer(layer)
        await sync.wait()

        assert layer.calls == 5
        assert len(sync.state.groups) == 1

    @pytest.mark.asyncio
    async def test_ready_layer_read_once(self):
        layer = ReadyLayer(1, [PAGE_SPANS])
        sync = fast_synchronizer()

        sync.set_query("cat")
        sync.set_text_layer(layer)
        await sync.wait()

        assert layer.calls == 1
        assert len(sync.state.groups) == 1

    @pytest.mark.asyncio
    async def test_cleared_query_clears_overlay(self):
        sync = fast_synchronizer()
        sync.set_text_layer(FakeLayer(1, [PAGE_SPANS]))
        sync.set_query("cat")
        await sync.wait()

        sync.set_query("")
        await sync.wait()

        assert sync.state.groups == ()
        assert sync.state.page == 1

    @pytest.mark.asyncio
    async def test_layout_change_recomputes(self):
        sync = fast_synchronizer()
        sync.set_text_layer(FakeLayer(1, [PAGE_SPANS]))
        sync.set_query("cat")
        await sync.wait()
        first_run = sync.state.run_id

        sync.notify_layout_changed()
        await sync.wait()

        assert sync.state.run_id > first_run
        assert sync.state.reason == "layout"

    @pytest.mark.asyncio
    async def test_broken_layer_keeps_previous_state(self):
        sync = fast_synchronizer()
        sync.set_text_layer(FakeLayer(1, [PAGE_SPANS]))
        sync.set_query("cat")
        await sync.wait()
        before = sync.state

        sync.set_text_layer(BrokenLayer(2, []))
        await sync.wait()

        assert sync.state is before
