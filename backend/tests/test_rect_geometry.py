"""
Unit tests for the rect geometry primitives.

Tests cover:
- Normalization (clamping, degenerate and non-finite rects)
- Overlap and same-line proximity tests
- merge_all canonical form: idempotence, order independence, coverage
- Pixel/unit conversions
"""

import itertools
import math
import random

import pytest

from folio.models.geometry import Rect
from folio.services import rect_geometry


def as_tuple(rect: Rect) -> tuple[float, float, float, float]:
    return (rect.x, rect.y, rect.w, rect.h)


def contains(outer: Rect, inner: Rect, tolerance: float = 1e-9) -> bool:
    return (
        outer.x <= inner.x + tolerance
        and outer.y <= inner.y + tolerance
        and outer.right >= inner.right - tolerance
        and outer.bottom >= inner.bottom - tolerance
    )


# A selection spanning two lines, with the first line split into word boxes
SELECTION = [
    Rect(0.10, 0.10, 0.10, 0.02),
    Rect(0.203, 0.10, 0.10, 0.02),
    Rect(0.25, 0.105, 0.20, 0.02),
    Rect(0.10, 0.14, 0.30, 0.02),
]


class TestNormalize:
    """Test rect normalization"""

    def test_rect_inside_page_unchanged(self):
        rect = Rect(0.1, 0.2, 0.3, 0.4)
        assert as_tuple(rect_geometry.normalize(rect)) == pytest.approx(as_tuple(rect))

    def test_edges_clamped_to_page(self):
        """Test that a rect hanging off the page is clipped to it"""
        result = rect_geometry.normalize(Rect(-0.1, 0.5, 0.3, 0.8))

        assert as_tuple(result) == pytest.approx((0.0, 0.5, 0.2, 0.5))

    def test_zero_width_dropped(self):
        assert rect_geometry.normalize(Rect(0.1, 0.1, 0.0, 0.2)) is None

    def test_rect_entirely_off_page_dropped(self):
        assert rect_geometry.normalize(Rect(1.5, 0.1, 0.2, 0.2)) is None

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_dropped(self, bad):
        assert rect_geometry.normalize(Rect(bad, 0.1, 0.2, 0.2)) is None
        assert rect_geometry.normalize(Rect(0.1, 0.1, 0.2, bad)) is None

    def test_min_size_is_exclusive_threshold(self):
        rect = Rect(0.1, 0.1, 0.01, 0.01)
        assert rect_geometry.normalize(rect, min_size=0.01) is None
        kept = rect_geometry.normalize(rect, min_size=0.005)
        assert as_tuple(kept) == pytest.approx(as_tuple(rect))


class TestOverlapAndProximity:
    """Test the pairwise predicates used by merging"""

    def test_overlapping_rects(self):
        a = Rect(0.0, 0.0, 0.5, 0.5)
        b = Rect(0.4, 0.4, 0.5, 0.5)
        assert rect_geometry.overlaps(a, b)
        assert rect_geometry.overlaps(b, a)

    def test_touching_edges_do_not_overlap(self):
        """Test that rects sharing only an edge are not considered overlapping"""
        a = Rect(0.0, 0.0, 0.5, 0.5)
        b = Rect(0.5, 0.0, 0.5, 0.5)
        assert not rect_geometry.overlaps(a, b)

    def test_overlap_within_epsilon_ignored(self):
        a = Rect(0.0, 0.0, 0.5, 0.5)
        b = Rect(0.499, 0.0, 0.5, 0.5)
        assert not rect_geometry.overlaps(a, b)
        assert rect_geometry.overlaps(a, b, epsilon=0.0)

    def test_close_on_same_line(self):
        a = Rect(0.1, 0.1, 0.2, 0.02)
        b = Rect(0.303, 0.1, 0.2, 0.02)
        assert rect_geometry.close_on_same_line(a, b)
        assert rect_geometry.close_on_same_line(b, a)

    def test_gap_too_wide(self):
        a = Rect(0.1, 0.1, 0.2, 0.02)
        b = Rect(0.31, 0.1, 0.2, 0.02)
        assert not rect_geometry.close_on_same_line(a, b)

    def test_different_lines_not_joined(self):
        a = Rect(0.1, 0.1, 0.2, 0.02)
        b = Rect(0.303, 0.2, 0.2, 0.02)
        assert not rect_geometry.close_on_same_line(a, b)

    def test_slight_vertical_offset_still_same_line(self):
        """Test that boxes of one line with different heights still join"""
        a = Rect(0.1, 0.100, 0.2, 0.020)
        b = Rect(0.301, 0.104, 0.2, 0.014)
        assert rect_geometry.close_on_same_line(a, b)

    def test_merge_is_bounding_box(self):
        merged = rect_geometry.merge(Rect(0.1, 0.1, 0.1, 0.1), Rect(0.3, 0.05, 0.1, 0.1))
        assert as_tuple(merged) == pytest.approx((0.1, 0.05, 0.3, 0.15))


class TestMergeAll:
    """Test merge_all and its canonical form"""

    def test_empty_and_single(self):
        assert rect_geometry.merge_all([]) == []
        rect = Rect(0.1, 0.1, 0.2, 0.02)
        assert rect_geometry.merge_all([rect]) == [rect]

    def test_words_on_one_line_join(self):
        result = rect_geometry.merge_all(
            [Rect(0.1, 0.1, 0.2, 0.02), Rect(0.303, 0.1, 0.2, 0.02)]
        )

        assert len(result) == 1
        assert as_tuple(result[0]) == pytest.approx((0.1, 0.1, 0.403, 0.02))

    def test_separate_lines_stay_separate(self):
        top = Rect(0.1, 0.1, 0.3, 0.02)
        bottom = Rect(0.1, 0.2, 0.3, 0.02)

        result = rect_geometry.merge_all([bottom, top])

        assert result == [top, bottom]

    def test_chain_through_bridging_rect(self):
        """Test that a rect bridging two others pulls all three together"""
        left = Rect(0.1, 0.1, 0.1, 0.02)
        right = Rect(0.3, 0.1, 0.1, 0.02)
        bridge = Rect(0.19, 0.1, 0.12, 0.02)

        result = rect_geometry.merge_all([left, right, bridge])

        assert len(result) == 1
        assert as_tuple(result[0]) == pytest.approx((0.1, 0.1, 0.3, 0.02))

    def test_any_overlap(self):
        left = [Rect(0.1, 0.1, 0.2, 0.02)]
        assert rect_geometry.any_overlap(left, [Rect(0.2, 0.1, 0.2, 0.02)])
        assert not rect_geometry.any_overlap(left, [Rect(0.1, 0.5, 0.2, 0.02)])
        assert not rect_geometry.any_overlap(left, [])


def random_rects(seed: int, count: int) -> list[Rect]:
    rng = random.Random(seed)
    rects = []
    for _ in range(count):
        rect = Rect(
            rng.uniform(0.0, 0.8),
            rng.uniform(0.0, 0.9),
            rng.uniform(0.01, 0.2),
            rng.uniform(0.01, 0.05),
        )
        rects.append(rect_geometry.normalize(rect))
    return rects


RECT_SETS = {
    "selection": SELECTION,
    "fully_overlapping": [
        Rect(0.1, 0.1, 0.4, 0.05),
        Rect(0.15, 0.11, 0.1, 0.02),
        Rect(0.2, 0.12, 0.2, 0.02),
    ],
    "bridge_chain": [
        Rect(0.1, 0.1, 0.1, 0.02),
        Rect(0.5, 0.1, 0.1, 0.02),
        Rect(0.15, 0.105, 0.4, 0.02),
        Rect(0.58, 0.11, 0.1, 0.02),
    ],
    "stacked_lines": [
        Rect(0.1, 0.1, 0.3, 0.02),
        Rect(0.1, 0.119, 0.3, 0.02),
        Rect(0.1, 0.138, 0.3, 0.02),
    ],
    "duplicates": [
        Rect(0.2, 0.3, 0.1, 0.02),
        Rect(0.2, 0.3, 0.1, 0.02),
        Rect(0.6, 0.3, 0.1, 0.02),
        Rect(0.6, 0.3, 0.1, 0.02),
    ],
    "random": random_rects(seed=1019, count=24),
}


@pytest.fixture(params=list(RECT_SETS), ids=list(RECT_SETS))
def rects(request):
    return RECT_SETS[request.param]


class TestMergeAllProperties:
    """Test the merge_all canonical form over varied rect sets"""

    def test_idempotent(self, rects):
        once = rect_geometry.merge_all(rects)
        assert rect_geometry.merge_all(once) == once

    def test_order_independent(self, rects):
        expected = rect_geometry.merge_all(rects)
        orders = [list(reversed(rects))]
        if len(rects) <= 5:
            orders.extend(list(p) for p in itertools.permutations(rects))
        else:
            rng = random.Random(7)
            for _ in range(10):
                shuffled = list(rects)
                rng.shuffle(shuffled)
                orders.append(shuffled)

        for order in orders:
            assert rect_geometry.merge_all(order) == expected

    def test_covers_every_input(self, rects):
        result = rect_geometry.merge_all(rects)
        for rect in rects:
            assert any(contains(out, rect) for out in result)

    def test_output_is_pairwise_disjoint(self, rects):
        result = rect_geometry.merge_all(rects)
        for a, b in itertools.combinations(result, 2):
            assert not rect_geometry.overlaps(a, b)
            assert not rect_geometry.close_on_same_line(a, b)

    def test_output_sorted_top_to_bottom(self, rects):
        result = rect_geometry.merge_all(rects)
        assert [r.y for r in result] == sorted(r.y for r in result)

    def test_expected_sizes(self):
        merged = {name: rect_geometry.merge_all(rs) for name, rs in RECT_SETS.items()}

        assert len(merged["fully_overlapping"]) == 1
        assert len(merged["bridge_chain"]) == 1
        assert len(merged["stacked_lines"]) == 3
        assert len(merged["duplicates"]) == 2


class TestPixelConversion:
    """Test conversions between unit and pixel coordinates"""

    def test_to_pixels(self):
        rect = rect_geometry.to_pixels(Rect(0.1, 0.2, 0.5, 0.25), 800, 1000)
        assert as_tuple(rect) == pytest.approx((80, 200, 400, 250))

    def test_from_pixels(self):
        rect = rect_geometry.from_pixels(Rect(80, 200, 400, 250), 800, 1000)
        assert as_tuple(rect) == pytest.approx((0.1, 0.2, 0.5, 0.25))

    def test_from_pixels_rejects_empty_surface(self):
        with pytest.raises(ValueError):
            rect_geometry.from_pixels(Rect(0, 0, 10, 10), 0, 100)
