"""
Rect Geometry Module

Pure functions for normalizing, comparing and merging axis-aligned rectangles
expressed in unit page coordinates (0..1 relative to page width/height).
These are the primitives used both to canonicalize highlight shapes and to
collapse glyph boxes of a search match into line boxes.
"""

import math

from ..models.geometry import Rect

# Tunable tolerances, all in unit page coordinates
OVERLAP_EPSILON = 0.002  # Shrink applied before testing intersection
GAP_EPSILON = 0.005  # Max horizontal gap for two rects on one line to join
MIN_RECT_SIZE = 0.000001  # Width/height at or below this is degenerate
SAME_LINE_RATIO = 0.5  # Share of the shorter height that must overlap vertically


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def _sort_key(rect: Rect) -> tuple[float, float, float, float]:
    return (rect.y, rect.x, rect.h, rect.w)


def normalize(rect: Rect, min_size: float = MIN_RECT_SIZE) -> Rect | None:
    """
    Clamp every edge of a rect into [0, 1].

    Args:
        rect: Raw rect, possibly extending past the page
        min_size: Width/height at or below which the rect is discarded

    Returns:
        Rect | None: The clamped rect, or None if it is non-finite or degenerate
    """
    values = (rect.x, rect.y, rect.w, rect.h)
    if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in values):
        return None

    x1 = _clamp01(rect.x)
    y1 = _clamp01(rect.y)
    x2 = _clamp01(rect.x + rect.w)
    y2 = _clamp01(rect.y + rect.h)
    w = x2 - x1
    h = y2 - y1
    if w <= min_size or h <= min_size:
        return None
    return Rect(x1, y1, w, h)


def overlaps(a: Rect, b: Rect, epsilon: float = OVERLAP_EPSILON) -> bool:
    """True if the rects intersect on both axes after shrinking each by epsilon."""
    overlap_x = a.x < b.right - epsilon and a.right > b.x + epsilon
    overlap_y = a.y < b.bottom - epsilon and a.bottom > b.y + epsilon
    return overlap_x and overlap_y


def close_on_same_line(a: Rect, b: Rect, epsilon: float = GAP_EPSILON) -> bool:
    """
    True if two rects sit on the same text line and nearly touch horizontally.

    Two rects share a line when their vertical spans overlap by at least
    SAME_LINE_RATIO of the shorter rect's height; they are close when the
    horizontal gap between them is at most epsilon (negative gaps overlap).
    """
    vertical_overlap = min(a.bottom, b.bottom) - max(a.y, b.y)
    if vertical_overlap <= 0 or vertical_overlap < SAME_LINE_RATIO * min(a.h, b.h):
        return False

    horizontal_gap = max(a.x, b.x) - min(a.right, b.right)
    return horizontal_gap <= epsilon


def merge(a: Rect, b: Rect) -> Rect:
    """Return the smallest rect covering both inputs."""
    x = min(a.x, b.x)
    y = min(a.y, b.y)
    right = max(a.right, b.right)
    bottom = max(a.bottom, b.bottom)
    return Rect(x, y, right - x, bottom - y)


def _should_merge(a: Rect, b: Rect, overlap_epsilon: float, gap_epsilon: float) -> bool:
    return overlaps(a, b, overlap_epsilon) or close_on_same_line(a, b, gap_epsilon)


def merge_all(
    rects: list[Rect],
    overlap_epsilon: float = OVERLAP_EPSILON,
    gap_epsilon: float = GAP_EPSILON,
) -> list[Rect]:
    """
    Merge rects until no pair overlaps or joins on the same line.

    The input is sorted into a canonical order first so the result does not
    depend on the order rects were supplied in. Merging repeats until a full
    pass finds no qualifying pair, so feeding the output back in returns it
    unchanged.

    Args:
        rects: Normalized rects
        overlap_epsilon: Tolerance passed to ``overlaps``
        gap_epsilon: Tolerance passed to ``close_on_same_line``

    Returns:
        list[Rect]: Minimal rect set sorted top-to-bottom, then left-to-right
    """
    pending = sorted(rects, key=_sort_key)
    if len(pending) <= 1:
        return pending

    changed = True
    while changed:
        changed = False
        merged: list[Rect] = []
        for rect in pending:
            current = rect
            # Absorb every already-placed rect this one now touches
            index = 0
            while index < len(merged):
                if _should_merge(merged[index], current, overlap_epsilon, gap_epsilon):
                    current = merge(merged.pop(index), current)
                    changed = True
                    index = 0
                else:
                    index += 1
            merged.append(current)
        pending = sorted(merged, key=_sort_key)

    return pending


def any_overlap(
    left: list[Rect], right: list[Rect], epsilon: float = OVERLAP_EPSILON
) -> bool:
    """True if any rect of ``left`` overlaps any rect of ``right``."""
    return any(overlaps(a, b, epsilon) for a in left for b in right)


def to_pixels(rect: Rect, width: float, height: float) -> Rect:
    """Scale a unit rect onto a surface of the given pixel size."""
    return Rect(rect.x * width, rect.y * height, rect.w * width, rect.h * height)


def from_pixels(rect: Rect, width: float, height: float) -> Rect:
    """Scale a pixel rect on a surface of the given size into unit coordinates."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Surface size must be positive, got {width}x{height}")
    return Rect(rect.x / width, rect.y / height, rect.w / width, rect.h / height)
