from pydantic import BaseModel


class SearchResult(BaseModel):
    """
    One match of a search query.

    ``start`` and ``end`` are offsets into ``snippet`` marking the matched
    text. Results are ordered by page, then by position within the page.
    """

    page: int
    snippet: str
    start: int
    end: int


class SearchStatusResponse(BaseModel):
    query: str
    state: str
    is_searching: bool
    results: list[SearchResult]
    active_index: int


class SearchQueryRequest(BaseModel):
    user_id: str
    book_id: str
    query: str


class SearchSelectRequest(BaseModel):
    user_id: str
    book_id: str
    index: int


class SearchNavigationResponse(BaseModel):
    active_index: int
    result: SearchResult | None = None


class OverlayRect(BaseModel):
    """A match rect in pixels of the rendered page."""

    x: float
    y: float
    w: float
    h: float


class OverlayGroup(BaseModel):
    occurrence: int
    active: bool
    rects: list[OverlayRect]


class OverlayResponse(BaseModel):
    run_id: int
    page: int | None
    groups: list[OverlayGroup]
