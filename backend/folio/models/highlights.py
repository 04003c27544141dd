from pydantic import BaseModel, Field

from .geometry import Rect


class Owner(BaseModel):
    """
    The (user, document) pair that scopes highlights, search caches and
    reading position. Resolved from a session by the identity collaborator.
    """

    user_id: str
    book_id: str

    def key(self) -> tuple[str, str]:
        return (self.user_id.strip(), self.book_id.strip())


class HighlightRect(BaseModel):
    """A highlight rectangle in unit page coordinates."""

    x: float
    y: float
    w: float
    h: float

    def to_rect(self) -> Rect:
        return Rect(self.x, self.y, self.w, self.h)

    @classmethod
    def from_rect(cls, rect: Rect) -> "HighlightRect":
        return cls(x=rect.x, y=rect.y, w=rect.w, h=rect.h)


class Highlight(BaseModel):
    """
    A stored highlight.

    Rects are mutually non-overlapping and ordered top-to-bottom, then
    left-to-right. Timestamps are epoch milliseconds.
    """

    id: str
    user_id: str
    book_id: str
    page: int
    rects: list[HighlightRect]
    created_at: int
    updated_at: int

    def geometry(self) -> list[Rect]:
        return [r.to_rect() for r in self.rects]


class HighlightCreateRequest(BaseModel):
    user_id: str
    book_id: str
    page: int
    rects: list[HighlightRect] = Field(default_factory=list)


class HighlightDeleteResponse(BaseModel):
    id: str
    pending: bool
    undo_window_seconds: float
