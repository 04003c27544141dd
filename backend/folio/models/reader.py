from pydantic import BaseModel


class SessionOpenRequest(BaseModel):
    user_id: str
    book_id: str
    filename: str


class SessionResponse(BaseModel):
    user_id: str
    book_id: str
    filename: str
    page_count: int
    page: int


class PageRequest(BaseModel):
    page: int


class ProgressResponse(BaseModel):
    user_id: str
    book_id: str
    last_page: int | None = None
    updated_at: int | None = None


class BookmarkResponse(BaseModel):
    id: str
    user_id: str
    book_id: str
    page: int
    created_at: int
