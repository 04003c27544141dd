from typing import Optional

from pydantic import BaseModel


class NoteCreateRequest(BaseModel):
    user_id: str
    book_id: str
    page: int
    content: str


class NoteUpdateRequest(BaseModel):
    user_id: str
    content: str


class NoteResponse(BaseModel):
    id: str
    user_id: str
    book_id: str
    page: int
    content: str
    created_at: int
    updated_at: int


class NoteDeleteResponse(BaseModel):
    success: bool
    message: str
    note_id: Optional[str] = None
