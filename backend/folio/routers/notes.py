from typing import List, Optional

from fastapi import APIRouter, HTTPException

from ..models.notes import (
    NoteCreateRequest,
    NoteDeleteResponse,
    NoteResponse,
    NoteUpdateRequest,
)
from ..services.errors import FolioError, http_status_for
from ..services.reader_services import get_reader_services

router = APIRouter(prefix="/notes", tags=["notes"])


@router.post("", response_model=NoteResponse)
async def create_note(request: NoteCreateRequest):
    """
    Write a note on a page of a book.
    """
    try:
        services = get_reader_services()
        note = services.notes.create_note(
            request.user_id, request.book_id, request.page, request.content
        )
        return NoteResponse(**note)
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error creating note: {str(e)}")


@router.get("/{user_id}", response_model=List[NoteResponse])
async def list_notes(
    user_id: str, book_id: Optional[str] = None, q: Optional[str] = None
):
    """
    Get a reader's notes, optionally for one book or containing some text
    """
    try:
        services = get_reader_services()
        notes = services.notes.list_notes(user_id, book_id=book_id, query=q)
        return [NoteResponse(**note) for note in notes]
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error getting notes: {str(e)}")


@router.put("/{note_id}", response_model=NoteResponse)
async def update_note(note_id: str, request: NoteUpdateRequest):
    try:
        services = get_reader_services()
        note = services.notes.update_note(request.user_id, note_id, request.content)
        if note is None:
            raise HTTPException(status_code=404, detail="Note not found")
        return NoteResponse(**note)
    except HTTPException:
        raise
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating note: {str(e)}")


@router.delete("/{note_id}", response_model=NoteDeleteResponse)
async def delete_note(note_id: str, user_id: str):
    """
    Delete a note
    """
    try:
        services = get_reader_services()
        if not services.notes.delete_note(user_id, note_id):
            raise HTTPException(status_code=404, detail="Note not found")
        return NoteDeleteResponse(
            success=True, message="Note deleted successfully", note_id=note_id
        )
    except HTTPException:
        raise
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error deleting note: {str(e)}")
