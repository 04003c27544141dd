from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException

from ..models.highlights import (
    Highlight,
    HighlightCreateRequest,
    HighlightDeleteResponse,
    Owner,
)
from ..models.results import OperationResult
from ..services.errors import http_status_for
from ..services.reader_services import get_reader_services

router = APIRouter(prefix="/highlights", tags=["highlights"])


def _unwrap(result: OperationResult):
    if not result.ok:
        raise HTTPException(
            status_code=http_status_for(result.error), detail=result.message
        )
    return result.value


@router.get("/{user_id}/{book_id}/count", response_model=Dict[int, int])
async def get_highlight_counts(user_id: str, book_id: str):
    """
    Get the number of highlights on each page of a book.

    Returns:
        Dict[int, int]: Page number to highlight count
    """
    try:
        services = get_reader_services()
        return services.highlights.count_highlights(user_id, book_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error counting highlights: {str(e)}"
        )


@router.get("/{user_id}/{book_id}/{page:int}", response_model=List[Highlight])
async def list_highlights(user_id: str, book_id: str, page: int):
    """
    List the visible highlights of a page, newest first.

    Highlights waiting out their undo window are not included.
    """
    try:
        services = get_reader_services()
        owner = Owner(user_id=user_id, book_id=book_id)
        return _unwrap(await services.highlight_engine.list_for_page(owner, page))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error retrieving highlights: {str(e)}"
        )


@router.post("/merged", response_model=Highlight)
async def create_merged_highlight(request: HighlightCreateRequest):
    """
    Create a highlight from a text selection.

    Overlapping highlights already on the page are folded into the new one.

    Args:
        request: Owner, page and selection rects in unit page coordinates

    Returns:
        Highlight: The stored highlight

    Raises:
        HTTPException: 400 for an empty selection, 404 for an unknown book
    """
    try:
        services = get_reader_services()
        owner = Owner(user_id=request.user_id, book_id=request.book_id)
        result = await services.highlight_engine.create_from_selection(
            owner, request.page, request.rects
        )
        return _unwrap(result)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error creating highlight: {str(e)}"
        )


@router.post("/raw", response_model=Highlight)
async def insert_raw_highlight(request: HighlightCreateRequest):
    """Store rects as a highlight as they are, without merging."""
    try:
        services = get_reader_services()
        owner = Owner(user_id=request.user_id, book_id=request.book_id)
        result = await services.highlight_engine.insert_raw(
            owner, request.page, request.rects
        )
        return _unwrap(result)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error inserting highlight: {str(e)}"
        )


@router.delete("/{highlight_id}", response_model=HighlightDeleteResponse)
async def delete_highlight(highlight_id: str):
    """
    Delete a highlight with an undo window.

    The highlight disappears immediately and is removed from storage once
    the window has passed, unless ``/highlights/{id}/undo`` is called first.
    """
    try:
        services = get_reader_services()
        engine = services.highlight_engine
        _unwrap(await engine.delete_with_undo(highlight_id))
        return HighlightDeleteResponse(
            id=highlight_id,
            pending=True,
            undo_window_seconds=engine.undo_grace_seconds,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error deleting highlight: {str(e)}"
        )


@router.post("/{highlight_id}/undo", response_model=Highlight)
async def undo_delete_highlight(highlight_id: str):
    """Bring back a highlight deleted less than an undo window ago."""
    try:
        services = get_reader_services()
        return _unwrap(await services.highlight_engine.undo(highlight_id))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error restoring highlight: {str(e)}"
        )


@router.delete("/{highlight_id}/permanent")
async def delete_highlight_permanently(highlight_id: str, user_id: Optional[str] = None):
    try:
        services = get_reader_services()
        _unwrap(await services.highlight_engine.delete_now(highlight_id, user_id))
        return {"message": "Highlight deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error deleting highlight: {str(e)}"
        )
