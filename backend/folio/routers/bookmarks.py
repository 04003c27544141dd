from typing import List

from fastapi import APIRouter, HTTPException

from ..models.reader import BookmarkResponse, PageRequest
from ..services.errors import FolioError, http_status_for
from ..services.reader_services import get_reader_services

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


@router.get("/{user_id}/{book_id}", response_model=List[BookmarkResponse])
async def list_bookmarks(user_id: str, book_id: str):
    try:
        services = get_reader_services()
        return services.bookmarks.list_bookmarks(user_id, book_id)
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error retrieving bookmarks: {str(e)}"
        )


@router.post("/{user_id}/{book_id}/toggle")
async def toggle_bookmark(user_id: str, book_id: str, request: PageRequest):
    """
    Bookmark a page, or remove the bookmark if the page already has one.

    Returns:
        dict: ``bookmarked`` is True when the bookmark was added
    """
    try:
        services = get_reader_services()
        bookmarked = services.bookmarks.toggle_bookmark(user_id, book_id, request.page)
        if bookmarked is None:
            raise HTTPException(status_code=400, detail="Invalid book or page")
        return {"bookmarked": bookmarked, "page": request.page}
    except HTTPException:
        raise
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error toggling bookmark: {str(e)}"
        )
