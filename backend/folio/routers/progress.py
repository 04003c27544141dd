from fastapi import APIRouter, HTTPException

from ..models.highlights import Owner
from ..models.reader import PageRequest, ProgressResponse
from ..services.errors import FolioError, http_status_for
from ..services.reader_services import get_reader_services

router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("/{user_id}/{book_id}", response_model=ProgressResponse)
async def get_progress(user_id: str, book_id: str):
    """
    Get the saved reading position of a book.

    ``last_page`` is null when nothing has been saved yet.
    """
    try:
        services = get_reader_services()
        progress = services.reading_progress.get_progress(user_id, book_id)
        if progress is None:
            return ProgressResponse(user_id=user_id, book_id=book_id)
        return ProgressResponse(**progress)
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error retrieving reading progress: {str(e)}"
        )


@router.put("/{user_id}/{book_id}")
async def set_last_page(user_id: str, book_id: str, request: PageRequest):
    """Save the reading position right away."""
    try:
        services = get_reader_services()
        saved = services.reading_progress.set_last_page(user_id, book_id, request.page)
        if not saved:
            raise HTTPException(status_code=400, detail="Invalid book or page")
        return {"message": "Reading progress saved", "last_page": request.page}
    except HTTPException:
        raise
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error saving reading progress: {str(e)}"
        )


@router.post("/{user_id}/{book_id}/page-change")
async def page_changed(user_id: str, book_id: str, request: PageRequest):
    """
    Report that the open book moved to another page.

    The position is written once the reader has stayed on a page for the
    quiet interval. Changes before the saved position was restored are
    ignored.
    """
    try:
        services = get_reader_services()
        session = services.get_session(Owner(user_id=user_id, book_id=book_id))
        scheduled = session.autosave.on_page_change(request.page)
        return {"scheduled": scheduled}
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error recording page change: {str(e)}"
        )


@router.post("/{user_id}/{book_id}/flush")
async def flush_progress(user_id: str, book_id: str):
    """Write the pending reading position of the open book now."""
    try:
        services = get_reader_services()
        session = services.get_session(Owner(user_id=user_id, book_id=book_id))
        await session.autosave.flush()
        last_page = services.reading_progress.get_last_page(user_id, book_id)
        return {"flushed": True, "last_page": last_page}
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error saving reading progress: {str(e)}"
        )
