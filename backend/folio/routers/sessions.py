from fastapi import APIRouter, HTTPException

from ..models.highlights import Owner
from ..models.reader import SessionOpenRequest, SessionResponse
from ..services.errors import FolioError, http_status_for
from ..services.reader_services import get_reader_services

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("/open", response_model=SessionResponse)
async def open_session(request: SessionOpenRequest):
    """
    Open a PDF for a reader.

    Restores the saved reading position; the returned page is the one to
    show first.
    """
    try:
        services = get_reader_services()
        owner = Owner(user_id=request.user_id, book_id=request.book_id)
        session, page = await services.open_session(owner, request.filename)
        return SessionResponse(
            user_id=owner.user_id,
            book_id=owner.book_id,
            filename=session.filename,
            page_count=session.page_count,
            page=page,
        )
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error opening book: {str(e)}")


@router.post("/close")
async def close_session(owner: Owner):
    """Close the reader's book, flushing the pending reading position."""
    try:
        services = get_reader_services()
        closed = await services.close_session(owner)
        return {"closed": closed}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error closing book: {str(e)}")
