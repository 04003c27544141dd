from fastapi import APIRouter, HTTPException

from ..models.highlights import Owner
from ..models.search import (
    OverlayGroup,
    OverlayRect,
    OverlayResponse,
    SearchNavigationResponse,
    SearchQueryRequest,
    SearchSelectRequest,
    SearchStatusResponse,
)
from ..services.errors import FolioError, http_status_for
from ..services.reader_services import ReaderSession, get_reader_services

router = APIRouter(prefix="/search", tags=["search"])


def _status(session: ReaderSession) -> SearchStatusResponse:
    search = session.search
    return SearchStatusResponse(
        query=search.query,
        state=search.state.name.lower(),
        is_searching=search.is_searching,
        results=search.results,
        active_index=search.active_index,
    )


def _session(user_id: str, book_id: str) -> ReaderSession:
    try:
        owner = Owner(user_id=user_id, book_id=book_id)
        return get_reader_services().get_session(owner)
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))


@router.post("/query", response_model=SearchStatusResponse)
async def set_query(request: SearchQueryRequest):
    """
    Start searching the open book, superseding any running search.

    Returns immediately; poll ``/search/status`` for progressive results.
    """
    try:
        session = _session(request.user_id, request.book_id)
        session.set_query(request.query)
        return _status(session)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error starting search: {str(e)}")


@router.get("/status", response_model=SearchStatusResponse)
async def get_status(user_id: str, book_id: str, wait: bool = False):
    """
    Get the current query, results and progress.

    Args:
        wait: Block until the running search has finished
    """
    try:
        session = _session(user_id, book_id)
        if wait:
            await session.search.wait()
        return _status(session)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error retrieving search status: {str(e)}"
        )


@router.post("/next", response_model=SearchNavigationResponse)
async def next_match(owner: Owner):
    try:
        session = _session(owner.user_id, owner.book_id)
        result = session.next_match()
        return SearchNavigationResponse(
            active_index=session.search.active_index, result=result
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error moving to match: {str(e)}")


@router.post("/previous", response_model=SearchNavigationResponse)
async def previous_match(owner: Owner):
    try:
        session = _session(owner.user_id, owner.book_id)
        result = session.previous_match()
        return SearchNavigationResponse(
            active_index=session.search.active_index, result=result
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error moving to match: {str(e)}")


@router.post("/select", response_model=SearchNavigationResponse)
async def select_match(request: SearchSelectRequest):
    """Make the match at ``index`` the active one."""
    try:
        session = _session(request.user_id, request.book_id)
        result = session.select_match(request.index)
        if result is None:
            raise HTTPException(
                status_code=404, detail=f"No match at index {request.index}"
            )
        return SearchNavigationResponse(
            active_index=session.search.active_index, result=result
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error selecting match: {str(e)}")


@router.post("/clear", response_model=SearchStatusResponse)
async def clear_query(owner: Owner):
    """Stop searching and drop the query and its results."""
    try:
        session = _session(owner.user_id, owner.book_id)
        session.clear_query()
        return _status(session)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error clearing search: {str(e)}")


@router.get("/overlay", response_model=OverlayResponse)
async def get_overlay(user_id: str, book_id: str, page: int, scale: float = 1.0):
    """
    Get the match rects of a page as rendered at the given scale.

    Rects are in pixels of the rendered page, one group per match; the
    active match is flagged so the viewer can scroll it into view.
    """
    try:
        session = _session(user_id, book_id)
        state = await session.show_page(page, scale)
        return OverlayResponse(
            run_id=state.run_id,
            page=state.page,
            groups=[
                OverlayGroup(
                    occurrence=group.occurrence,
                    active=group.active,
                    rects=[OverlayRect(**rect.to_dict()) for rect in group.rects],
                )
                for group in state.groups
            ],
        )
    except HTTPException:
        raise
    except FolioError as e:
        raise HTTPException(status_code=http_status_for(e.code), detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error computing search overlay: {str(e)}"
        )
