"""History endpoints: reconciled list and per-exam review."""

from fastapi import APIRouter, HTTPException, Request, status

from examsync.core.history import ReviewNotAvailableError
from examsync.web.schemas import HistoryEntryResponse, HistoryListResponse, ReviewResponse

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("", response_model=HistoryListResponse)
async def list_history(request: Request) -> HistoryListResponse:
    """Deduplicated exam history, newest first."""
    entries = request.app.state.context.history.get_history()
    return HistoryListResponse(
        entries=[HistoryEntryResponse.from_entry(e) for e in entries],
        count=len(entries),
    )


@router.get("/{entry_id}/review", response_model=ReviewResponse)
async def get_review(request: Request, entry_id: str) -> ReviewResponse:
    """Per-question detail of one exam."""
    try:
        detail = request.app.state.context.history.get_review_detail(entry_id)
    except ReviewNotAvailableError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
    return ReviewResponse.from_detail(detail)
