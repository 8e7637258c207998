from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse

from ..config import Settings
from ..dependencies import get_ledger, get_settings
from ..feed import FeedEvent
from ..ledger import VoteLedger

router = APIRouter(prefix="/feed", tags=["Feed"])

MAX_WAIT_SECONDS = 30.0


@router.get("", response_model=FeedEvent, responses={204: {"description": "Nothing newer than `since`"}})
def poll_feed(
    since: int = Query(0, ge=0),
    wait: float = Query(0.0, ge=0, le=MAX_WAIT_SECONDS),
    ledger: VoteLedger = Depends(get_ledger),
):
    """Poll for a snapshot newer than `since`; with `wait` > 0 this long-polls."""
    if wait > 0:
        event = ledger.feed.wait(since, wait)
    else:
        event = ledger.feed.poll(since)
    if event is None:
        return Response(status_code=204)
    return event


@router.get("/stream")
def stream_feed(
    since: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    ledger: VoteLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
):
    """Server-sent events, one `snapshot` event per feed version."""
    def event_source():
        for event in ledger.feed.events(since=since, limit=limit, duration=settings.feed_stream_seconds):
            yield f"id: {event.version}\nevent: snapshot\ndata: {event.model_dump_json()}\n\n"

    return StreamingResponse(event_source(), media_type="text/event-stream")
