"""SSE streaming endpoint for dispatch outcomes."""

from typing import TYPE_CHECKING, Literal

from fastapi import APIRouter, Query, Request
from sse_starlette.sse import EventSourceResponse

if TYPE_CHECKING:
    from s3local.events.hub import OutcomeStreamHub

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/stream")
async def outcome_stream(
    request: Request,
    status: Literal["completed", "failed", "timed_out", "*"] = Query(
        default="*",
        description="Outcome status filter",
    ),
) -> EventSourceResponse:
    """Stream handler dispatch outcomes via Server-Sent Events.

    Args:
        request: FastAPI request object.
        status: Outcome status filter. Use "*" for all outcomes.

    Returns:
        SSE response stream with outcomes and heartbeats.
    """
    hub: OutcomeStreamHub = request.app.state.outcome_hub

    return EventSourceResponse(
        hub.create_sse_generator(status),
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
