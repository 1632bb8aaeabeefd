"""Health check endpoints for liveness and readiness probes."""
from typing import Literal

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from s3local.events.supervisor import SupervisorState

router = APIRouter(prefix="/health", tags=["health"])


class LivenessResponse(BaseModel):
    """Response model for liveness probe."""

    status: Literal["alive"]


class ReadinessResponse(BaseModel):
    """Response model for readiness probe.

    Attributes:
        status: Overall readiness.
        dispatch: Supervisor lifecycle state.
        subscriptions: Number of attached subscriptions.
        buckets: Buckets present in storage.
    """

    status: Literal["ready", "not_ready"]
    dispatch: SupervisorState
    subscriptions: int
    buckets: list[str]


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe endpoint."""
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
def readiness(request: Request) -> JSONResponse:
    """Readiness probe endpoint.

    Ready once the dispatch listener is attached and the storage root
    is readable. Returns 503 otherwise.
    """
    runtime = request.app.state.runtime
    supervisor = runtime.supervisor
    try:
        buckets = runtime.storage.list_buckets()
        storage_ok = True
    except OSError:
        buckets = []
        storage_ok = False

    ready = storage_ok and supervisor.state is SupervisorState.ATTACHED
    response = ReadinessResponse(
        status="ready" if ready else "not_ready",
        dispatch=supervisor.state,
        subscriptions=len(supervisor.registry or ()),
        buckets=buckets,
    )
    code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=response.model_dump(mode="json"), status_code=code)
