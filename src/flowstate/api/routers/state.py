"""
API routes over the state engine.

Endpoints
---------
- `GET /state`: Encoded current snapshot.
- `GET /pending`: Queued offline actions, oldest first.
- `POST /connectivity`: Report an online/offline transition (online triggers replay).
- `POST /videos/{video_id}/like` and `/save`: Optimistic membership toggles.
- `POST /cache/invalidate`: Drop cache keys containing a substring.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from flowstate.api.schemas import (
    ConnectivityRequest,
    InvalidateRequest,
    InvalidateResult,
    MembershipResult,
    PendingActionView,
    ReplayResult,
    StateView,
)
from flowstate.core.engine import StateEngine
from flowstate.core.state.codec import encode_snapshot

router = APIRouter(tags=["State"])


def get_engine(request: Request) -> StateEngine:
    """Dependency: the engine started by the application lifespan."""
    engine: StateEngine = request.app.state.engine
    return engine


EngineDep = Annotated[StateEngine, Depends(get_engine)]


@router.get("/state", response_model=StateView, summary="Current snapshot")
async def read_state(engine: EngineDep) -> StateView:
    return StateView(
        state=encode_snapshot(engine.current),
        commits=engine.scheduler.commits,
        history=len(engine.history()),
    )


@router.get("/pending", response_model=list[PendingActionView], summary="Offline queue")
async def read_pending(engine: EngineDep) -> list[PendingActionView]:
    return [PendingActionView.model_validate(a.model_dump()) for a in engine.queue.pending]


@router.post("/connectivity", response_model=ReplayResult, summary="Connectivity transition")
async def post_connectivity(body: ConnectivityRequest, engine: EngineDep) -> ReplayResult:
    """
    Flip the connectivity flag.

    Going online replays the offline queue before responding; a halted
    replay is reported in `error`, not as an HTTP failure.
    """
    report = await engine.set_online(body.online)
    if report is None:
        return ReplayResult(online=False, remaining=[a.id for a in engine.queue.pending])
    return ReplayResult(
        online=True,
        replayed=[a.id for a in report.replayed],
        remaining=[a.id for a in report.remaining],
        error=str(report.error) if report.error is not None else None,
    )


@router.post("/videos/{video_id}/like", response_model=MembershipResult, summary="Toggle like")
async def post_like(video_id: str, engine: EngineDep) -> MembershipResult:
    return MembershipResult(video_id=video_id, active=await engine.toggle_like(video_id))


@router.post("/videos/{video_id}/save", response_model=MembershipResult, summary="Toggle save")
async def post_save(video_id: str, engine: EngineDep) -> MembershipResult:
    return MembershipResult(video_id=video_id, active=await engine.toggle_save(video_id))


@router.post("/cache/invalidate", response_model=InvalidateResult, summary="Invalidate cache")
async def post_invalidate(body: InvalidateRequest, engine: EngineDep) -> InvalidateResult:
    removed = await engine.invalidate(body.pattern)
    return InvalidateResult(removed=list(removed))


__all__ = ["get_engine", "router"]
