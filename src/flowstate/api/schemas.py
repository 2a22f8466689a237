"""
Request/response models for the HTTP surface.

These are thin Pydantic views over engine values; snapshot fields are
serialized with the same per-field codec used for durable storage.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HealthInfo(BaseModel):
    status: str = "ok"
    environment: str
    version: str


class StateView(BaseModel):
    """Encoded copy of the current snapshot plus bookkeeping counters."""

    state: dict[str, Any]
    commits: int = Field(ge=0)
    history: int = Field(ge=0, description="Entries retained in the history ring.")


class PendingActionView(BaseModel):
    id: str
    type: str
    payload: dict[str, Any]
    enqueued_at: float


class ConnectivityRequest(BaseModel):
    online: bool


class ReplayResult(BaseModel):
    """Outcome of a replay triggered by going online."""

    online: bool
    replayed: list[str] = Field(default_factory=list, description="Replayed action ids.")
    remaining: list[str] = Field(default_factory=list, description="Still-queued action ids.")
    error: str | None = None


class MembershipResult(BaseModel):
    video_id: str
    active: bool


class InvalidateRequest(BaseModel):
    pattern: str = Field(min_length=1)


class InvalidateResult(BaseModel):
    removed: list[str]


__all__ = [
    "ConnectivityRequest",
    "HealthInfo",
    "InvalidateRequest",
    "InvalidateResult",
    "MembershipResult",
    "PendingActionView",
    "ReplayResult",
    "StateView",
]
