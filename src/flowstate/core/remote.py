"""
Remote dispatcher: the request/response contract to the backing service.

The engine only needs ``await dispatcher.call(action_type, payload)``, which
returns the decoded response on success and raises :class:`RemoteCallError`
on failure. It is used both for immediate domain calls (optimistic toggles,
feed fetches) and for replaying queued offline actions.

:class:`HttpRemoteDispatcher` implements it over ``httpx.AsyncClient`` with a
small route table:

==============  ======  ===========================  ==========
action type     method  path                         body keys
==============  ======  ===========================  ==========
``like``        PATCH   ``/videos/{video_id}/like``  ``liked``
``save``        PATCH   ``/videos/{video_id}/save``  ``saved``
``list_videos`` GET     ``/videos``
==============  ======  ===========================  ==========
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, Field, ValidationError

from flowstate.core.errors import RemoteCallError
from flowstate.core.settings import Settings, get_logger

logger = get_logger(__name__)


@runtime_checkable
class RemoteDispatcher(Protocol):
    """Anything that can deliver a typed action to the remote service."""

    async def call(self, action_type: str, payload: Mapping[str, Any]) -> Any: ...


@dataclass(frozen=True, slots=True)
class Route:
    """HTTP mapping of one action type."""

    method: str
    path: str
    body: tuple[str, ...] = ()


DEFAULT_ROUTES: dict[str, Route] = {
    "like": Route("PATCH", "/videos/{video_id}/like", ("liked",)),
    "save": Route("PATCH", "/videos/{video_id}/save", ("saved",)),
    "list_videos": Route("GET", "/videos"),
}


class _FeedData(BaseModel):
    videos: list[dict[str, Any]] = Field(default_factory=list)


class VideoFeedResponse(BaseModel):
    """Body of a ``list_videos`` response: ``{"data": {"videos": [...]}}``."""

    data: _FeedData = Field(default_factory=_FeedData)


def parse_video_feed(response: Any) -> dict[str, Any]:
    """
    Key the records of a ``list_videos`` response by their id.

    An empty body yields an empty feed. A malformed body (``data`` null, a
    JSON array, a record without ``id``) raises :class:`RemoteCallError`.
    """
    if response is None:
        return {}
    try:
        feed = VideoFeedResponse.model_validate(response)
        return {str(video["id"]): video for video in feed.data.videos}
    except (ValidationError, KeyError) as exc:
        raise RemoteCallError(
            "malformed list_videos response", action_type="list_videos"
        ) from exc


class HttpRemoteDispatcher:
    """Deliver actions as JSON HTTP requests."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        routes: Mapping[str, Route] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._routes: dict[str, Route] = dict(DEFAULT_ROUTES if routes is None else routes)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpRemoteDispatcher:
        """Construct a dispatcher for ``settings.api_base_url``."""
        return cls(settings.api_base_url, timeout=settings.api_timeout)

    def register(self, action_type: str, route: Route) -> None:
        """Add or replace the route for ``action_type``."""
        self._routes[action_type] = route

    @property
    def routes(self) -> Mapping[str, Route]:
        return dict(self._routes)

    async def call(self, action_type: str, payload: Mapping[str, Any]) -> Any:
        """
        Send ``payload`` for ``action_type`` and return the decoded JSON body.

        Raises
        ------
        RemoteCallError
            Unknown action type, missing path parameter, transport failure or
            a non-2xx response.
        """
        route = self._routes.get(action_type)
        if route is None:
            raise RemoteCallError(f"no route for action '{action_type}'", action_type=action_type)
        try:
            path = route.path.format(**payload)
        except KeyError as exc:
            raise RemoteCallError(
                f"payload for '{action_type}' is missing {exc}", action_type=action_type
            ) from exc

        body = {key: payload[key] for key in route.body if key in payload} if route.body else None

        try:
            response = await self._client.request(route.method, path, json=body)
        except httpx.HTTPError as exc:
            raise RemoteCallError(
                f"{route.method} {path} failed: {exc}", action_type=action_type
            ) from exc

        if response.is_error:
            raise RemoteCallError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                action_type=action_type,
                status_code=response.status_code,
            )

        logger.debug("%s %s -> %s", route.method, path, response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteCallError(
                f"{route.method} {path} returned invalid JSON", action_type=action_type
            ) from exc

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this dispatcher created it."""
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "DEFAULT_ROUTES",
    "HttpRemoteDispatcher",
    "RemoteDispatcher",
    "Route",
    "VideoFeedResponse",
    "parse_video_feed",
]
