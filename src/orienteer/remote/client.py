"""
Async client for the hunt server.

`HuntApiClient` is a `HuntSource` (catalog reads) and a `HuntBackend` (start, abandon,
check-in), so a `HuntSession` can run against a real server the same way it runs
against `LocalHuntBackend`. Every failure surfaces as a `RemoteError` subclass.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from orienteer.config.settings import Settings, get_settings
from orienteer.core.geo import GeoPoint
from orienteer.core.http import build_client, request_json
from orienteer.domain.models import CheckInResult, Hunt, HuntFilter, Progress
from orienteer.errors import HuntNotFoundError, RemoteClientError, RemoteTransientError
from orienteer.remote.dto import CheckInRequest, CheckInResponse, HuntDto, ProgressDto

logger = logging.getLogger(__name__)

PLAYER_HEADER = "X-Player-Id"


class HuntApiClient:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        player_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = settings or get_settings()
        headers = {PLAYER_HEADER: player_id} if player_id else None
        self._client = build_client(
            settings.api.base_url,
            timeout_seconds=settings.api.timeout_seconds,
            token=settings.api.token,
            headers=headers,
            user_agent=settings.api.user_agent,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HuntApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        logger.debug("%s %s", method, url)
        return await request_json(self._client, method, url, **kwargs)

    async def list_hunts(self, hunt_filter: HuntFilter | None = None) -> list[Hunt]:
        params: dict[str, Any] = {}
        if hunt_filter is not None:
            if hunt_filter.search:
                params["search"] = hunt_filter.search
            if hunt_filter.difficulty is not None:
                params["difficulty"] = hunt_filter.difficulty.value
            if hunt_filter.active_only:
                params["active"] = "true"
        body = await self._request("GET", "/api/hunts", params=params or None)
        hunts = [_parse(HuntDto, item) for item in _as_list(body)]
        # The server may ignore some filter params; apply the filter locally as well.
        if hunt_filter is not None:
            hunts = [h for h in hunts if hunt_filter.matches(h)]
        return hunts

    async def get_hunt(self, hunt_id: str) -> Hunt:
        try:
            body = await self._request("GET", f"/api/hunts/{hunt_id}")
        except RemoteClientError as exc:
            if exc.status_code == 404:
                raise HuntNotFoundError(hunt_id) from exc
            raise
        return _parse(HuntDto, body)

    async def start_hunt(self, hunt_id: str) -> Progress:
        body = await self._request("POST", f"/api/hunts/{hunt_id}/start")
        return _parse(ProgressDto, body)

    async def get_progress(self, hunt_id: str | None = None) -> list[Progress]:
        """All of the player's attempts, or only those on `hunt_id`."""
        url = "/api/progress" if hunt_id is None else f"/api/progress/{hunt_id}"
        try:
            body = await self._request("GET", url)
        except RemoteClientError as exc:
            if hunt_id is not None and exc.status_code == 404:
                return []
            raise
        if isinstance(body, dict):
            body = [body]
        return [_parse(ProgressDto, item) for item in _as_list(body)]

    async def abandon_hunt(self, hunt_id: str) -> None:
        await self._request("DELETE", f"/api/progress/{hunt_id}")

    async def submit_check_in(self, hunt_id: str, waypoint_id: str, position: GeoPoint) -> CheckInResult:
        payload = CheckInRequest(
            latitude=position.latitude,
            longitude=position.longitude,
            waypoint_id=waypoint_id,
        )
        body = await self._request(
            "POST",
            f"/api/progress/{hunt_id}/checkin",
            json=payload.model_dump(exclude_none=True),
        )
        if body is None:
            raise RemoteTransientError("Empty check-in response from server")
        return _parse(CheckInResponse, body)


def _as_list(body: Any) -> list:
    if body is None:
        return []
    if not isinstance(body, list):
        raise RemoteTransientError("Malformed response from server")
    return body


def _parse(model: type[BaseModel], body: Any):
    """Validate `body` as `model` and map it to its domain object."""
    try:
        return model.model_validate(body).to_domain()
    except ValidationError as exc:
        raise RemoteTransientError("Malformed response from server") from exc
