import httpx
import pytest

import orienteer.api.routes as routes
from orienteer.api.app import app
from orienteer.catalog.source import HuntCatalog
from orienteer.checkin.local import LocalHuntService
from orienteer.config.settings import get_settings
from orienteer.core.geo import destination_point
from orienteer.core.http import NETWORK_ERROR_MESSAGE, SERVER_ERROR_MESSAGE
from orienteer.domain.models import HuntFilter
from orienteer.errors import HuntNotFoundError, RemoteClientError, RemoteTransientError
from orienteer.progress.state_machine import ProgressStatus
from orienteer.remote.client import HuntApiClient
from orienteer.session import HuntSession

from conftest import STARTED_AT


def _settings(**api):
    settings = get_settings()
    api_settings = settings.api.model_copy(update={"base_url": "http://hunts.test", **api})
    return settings.model_copy(update={"api": api_settings})


@pytest.fixture
def served(monkeypatch, hunt):
    service = LocalHuntService([hunt], clock=lambda: STARTED_AT)
    monkeypatch.setattr(routes, "_service", lambda: service)
    return service


def _client(player_id="p1", **api):
    return HuntApiClient(_settings(**api), player_id=player_id, transport=httpx.ASGITransport(app=app))


@pytest.mark.asyncio
async def test_catalog_reads_round_trip_the_domain_model(served, hunt):
    async with _client() as client:
        assert await client.list_hunts() == [hunt]
        assert await client.list_hunts(HuntFilter(search="nothing like it")) == []
        assert await client.get_hunt(hunt.id) == hunt
        with pytest.raises(HuntNotFoundError):
            await client.get_hunt("missing")


@pytest.mark.asyncio
async def test_progress_lifecycle(served, hunt):
    async with _client() as client:
        progress = await client.start_hunt(hunt.id)
        assert progress.started_at == STARTED_AT

        result = await client.submit_check_in(hunt.id, "wp-a", hunt.waypoints[0].position)
        assert result.success
        assert result.points_earned == 10
        assert result.progress.id == progress.id
        assert result.progress.visited_waypoint_ids == {"wp-a"}

        far = destination_point(hunt.waypoints[1].position, 0.0, 500.0)
        rejected = await client.submit_check_in(hunt.id, "wp-b", far)
        assert not rejected.success
        assert "Too far" in rejected.message

        assert await client.get_progress(hunt.id) == [result.progress]
        assert await client.get_progress() == [result.progress]

        await client.abandon_hunt(hunt.id)
        assert await client.get_progress(hunt.id) == []
        assert served.progress_for("p1", hunt.id) is None


@pytest.mark.asyncio
async def test_session_plays_a_hunt_against_the_api(served, hunt):
    async with _client(player_id="remote-player") as client:
        session = HuntSession("remote-player", HuntCatalog(client), client)
        await session.start_hunt(hunt.id)
        for waypoint in hunt.waypoints:
            session.update_position(waypoint.position)
            await session.attempt_check_in()

    view = session.get_active_hunt_view()
    assert view.status == ProgressStatus.COMPLETED
    assert view.progress.earned_points == 60
    assert served.progress_for("remote-player", hunt.id).completed


def _mock_client(handler, **api):
    return HuntApiClient(_settings(**api), player_id="p1", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_requests_carry_player_and_token_headers():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    async with _mock_client(handler, token="tok") as client:
        await client.list_hunts(HuntFilter(search="old", difficulty="beginner", active_only=True))

    request = seen[0]
    assert request.headers["X-Player-Id"] == "p1"
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.headers["User-Agent"].startswith("orienteer/")
    assert request.url.params["search"] == "old"
    assert request.url.params["difficulty"] == "BEGINNER"
    assert request.url.params["active"] == "true"


@pytest.mark.asyncio
async def test_client_errors_carry_the_server_message():
    def handler(request):
        return httpx.Response(400, json={"error": "bad_request", "message": "You must start the hunt first"})

    async with _mock_client(handler) as client:
        with pytest.raises(RemoteClientError) as exc_info:
            await client.start_hunt("h1")
    assert exc_info.value.message == "You must start the hunt first"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_error_field_is_used_when_message_is_missing():
    def handler(request):
        return httpx.Response(403, json={"error": "Hunt is closed"})

    async with _mock_client(handler) as client:
        with pytest.raises(RemoteClientError, match="Hunt is closed"):
            await client.start_hunt("h1")


@pytest.mark.asyncio
async def test_server_errors_are_transient():
    def handler(request):
        return httpx.Response(503, text="upstream down")

    async with _mock_client(handler) as client:
        with pytest.raises(RemoteTransientError) as exc_info:
            await client.list_hunts()
    assert exc_info.value.message == SERVER_ERROR_MESSAGE
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_network_failures_are_transient(base):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _mock_client(handler) as client:
        with pytest.raises(RemoteTransientError, match=NETWORK_ERROR_MESSAGE):
            await client.submit_check_in("h1", "w1", base)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"not": "a list"}),
        httpx.Response(200, json=[{"id": "h1"}]),
    ],
)
async def test_malformed_payloads_are_transient(response):
    async with _mock_client(lambda request: response) as client:
        with pytest.raises(RemoteTransientError, match="Malformed"):
            await client.list_hunts()