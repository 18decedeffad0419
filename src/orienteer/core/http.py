"""
HTTP helpers.

This module centralizes the small amount of HTTP logic the remote hunt client needs.

Design goals:
- Small surface area (one JSON request helper + a client factory).
- Deterministic defaults (timeout + User-Agent).
- Map every failure onto the engine's error taxonomy so callers never see raw httpx
  exceptions: 4xx -> `RemoteClientError` (with the server's message), 5xx and
  transport problems -> `RemoteTransientError`.
"""

from __future__ import annotations

from typing import Any

import httpx

from orienteer.errors import RemoteClientError, RemoteTransientError


DEFAULT_USER_AGENT = "orienteer/0.1.0"
SERVER_ERROR_MESSAGE = "Server error. Please try again."
NETWORK_ERROR_MESSAGE = "Network error. Check your connection."


def build_client(
    base_url: str,
    *,
    timeout_seconds: float = 15,
    token: str | None = None,
    headers: dict[str, str] | None = None,
    user_agent: str = DEFAULT_USER_AGENT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an `httpx.AsyncClient` with our defaults (caller owns and closes it)."""
    request_headers = {"User-Agent": user_agent, "Accept": "application/json"}
    if token:
        request_headers["Authorization"] = f"Bearer {token}"
    if headers:
        request_headers.update(headers)
    return httpx.AsyncClient(
        base_url=base_url,
        headers=request_headers,
        timeout=timeout_seconds,
        transport=transport,
    )


def _error_message(resp: httpx.Response) -> str:
    """Extract `message` (or `error`) from a JSON error body, else the raw text."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value
    text = resp.text.strip()
    return text or f"Request failed ({resp.status_code})"


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    json: Any = None,
) -> Any:
    """Send a request and return the decoded JSON body (None for empty bodies).

    Raises:
        RemoteClientError: On 4xx responses.
        RemoteTransientError: On 5xx responses, timeouts, transport errors or bodies
            that are not valid JSON.
    """
    try:
        resp = await client.request(method, url, params=params, json=json)
    except httpx.HTTPError as exc:
        raise RemoteTransientError(NETWORK_ERROR_MESSAGE) from exc

    if 400 <= resp.status_code < 500:
        raise RemoteClientError(_error_message(resp), status_code=resp.status_code)
    if resp.status_code >= 500:
        raise RemoteTransientError(SERVER_ERROR_MESSAGE, status_code=resp.status_code)

    if resp.status_code == 204 or not resp.content:
        return None
    try:
        return resp.json()
    except ValueError as exc:
        raise RemoteTransientError("Malformed response from server", status_code=resp.status_code) from exc
