from __future__ import annotations

from typing import Any

import httpx

from listing_pipeline.core.exceptions import CollaboratorError


def build_client(timeout: float) -> httpx.AsyncClient:
    """Shared client for every collaborator; the timeout bounds each request."""
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True)


async def send_request(client: httpx.AsyncClient, service: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """Send one request and turn any transport or HTTP error into ``CollaboratorError``."""
    try:
        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
    except httpx.TimeoutException as exc:
        raise CollaboratorError(service, f"request timed out ({exc.__class__.__name__})") from exc
    except httpx.HTTPStatusError as exc:
        raise CollaboratorError(
            service,
            f"{exc.response.status_code} {_describe(exc.response)}",
            status_code=exc.response.status_code,
        ) from exc
    except httpx.HTTPError as exc:
        raise CollaboratorError(service, str(exc) or exc.__class__.__name__) from exc
    return response


def read_json(response: httpx.Response, service: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise CollaboratorError(service, "response was not valid JSON") from exc


def _describe(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(body.get("error_description") or error)
    return str(body)[:500]
