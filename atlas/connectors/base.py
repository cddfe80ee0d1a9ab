"""
Shared HTTP plumbing for the knowledge-source connectors.

Every connector is a thin async client over one REST API. Public methods
return formatted text for the model; HTTP and network failures are turned
into a short failure line by `failure_as_text` instead of being raised.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from atlas.config import settings
from atlas.errors import ConnectorHTTPError

logger = logging.getLogger(__name__)

_BODY_PREVIEW = 200


class HTTPConnector:
    """
    Base class holding the base URL, default headers and auth of one API.

    A fresh `httpx.AsyncClient` is opened per request. Each queue tick runs
    in its own event loop (`asyncio.run`), so pooled connections would not
    survive between ticks anyway.
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._auth = auth
        self._timeout = timeout or settings.http_timeout_seconds

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send one request and return the decoded JSON body."""
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        async with httpx.AsyncClient(
            headers=self._headers,
            auth=self._auth,
            timeout=self._timeout,
        ) as client:
            response = await client.request(method, url, params=params, json=json)

        if not response.is_success:
            raise ConnectorHTTPError(
                response.status_code, response.text[:_BODY_PREVIEW]
            )
        if not response.content:
            return {}
        return response.json()

    async def _get(self, path: str, **params: Any) -> Any:
        return await self._request(
            "GET", path, params={k: v for k, v in params.items() if v is not None}
        )

    async def _post(self, path: str, payload: Any) -> Any:
        return await self._request("POST", path, json=payload)


def failure_as_text(
    action: str,
) -> Callable[[Callable[..., Awaitable[str]]], Callable[..., Awaitable[str]]]:
    """
    Decorate a connector method so HTTP failures come back as text.

        @failure_as_text("Jira search")
        async def search(self, query): ...

    yields "Jira search failed (HTTP 500): <body>" on a non-2xx answer and
    "Jira search failed: <error>" when the API could not be reached.
    """

    def decorator(func: Callable[..., Awaitable[str]]) -> Callable[..., Awaitable[str]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> str:
            try:
                return await func(*args, **kwargs)
            except ConnectorHTTPError as e:
                logger.error(
                    "%s failed: HTTP %d %s", action, e.status_code, e.body[:100]
                )
                message = f"{action} failed (HTTP {e.status_code})"
                return f"{message}: {e.body}" if e.body else message
            except httpx.RequestError as e:
                logger.error("%s failed: %s", action, e)
                return f"{action} failed: {e}"

        return wrapper

    return decorator


def as_int(value: Any, default: int, minimum: int = 1, maximum: int | None = None) -> int:
    """Clamp a model-supplied number (often a float or a string) to an int."""
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return default
    number = max(minimum, number)
    return min(number, maximum) if maximum is not None else number
