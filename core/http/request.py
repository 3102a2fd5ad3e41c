"""
JSON GET helper shared by the routing and weather providers.

Both providers answer with a single JSON object; anything else (an HTML
error page from a proxy, a bare list, a rate limit) is mapped to
ExternalServiceError so callers handle one failure type.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from core.exceptions import ExternalServiceException

logger = logging.getLogger(__name__)


async def get_json_object(
    url: str,
    *,
    session: Any,
    params: dict[str, Any] | None = None,
    service_name: str = "Service",
    timeout: aiohttp.ClientTimeout | None = None,
) -> dict[str, Any]:
    """GET ``url`` and return its JSON body, which must be an object."""
    request_kwargs: dict[str, Any] = {"params": params}
    if timeout is not None:
        request_kwargs["timeout"] = timeout

    async with session.get(url, **request_kwargs) as response:
        response_url = str(getattr(response, "url", url))
        if response.status == 429:
            msg = f"{service_name} error: 429"
            raise ExternalServiceException(
                msg,
                {
                    "status": 429,
                    "retry_after": int(response.headers.get("Retry-After", 5)),
                    "url": response_url,
                },
            )
        if response.status != 200:
            body = await response.text()
            msg = f"{service_name} error: {response.status}"
            raise ExternalServiceException(
                msg,
                {"status": response.status, "body": body[:500], "url": response_url},
            )
        try:
            data = await response.json()
        except aiohttp.ContentTypeError as exc:
            msg = f"{service_name} error: response is not JSON"
            raise ExternalServiceException(msg, {"url": response_url}) from exc

    if not isinstance(data, dict):
        msg = f"{service_name} error: unexpected response"
        raise ExternalServiceException(msg, {"url": response_url})
    logger.debug("%s responded for %s", service_name, url)
    return data
