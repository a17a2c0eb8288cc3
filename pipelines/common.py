"""Shared utilities for retrieving external case-data payloads."""

from __future__ import annotations

from typing import Any, Mapping, MutableMapping

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

DEFAULT_TIMEOUT_SECONDS = 10.0
_DEFAULT_WAIT = wait_exponential(min=1, max=16)
_DEFAULT_STOP = stop_after_attempt(3)
_RETRYABLE = retry_if_exception_type(httpx.TransportError)


Headers = Mapping[str, str] | None
Params = Mapping[str, Any] | None
Data = MutableMapping[str, Any] | bytes | str | None


async def _request(
    url: str,
    *,
    headers: Headers,
    params: Params,
    method: str,
    data: Data,
    timeout: float,
) -> httpx.Response:
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        response = await client.request(
            method.upper(),
            url,
            headers=headers,
            params=params,
            data=data,
        )
    response.raise_for_status()
    return response


@retry(wait=_DEFAULT_WAIT, stop=_DEFAULT_STOP, retry=_RETRYABLE, reraise=True)
async def fetch_json(
    url: str,
    *,
    headers: Headers = None,
    params: Params = None,
    method: str = "GET",
    data: Data = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """Execute an HTTP request and return the decoded JSON payload.

    Transport failures (connect errors, timeouts) are retried with exponential
    backoff; HTTP status errors surface immediately to the caller.
    """

    response = await _request(
        url, headers=headers, params=params, method=method, data=data, timeout=timeout
    )
    return response.json()


@retry(wait=_DEFAULT_WAIT, stop=_DEFAULT_STOP, retry=_RETRYABLE, reraise=True)
async def fetch_text(
    url: str,
    *,
    headers: Headers = None,
    params: Params = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    encoding: str | None = "utf-8",
) -> str:
    """Execute a GET request and return the body as text (CSV downloads)."""

    response = await _request(
        url, headers=headers, params=params, method="GET", data=None, timeout=timeout
    )
    if encoding:
        response.encoding = encoding
    return response.text


def user_agent_headers(user_agent: str | None) -> dict[str, str]:
    return {"User-Agent": user_agent} if user_agent else {}


__all__ = ["fetch_json", "fetch_text", "user_agent_headers", "DEFAULT_TIMEOUT_SECONDS"]
