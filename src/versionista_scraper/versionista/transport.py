"""HTTP execution primitive used by the request scheduler.

The scheduler knows nothing about httpx clients. It only calls an
``Executor``: an async callable that issues one request described by a
``RequestDescriptor`` with a given cookie jar and returns the response,
or raises a transport error.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import httpx

from versionista_scraper.logging import get_logger

from .schemas import RequestDescriptor

logger = get_logger(__name__)

Executor = Callable[[RequestDescriptor, httpx.Cookies], Awaitable[httpx.Response]]
RetryPredicate = Callable[[httpx.Response], bool]

GATEWAY_ERROR_STATUSES = frozenset({502, 503, 504})


def retry_on_gateway_error(response: httpx.Response) -> bool:
    """Default retry predicate: retry on 502, 503 and 504 responses."""
    return response.status_code in GATEWAY_ERROR_STATUSES


def is_connection_reset(error: BaseException) -> bool:
    """Check whether an error means the peer reset the connection.

    httpx wraps socket errors, so the cause/context chain is searched for a
    ``ConnectionResetError``. A ``RemoteProtocolError`` (server disconnected
    without a response) counts as a reset too.
    """
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        if isinstance(current, ConnectionResetError | httpx.RemoteProtocolError):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


class HttpExecutor:
    """Executes request descriptors with an ``httpx.AsyncClient``.

    Cookies come from the jar passed on each call, and every Set-Cookie
    header seen (including those on redirect hops) is written back to it.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def __call__(
        self,
        descriptor: RequestDescriptor,
        cookies: httpx.Cookies,
    ) -> httpx.Response:
        request = self._http.build_request(
            descriptor.method.upper(),
            descriptor.url,
            params=descriptor.params,
            headers=descriptor.headers,
            data=descriptor.data,
            json=descriptor.json_data,
            content=descriptor.content,
            cookies=cookies,
        )
        response = await self._http.send(request, follow_redirects=descriptor.follow_redirects)

        for hop in (*response.history, response):
            cookies.extract_cookies(hop)

        logger.debug(
            "{} {} -> {}",
            request.method,
            request.url,
            response.status_code,
        )
        return response
