"""Async Versionista HTTP client.

This module provides the session-holding client the scraper uses to talk
to Versionista. Every request goes through one RequestScheduler so the
upstream's concurrency and rate limits are respected and the login
session cookies are shared by all requests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from versionista_scraper.config import SchedulerConfig, Settings, get_settings
from versionista_scraper.logging import bind_request, get_logger

from .exceptions import VersionistaAuthenticationError
from .pacing.scheduler import RequestScheduler
from .schemas import RequestDescriptor
from .transport import HttpExecutor

if TYPE_CHECKING:
    from .transport import RetryPredicate

logger = get_logger(__name__)

LOGIN_PATH = "/login"


class VersionistaClient:
    """Async Versionista client with paced, retrying requests.

    Usage:
        async with VersionistaClient() as client:
            await client.log_in()
            response = await client.get("/1234/567890/")
            print(response.status_code)

    Or without context manager:
        client = VersionistaClient()
        response = await client.get("https://versionista.com/")
        await client.close()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        scheduler_config: SchedulerConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Versionista client.

        Args:
            settings: Application settings. Uses get_settings() if not provided.
            scheduler_config: Overrides settings.scheduler when provided.
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests).
        """
        self._settings = settings or get_settings()
        self._cookies = httpx.Cookies()
        self._http = httpx.AsyncClient(
            base_url=self._settings.base_url,
            headers={"User-Agent": self._settings.user_agent},
            timeout=httpx.Timeout(self._settings.request_timeout_seconds),
            # Share one jar between httpx redirect handling and the scheduler
            cookies=self._cookies.jar,
            transport=transport,
        )
        self._scheduler = RequestScheduler(
            HttpExecutor(self._http),
            scheduler_config or self._settings.scheduler,
            cookies=self._cookies,
        )
        self._logged_in = False

    @property
    def scheduler(self) -> RequestScheduler:
        """Access the request scheduler."""
        return self._scheduler

    @property
    def cookies(self) -> httpx.Cookies:
        """Session cookies shared by all requests."""
        return self._cookies

    @property
    def is_logged_in(self) -> bool:
        """Whether log_in() has succeeded on this client."""
        return self._logged_in

    async def close(self, wait: bool = True) -> None:
        """Stop the scheduler and close the underlying HTTP client.

        Args:
            wait: If True, let queued requests finish first
        """
        await self._scheduler.shutdown(wait=wait)
        await self._http.aclose()

    async def __aenter__(self) -> VersionistaClient:
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.close(wait=exc_type is None)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------
    async def request(
        self,
        method: str,
        url: str,
        *,
        priority: bool = False,
        retry_if: RetryPredicate | None = None,
        no_retry: bool = False,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
        json_data: Any = None,
        content: bytes | None = None,
        follow_redirects: bool = True,
    ) -> httpx.Response:
        """Issue a request through the scheduler.

        Args:
            method: HTTP method
            url: Absolute URL or path relative to the configured base URL
            priority: Queue ahead of pending normal requests
            retry_if: Decides whether a response should be retried
                      (default: HTTP 502-504)
            no_retry: Attempt once without retrying
            params: Query parameters
            headers: Extra headers
            data: Form body
            json_data: JSON body
            content: Raw body
            follow_redirects: Follow 3xx redirects

        Returns:
            The response

        Raises:
            RetriesExhaustedError: Response still retriable after all retries
            httpx.TransportError: Network failure
        """
        descriptor = RequestDescriptor(
            method=method,
            url=url,
            params=params,
            headers=headers,
            data=data,
            json_data=json_data,
            content=content,
            follow_redirects=follow_redirects,
        )
        bind_request(method, url).debug("Queueing request")
        return await self._scheduler.submit(
            descriptor,
            priority=priority,
            retry_if=retry_if,
            no_retry=no_retry,
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Issue a GET request through the scheduler."""
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        """Issue a POST request through the scheduler."""
        return await self.request("POST", url, **kwargs)

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------
    async def log_in(
        self,
        email: str | None = None,
        password: str | None = None,
    ) -> httpx.Response:
        """Log in to Versionista, storing the session cookies.

        A successful login answers with a redirect; a re-rendered login
        form (or an error status) means the credentials were rejected.

        Args:
            email: Account e-mail. Uses VERSIONISTA_EMAIL if not provided.
            password: Account password. Uses VERSIONISTA_PASSWORD if not provided.

        Returns:
            The login response

        Raises:
            VersionistaAuthenticationError: If credentials are missing or rejected
        """
        email = email or self._settings.versionista_email
        password = password or self._settings.versionista_password
        if not email or not password:
            raise VersionistaAuthenticationError(
                "Versionista credentials required. "
                "Set VERSIONISTA_EMAIL and VERSIONISTA_PASSWORD environment variables."
            )

        response = await self.post(
            LOGIN_PATH,
            data={"em": email, "pw": password},
            priority=True,
            follow_redirects=False,
        )
        if not response.is_redirect:
            raise VersionistaAuthenticationError(
                f"Versionista login rejected for {email} (HTTP {response.status_code})"
            )

        self._logged_in = True
        logger.info("Logged in to Versionista as {}", email)
        return response

    def get_stats(self) -> dict[str, Any]:
        """Get client and scheduler statistics."""
        return {
            **self._scheduler.get_stats(),
            "logged_in": self._logged_in,
            "cookies": len(self._cookies.jar),
        }
