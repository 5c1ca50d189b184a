"""Tests for VersionistaClient."""

import asyncio
from collections.abc import Callable
from urllib.parse import parse_qs

import httpx
import pytest

from versionista_scraper.config import DEFAULT_USER_AGENT, Settings
from versionista_scraper.versionista.client import LOGIN_PATH, VersionistaClient
from versionista_scraper.versionista.exceptions import (
    RetriesExhaustedError,
    SchedulerClosedError,
    VersionistaAuthenticationError,
)
from tests.fakes import TEST_BASE_URL, fast_config

Handler = Callable[[httpx.Request], httpx.Response]


def _client(settings: Settings, handler: Handler, **kwargs) -> VersionistaClient:
    return VersionistaClient(settings, transport=httpx.MockTransport(handler), **kwargs)


def _login_handler(requests: list[httpx.Request], *, accept: bool = True) -> Handler:
    """Versionista stand-in: login redirects and sets a session cookie."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == LOGIN_PATH:
            if not accept:
                return httpx.Response(200, text="<form>Invalid login</form>")
            return httpx.Response(
                302,
                headers={"Location": "/home", "Set-Cookie": "session=s3cret; Path=/"},
            )
        return httpx.Response(200, text="ok")

    return handler


class TestVersionistaClientInit:
    """Tests for client construction."""

    def test_uses_settings_scheduler_config(self, settings: Settings) -> None:
        client = VersionistaClient(settings)

        assert client.scheduler.config == settings.scheduler
        assert client.is_logged_in is False

    def test_scheduler_config_override(self, settings: Settings) -> None:
        config = fast_config(max_concurrent_requests=1)
        client = VersionistaClient(settings, scheduler_config=config)

        assert client.scheduler.config is config

    def test_scheduler_shares_client_cookies(self, settings: Settings) -> None:
        client = VersionistaClient(settings)

        assert client.scheduler.cookies is client.cookies

    def test_clients_have_independent_sessions(self, settings: Settings) -> None:
        first = VersionistaClient(settings)
        second = VersionistaClient(settings)

        first.cookies.set("session", "one")

        assert second.cookies.get("session") is None


class TestRequests:
    """Tests for request issuing."""

    @pytest.mark.asyncio
    async def test_relative_url_uses_base_url(self, settings: Settings) -> None:
        requests: list[httpx.Request] = []

        async with _client(settings, _login_handler(requests)) as client:
            response = await client.get("/1234/")

        assert response.status_code == 200
        assert str(requests[0].url) == f"{TEST_BASE_URL}/1234/"

    @pytest.mark.asyncio
    async def test_sends_user_agent(self, settings: Settings) -> None:
        requests: list[httpx.Request] = []

        async with _client(settings, _login_handler(requests)) as client:
            await client.get("/")

        assert requests[0].headers["User-Agent"] == DEFAULT_USER_AGENT

    @pytest.mark.asyncio
    async def test_retries_gateway_errors(self, settings: Settings) -> None:
        statuses = iter([503, 504, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(next(statuses))

        async with _client(settings, handler) as client:
            response = await client.get("/flaky")
            stats = client.get_stats()

        assert response.status_code == 200
        assert stats["total_retries"] == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        async with _client(settings, handler) as client:
            with pytest.raises(RetriesExhaustedError) as exc_info:
                await client.get("/down")

        assert exc_info.value.attempts == settings.scheduler.max_retries + 1
        assert "GET" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_post_with_custom_retry(self, settings: Settings) -> None:
        statuses = iter([429, 200])
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            return httpx.Response(next(statuses))

        async with _client(settings, handler) as client:
            response = await client.post(
                "/api",
                json_data={"x": 1},
                retry_if=lambda r: r.status_code == 429,
            )

        assert response.status_code == 200
        assert methods == ["POST", "POST"]

    @pytest.mark.asyncio
    async def test_concurrency_limit_applies(self, settings: Settings) -> None:
        active = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.005)
            active -= 1
            return httpx.Response(200)

        config = fast_config(max_concurrent_requests=2)
        async with VersionistaClient(
            settings,
            scheduler_config=config,
            transport=httpx.MockTransport(handler),
        ) as client:
            await asyncio.gather(*(client.get(f"/{i}") for i in range(6)))

        assert peak == 2


class TestLogIn:
    """Tests for the login flow."""

    @pytest.mark.asyncio
    async def test_log_in_posts_credentials(self, settings: Settings) -> None:
        requests: list[httpx.Request] = []

        async with _client(settings, _login_handler(requests)) as client:
            response = await client.log_in()

            assert response.status_code == 302
            assert client.is_logged_in is True
            assert client.cookies.get("session") == "s3cret"

        login = requests[0]
        assert login.method == "POST"
        assert login.url.path == LOGIN_PATH
        assert parse_qs(login.content.decode()) == {
            "em": ["scraper@example.org"],
            "pw": ["hunter2"],
        }

    @pytest.mark.asyncio
    async def test_session_cookie_sent_after_login(self, settings: Settings) -> None:
        requests: list[httpx.Request] = []

        async with _client(settings, _login_handler(requests)) as client:
            await client.log_in()
            await client.get("/1234/")

        assert requests[-1].headers.get("Cookie") == "session=s3cret"

    @pytest.mark.asyncio
    async def test_explicit_credentials(self, settings: Settings) -> None:
        requests: list[httpx.Request] = []

        async with _client(settings, _login_handler(requests)) as client:
            await client.log_in("other@example.org", "pw")

        assert parse_qs(requests[0].content.decode())["em"] == ["other@example.org"]

    @pytest.mark.asyncio
    async def test_rejected_login(self, settings: Settings) -> None:
        requests: list[httpx.Request] = []

        async with _client(settings, _login_handler(requests, accept=False)) as client:
            with pytest.raises(VersionistaAuthenticationError, match="rejected"):
                await client.log_in()

            assert client.is_logged_in is False

    @pytest.mark.asyncio
    async def test_missing_credentials(self, settings: Settings) -> None:
        no_credentials = settings.model_copy(
            update={"versionista_email": "", "versionista_password": ""}
        )
        requests: list[httpx.Request] = []

        async with _client(no_credentials, _login_handler(requests)) as client:
            with pytest.raises(VersionistaAuthenticationError, match="credentials required"):
                await client.log_in()

        assert requests == []


class TestLifecycle:
    """Tests for close and context manager behavior."""

    @pytest.mark.asyncio
    async def test_requests_after_close_rejected(self, settings: Settings) -> None:
        requests: list[httpx.Request] = []
        client = _client(settings, _login_handler(requests))

        await client.get("/")
        await client.close()

        with pytest.raises(SchedulerClosedError):
            await client.get("/later")

    @pytest.mark.asyncio
    async def test_get_stats(self, settings: Settings) -> None:
        requests: list[httpx.Request] = []

        async with _client(settings, _login_handler(requests)) as client:
            await client.log_in()
            stats = client.get_stats()

        assert stats["logged_in"] is True
        assert stats["cookies"] == 1
        assert stats["total_completed"] == 1
