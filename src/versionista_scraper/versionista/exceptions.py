"""Versionista client exceptions."""

import httpx


class VersionistaClientError(Exception):
    """Base exception for Versionista client errors."""

    pass


class VersionistaAuthenticationError(VersionistaClientError):
    """Raised when credentials are missing or the login is rejected."""

    pass


class RetriesExhaustedError(VersionistaClientError):
    """Raised when a retriable response is still unsatisfactory after all retries.

    The last response received is kept so callers can inspect it.
    """

    def __init__(self, target: str, response: httpx.Response, attempts: int) -> None:
        super().__init__(
            f"{target} failed with HTTP {response.status_code} after {attempts} attempt(s)"
        )
        self.target = target
        self.response = response
        self.attempts = attempts

    @property
    def status_code(self) -> int:
        """HTTP status of the last response."""
        return self.response.status_code


class SchedulerClosedError(VersionistaClientError):
    """Raised for requests still pending when the scheduler shuts down."""

    pass
