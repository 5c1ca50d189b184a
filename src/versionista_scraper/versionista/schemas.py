"""Request descriptors passed through the scheduler."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RequestDescriptor(BaseModel):
    """Parameters for a single HTTP request.

    The scheduler never looks inside a descriptor; it only hands it to the
    HTTP execution primitive.
    """

    model_config = ConfigDict(frozen=True)

    method: str = Field(default="GET", description="HTTP method")
    url: str = Field(description="Absolute URL, or path relative to the client base URL")
    params: dict[str, Any] | None = Field(default=None, description="Query parameters")
    headers: dict[str, str] | None = Field(default=None, description="Extra request headers")
    data: dict[str, Any] | None = Field(default=None, description="Form-encoded body")
    json_data: Any = Field(default=None, description="JSON body")
    content: bytes | None = Field(default=None, description="Raw body")
    follow_redirects: bool = Field(default=True, description="Follow 3xx redirects")

    def __str__(self) -> str:
        return f"{self.method.upper()} {self.url}"
