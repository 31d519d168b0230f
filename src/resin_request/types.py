"""Request and response types shared across the request pipeline."""

from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class RequestDescriptor(BaseModel):
    """
    Generic description of an HTTP request.

    Fields accept both their Python names and the camelCase names used by
    existing API clients (``baseUrl``, ``apiKey``, ``refreshToken`` ...).
    Unknown options are kept so that unsupported legacy options can be
    reported by name instead of being silently ignored.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    url: str = Field(validation_alias=AliasChoices("url", "uri"))
    method: str = "GET"
    base_url: str | None = Field(default=None, validation_alias=AliasChoices("base_url", "baseUrl"))
    query_params: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("query_params", "queryParams", "qs")
    )
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    json_: bool = Field(default=True, validation_alias=AliasChoices("json_", "json"))
    timeout_ms: float | None = Field(
        default=None, gt=0, validation_alias=AliasChoices("timeout_ms", "timeoutMs", "timeout")
    )
    retries: int | None = Field(default=None, ge=0)
    api_key: str | None = Field(default=None, validation_alias=AliasChoices("api_key", "apiKey"))
    refresh_token: bool = Field(default=True, validation_alias=AliasChoices("refresh_token", "refreshToken"))
    follow_redirect: bool = Field(default=True, validation_alias=AliasChoices("follow_redirect", "followRedirect"))
    gzip: bool | None = None
    strict_ssl: bool | None = Field(default=None, validation_alias=AliasChoices("strict_ssl", "strictSSL"))

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def field_names(cls, options: dict[str, Any]) -> dict[str, Any]:
        """Rename aliased option keys to field names. Unknown keys are kept as they are."""
        names: dict[str, str] = {}
        for name, info in cls.model_fields.items():
            names[name] = name
            if isinstance(info.validation_alias, AliasChoices):
                for choice in info.validation_alias.choices:
                    if isinstance(choice, str):
                        names[choice] = name
        return {names.get(key, key): value for key, value in options.items()}

    def merge(self, options: dict[str, Any]) -> "RequestDescriptor":
        """Validate a new descriptor with ``options`` overriding this one's fields."""
        return type(self)(**{**self.model_dump(), **self.field_names(options)})

    @property
    def extra_options(self) -> dict[str, Any]:
        """Options that do not map to a known field."""
        return dict(self.model_extra or {})


@dataclass
class RequestEcho:
    """The request as it was handed to the transport."""

    headers: httpx.Headers
    url: httpx.URL


@dataclass
class ResponseEnvelope:
    """A completed HTTP exchange with its decoded body."""

    status_code: int
    headers: httpx.Headers
    body: Any
    duration_ms: float
    request: RequestEcho
    url: str = ""

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


@dataclass(frozen=True)
class ResponseLength:
    """Declared response length, before and after transfer compression."""

    uncompressed: int | None = None
    compressed: int | None = None


@dataclass
class TransportResponse:
    """Raw result of a single transport call."""

    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    content: bytes = b""
    url: str = ""
