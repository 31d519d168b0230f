"""Environment-backed configuration for resin-request."""

from datetime import timedelta

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TIMEOUT_MS = 30_000
TOKEN_REFRESH_INTERVAL = timedelta(hours=1)


class RequestSettings(BaseSettings):
    """Defaults applied to every request sent through a RequestClient."""

    model_config = SettingsConfigDict(env_prefix="RESIN_REQUEST_")

    base_url: str | None = None
    retries: int = Field(default=0, ge=0)
    timeout_ms: float | None = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    debug: bool = False

    # Session token settings
    token_refresh_interval: timedelta = TOKEN_REFRESH_INTERVAL
    whoami_path: str = "/whoami"

    # Delay before the first retry, multiplied by the factor for each further one
    retry_delay: float = Field(default=0.0, ge=0)
    retry_backoff_factor: float = Field(default=2.0, ge=1)

    @field_validator("token_refresh_interval", mode="before")
    @classmethod
    def _interval_seconds(cls, value: object) -> object:
        """Plain numbers, as given in the environment, are a number of seconds."""
        if isinstance(value, str):
            try:
                return timedelta(seconds=float(value))
            except (ValueError, OverflowError):
                return value
        return value


def load_settings(**overrides) -> RequestSettings:
    """Load settings from the environment, evaluated at call time."""
    return RequestSettings(**overrides)
