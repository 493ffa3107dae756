"""
Purger Configuration

Settings for one Section purger instance, loaded from environment
variables (prefix SECTION_PURGER_) or a .env file.

The settings object is immutable. Components receive it through their
constructors rather than looking it up globally.

Example:
    SECTION_PURGER_ACCOUNT=1234
    SECTION_PURGER_APPLICATION=5678
    SECTION_PURGER_ENVIRONMENT=Production
    SECTION_PURGER_PROXY_NAME=varnish
    SECTION_PURGER_SITE_NAME=www.example.com
    SECTION_PURGER_HEADERS='[{"name": "X-Purged-By", "value": "[invalidation:type]"}]'
"""

from functools import lru_cache
from typing import List, Literal, get_args

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings


DEFAULT_TAGS_HEADER = "Section-Cache-Tags"

RequestMethod = Literal[
    "BAN", "GET", "POST", "HEAD", "PUT", "OPTIONS", "PURGE", "DELETE", "TRACE", "CONNECT",
]
REQUEST_METHODS = get_args(RequestMethod)

# Bounds on the sum of both timeouts
MIN_TOTAL_TIMEOUT = 0.4
MAX_TOTAL_TIMEOUT = 10.0


class HeaderSetting(BaseModel):
    """A custom outbound header. The value may contain tokens."""

    name: str
    value: str = ""

    class Config:
        frozen = True


class PurgerSettings(BaseSettings):
    """Configuration of a Section purger instance."""

    # Identity
    name: str = ""
    site_name: str = ""  # Restricts bans to one host on a shared proxy

    # Section API endpoint
    scheme: Literal["http", "https"] = "https"
    hostname: str = "aperture.section.io"
    port: int = Field(default=443, ge=1, le=65535)
    path: str = "/"
    account: str = "1"
    application: str = "100"
    environment: str = "Production"
    proxy_name: str = "varnish"

    # Credentials (password_key is looked up in the key repository)
    username: str = "username"
    password_key: str = "password"

    # Request
    request_method: RequestMethod = "POST"
    headers: List[HeaderSetting] = Field(default_factory=list)
    body: str = ""
    body_content_type: str = "application/json"
    tags_header: str = DEFAULT_TAGS_HEADER

    # Transport
    timeout: float = Field(default=1.0, ge=0.1, le=8.0)
    connect_timeout: float = Field(default=1.0, ge=0.1, le=4.0)
    verify: bool = True
    http_errors: bool = True

    # Capacity
    cooldown_time: float = Field(default=0.0, ge=0.0, le=3.0)
    max_requests: int = Field(default=100, ge=1, le=500)
    runtime_measurement: bool = True

    class Config:
        env_prefix = "SECTION_PURGER_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        frozen = True

    @model_validator(mode="after")
    def check_total_timeout(self) -> "PurgerSettings":
        total = self.timeout + self.connect_timeout
        if total > MAX_TOTAL_TIMEOUT:
            raise ValueError(
                f"The sum of both timeouts cannot be higher than {MAX_TOTAL_TIMEOUT} "
                f"(got {total})"
            )
        if total < MIN_TOTAL_TIMEOUT:
            raise ValueError(
                f"The sum of both timeouts cannot be lower than {MIN_TOTAL_TIMEOUT} "
                f"(got {total})"
            )
        return self

    @property
    def is_https(self) -> bool:
        return self.scheme == "https"


@lru_cache
def get_purger_settings() -> PurgerSettings:
    """Get or create cached purger settings."""
    return PurgerSettings()
