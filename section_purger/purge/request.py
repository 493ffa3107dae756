"""
Purge Request Builder

Assembles the outbound request for the Section proxy state API:

    {scheme}://{host}:{port}{path}api/v1/account/{account}/application/{application}
        /environment/{environment}/proxy/{proxy}/state?banExpression=<expression>

The ban expression travels as the last query value; the body is unused.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from section_purger import __version__
from section_purger.purge.config import PurgerSettings
from section_purger.purge.expressions import BanExpression
from section_purger.purge.hashing import TagDigest
from section_purger.purge.invalidation import InvalidationLike
from section_purger.purge.tokens import InvalidationTokens, KeyRepository, TokenReplacer


USER_AGENT = f"section-purger/{__version__}"

URI_TEMPLATE = (
    "{scheme}://{host}:{port}{path}api/v1/account/{account}/application/{application}"
    "/environment/{environment}/proxy/{proxy}/state?banExpression="
)


@dataclass
class PurgeRequest:
    """A fully specified request, waiting for its ban expression."""

    method: str
    uri: str
    headers: Dict[str, str] = field(default_factory=dict)
    auth: Optional[Tuple[str, str]] = None
    timeout: float = 1.0
    connect_timeout: float = 1.0
    verify: Optional[bool] = None  # Only set for https
    http_errors: bool = True

    def url_for(self, expression: BanExpression) -> str:
        """URI with the percent-encoded expression appended."""
        return self.uri + expression.quoted()

    def options(self) -> Dict[str, Any]:
        """Transport options safe for logging (no password, no headers)."""
        options: Dict[str, Any] = {
            "http_errors": self.http_errors,
            "connect_timeout": self.connect_timeout,
            "timeout": self.timeout,
        }
        if self.auth:
            options["auth_user"] = self.auth[0]
        if self.verify is not None:
            options["verify"] = self.verify
        return options


class RequestBuilder:
    """
    Builds PurgeRequest objects from purger settings.

    Token data passed to the token service is {"invalidation": invalidation},
    so paths and header values may reference the invalidation being sent.
    """

    def __init__(
        self,
        settings: PurgerSettings,
        keys: KeyRepository,
        tokens: Optional[TokenReplacer] = None,
    ):
        self.settings = settings
        self.keys = keys
        self.tokens = tokens or InvalidationTokens()

    def uri(self, token_data: Dict[str, Any]) -> str:
        s = self.settings
        return URI_TEMPLATE.format(
            scheme=s.scheme,
            host=s.hostname,
            port=s.port,
            path=self.tokens.replace(s.path, token_data),
            account=s.account,
            application=s.application,
            environment=s.environment,
            proxy=s.proxy_name,
        )

    def headers(self, token_data: Dict[str, Any], digest: Optional[TagDigest] = None) -> Dict[str, str]:
        headers = {
            "content-type": "application/json",
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if self.settings.body:
            headers["content-type"] = self.settings.body_content_type

        for header in self.settings.headers:
            # Header names are case-insensitive, lowercase them to avoid doubles
            headers[header.name.lower()] = self.tokens.replace(header.value, token_data)

        if digest is not None:
            headers[self.settings.tags_header.lower()] = str(digest)

        return headers

    def auth(self) -> Tuple[str, str]:
        """
        Basic auth credentials.

        Raises:
            ConfigurationError: When the password key cannot be resolved
        """
        return (self.settings.username, self.keys.get_key_value(self.settings.password_key))

    def build(self, invalidation: InvalidationLike, digest: Optional[TagDigest] = None) -> PurgeRequest:
        """Build the request for one invalidation (or the lead of a batch)."""
        token_data = {"invalidation": invalidation}
        s = self.settings
        return PurgeRequest(
            method=s.request_method,
            uri=self.uri(token_data),
            headers=self.headers(token_data, digest=digest),
            auth=self.auth(),
            timeout=s.timeout,
            connect_timeout=s.connect_timeout,
            verify=bool(s.verify) if s.is_https else None,
            http_errors=s.http_errors,
        )
