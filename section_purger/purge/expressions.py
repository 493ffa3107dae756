"""
Ban Expression Compiler

Translates invalidation instructions into Varnish ban expressions for the
Section proxy state API. Compilation is pure: the same input always yields
the same expression and nothing is sent anywhere.

Expression shapes:
- tag:        obj.http.Section-Cache-Tags ~ "(node:1|node:2)+"
- bundled:    obj.http.Section-Cache-Tags ~ "(<hash>|<hash>)+"
- url:        req.http.X-Forwarded-Proto == "https" && req.http.host == "example.com" && req.url ~ "^/news/.*$"
- path:       req.url ~ "^/news/.*$"
- domain:     req.http.host == "example.com"
- regex/raw:  passed through unchanged
- everything: obj.status != 0

Untrusted input is escaped before it is placed inside a ban regex. The only
character with a meaning of its own is "*", which matches any sequence.
When a site name is configured, a host clause restricts the ban to that site
(except for regex, raw and bundled tag bans).
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence
from urllib.parse import quote_plus

from section_purger.purge.config import DEFAULT_TAGS_HEADER
from section_purger.purge.errors import InvalidExpressionError
from section_purger.purge.hashing import TagDigest
from section_purger.purge.invalidation import InvalidationType, parse_absolute_url


EVERYTHING_EXPRESSION = "obj.status != 0"

# Regex metacharacters escaped in user input. "*" is deliberately absent and
# is translated to ".*" after escaping. '"' would end the ban string literal.
_METACHARACTERS = re.compile(r'([\[\]{}()+?.,\\^$|#"])')


def escape_ban_pattern(value: str) -> str:
    """Escape regex metacharacters, then turn "*" into "match anything"."""
    escaped = _METACHARACTERS.sub(r"\\\1", value)
    return escaped.replace("*", ".*")


@dataclass(frozen=True)
class BanExpression:
    """A single ban expression in the proxy's ban language."""

    value: str

    def __str__(self) -> str:
        return self.value

    def quoted(self) -> str:
        """Percent-encoded form, safe to use as a URL query value."""
        return quote_plus(self.value, safe="")


class ExpressionCompiler:
    """
    Compiles invalidation expressions into ban expressions.

    Usage:
        compiler = ExpressionCompiler(site_name="www.example.com")
        compiler.compile(InvalidationType.PATH, "/news/*")
        # req.url ~ "^/news/.*$" && req.http.host == "www.example.com"
    """

    def __init__(
        self,
        site_name: Optional[str] = None,
        tags_header: str = DEFAULT_TAGS_HEADER,
    ):
        self.site_name = site_name or ""
        self.tags_header = tags_header
        self._compilers: Dict[InvalidationType, Callable[[Optional[str]], BanExpression]] = {
            InvalidationType.TAG: lambda expression: self.tags([expression or ""]),
            InvalidationType.URL: self.url,
            InvalidationType.WILDCARD_URL: self.url,
            InvalidationType.PATH: self.path,
            InvalidationType.WILDCARD_PATH: self.path,
            InvalidationType.DOMAIN: self.domain,
            InvalidationType.REGEX: self.regex,
            InvalidationType.RAW: self.raw,
            InvalidationType.EVERYTHING: self.everything,
        }

    def compile(self, invalidation_type: InvalidationType, expression: Optional[str]) -> BanExpression:
        """
        Compile one invalidation expression.

        Raises:
            InvalidExpressionError: When the expression is unusable for its type
        """
        compiler = self._compilers.get(InvalidationType(invalidation_type))
        return compiler(expression)

    def _scoped(self, expression: str) -> BanExpression:
        if self.site_name:
            expression += f' && req.http.host == "{self.site_name}"'
        return BanExpression(expression)

    def tags(self, tags: Sequence[str]) -> BanExpression:
        """Ban responses carrying any of the given tags."""
        if not tags:
            raise InvalidExpressionError("at least one tag is required")
        alternatives = "|".join(escape_ban_pattern(tag) for tag in tags)
        return self._scoped(f'obj.http.{self.tags_header} ~ "({alternatives})+"')

    def bundled_tags(self, digest: TagDigest) -> BanExpression:
        """Ban responses carrying any tag of a batch, matched by tag hash."""
        if not len(digest):
            raise InvalidExpressionError("cannot bundle an empty tag set")
        return BanExpression(f'obj.http.{self.tags_header} ~ "({digest.pattern})+"')

    def url(self, expression: Optional[str]) -> BanExpression:
        """
        Ban one absolute URL (scheme, host and path must all match).

        The scheme is specific: invalidating an http URL leaves the https
        variant cached.
        """
        parts = parse_absolute_url(expression or "")

        host = parts.hostname
        if parts.port:
            host = f"{host}:{parts.port}"

        target = parts.path or "/"
        if parts.query:
            target = f"{target}?{parts.query}"

        return self._scoped(
            f'req.http.X-Forwarded-Proto == "{parts.scheme}" && '
            f'req.http.host == "{host}" && '
            f'req.url ~ "^{escape_ban_pattern(target)}$"'
        )

    def path(self, expression: Optional[str]) -> BanExpression:
        """Ban a path relative to the site root, e.g. news/article-1 or news/*."""
        path = expression or ""
        if path.startswith("/"):
            path = path[1:]
        return self._scoped(f'req.url ~ "^/{escape_ban_pattern(path)}$"')

    def domain(self, expression: Optional[str]) -> BanExpression:
        """Ban everything served for a hostname."""
        hostname = (expression or "").strip()
        if not hostname or '"' in hostname or any(c.isspace() for c in hostname):
            raise InvalidExpressionError(f"invalid hostname {expression!r}", expression=expression)
        return self._scoped(f'req.http.host == "{hostname}"')

    def regex(self, expression: Optional[str]) -> BanExpression:
        """Pass a complete ban expression through unchanged."""
        if not expression:
            raise InvalidExpressionError("regex invalidation requires an expression")
        return BanExpression(expression)

    def raw(self, expression: Optional[str]) -> BanExpression:
        """Pass a raw ban expression through unchanged."""
        if not expression:
            raise InvalidExpressionError("raw invalidation requires an expression")
        return BanExpression(expression)

    def everything(self, expression: Optional[str] = None) -> BanExpression:
        """Ban every cached object (of the configured site)."""
        return self._scoped(EVERYTHING_EXPRESSION)
