"""
Invalidation Model

An invalidation is one instruction to remove cached content. It carries a
type, a type-specific expression and a state the purger updates while it
processes the instruction:

    NEW -> PROCESSING -> SUCCEEDED | FAILED

Invalidations are owned by the caller's queue. Purgers only change the state
of the invalidations handed to them.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol
from urllib.parse import urlsplit
from uuid import uuid4

from section_purger.purge.errors import InvalidExpressionError


class InvalidationType(str, Enum):
    """Supported invalidation types."""

    TAG = "tag"
    URL = "url"
    WILDCARD_URL = "wildcardurl"
    PATH = "path"
    WILDCARD_PATH = "wildcardpath"
    DOMAIN = "domain"
    REGEX = "regex"
    RAW = "raw"
    EVERYTHING = "everything"


class InvalidationState(Enum):
    """Processing state of an invalidation."""

    NEW = "new"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (InvalidationState.SUCCEEDED, InvalidationState.FAILED)


class InvalidationLike(Protocol):
    """Interface a queue item must expose to be processed by a purger."""

    type: InvalidationType
    expression: Optional[str]
    state: InvalidationState

    def validate_expression(self) -> None:
        ...


# Types whose expression must be a non-empty string
_EXPRESSION_REQUIRED = {
    InvalidationType.TAG,
    InvalidationType.URL,
    InvalidationType.WILDCARD_URL,
    InvalidationType.DOMAIN,
    InvalidationType.REGEX,
    InvalidationType.RAW,
}

_URL_TYPES = {InvalidationType.URL, InvalidationType.WILDCARD_URL}
_PATH_TYPES = {InvalidationType.PATH, InvalidationType.WILDCARD_PATH}

# Hostnames end up inside a quoted ban literal
_HOSTNAME_PATTERN = re.compile(r"[\w.\-:]+")


def parse_absolute_url(expression: str):
    """
    Split an absolute URL into its components.

    Raises:
        InvalidExpressionError: When the string has no scheme or host, or the
            host contains characters a hostname cannot have
    """
    try:
        parts = urlsplit(expression.strip())
        # Accessing .port validates it
        parts.port
    except (ValueError, AttributeError) as e:
        raise InvalidExpressionError(
            f"URL invalidation failed with {expression!r}: {e}",
            expression=expression,
        ) from e

    if not parts.scheme or not parts.hostname:
        raise InvalidExpressionError(
            f"URL invalidation failed with {expression!r}: not an absolute URL",
            expression=expression,
        )

    if not _HOSTNAME_PATTERN.fullmatch(parts.hostname):
        raise InvalidExpressionError(
            f"URL invalidation failed with {expression!r}: invalid host {parts.hostname!r}",
            expression=expression,
        )
    return parts


@dataclass
class Invalidation:
    """A single invalidation instruction taken from the queue."""

    type: InvalidationType
    expression: Optional[str] = None
    state: InvalidationState = InvalidationState.NEW
    id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self):
        # Accept plain strings from queue payloads
        if not isinstance(self.type, InvalidationType):
            self.type = InvalidationType(self.type)

    def validate_expression(self) -> None:
        """
        Check the expression is structurally valid for this type.

        Raises:
            InvalidExpressionError: When the expression cannot be used
        """
        expression = self.expression

        if self.type is InvalidationType.EVERYTHING:
            return

        if expression is not None and not isinstance(expression, str):
            raise InvalidExpressionError(
                f"{self.type.value} expression must be a string", expression=expression
            )

        if self.type in _EXPRESSION_REQUIRED and not (expression or "").strip():
            raise InvalidExpressionError(
                f"{self.type.value} invalidation requires a non-empty expression",
                expression=expression,
            )

        if self.type in _URL_TYPES:
            parse_absolute_url(expression)

        elif self.type in _PATH_TYPES and expression and "://" in expression:
            raise InvalidExpressionError(
                f"path invalidation must not include a scheme or host: {expression!r}",
                expression=expression,
            )
