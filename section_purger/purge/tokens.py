"""
External Collaborators

Interfaces for the two services the purger consumes but does not own:
- Token replacement: fills placeholders like [invalidation:expression] in
  configured paths and header values
- Key repository: resolves the API password from a key reference so that
  secrets never live in the purger configuration

Default implementations cover the common cases and can be swapped for the
host application's own services.
"""

import os
import re
from typing import Any, Dict, Mapping, Optional, Protocol

from section_purger.purge.errors import ConfigurationError


_TOKEN_PATTERN = re.compile(r"\[([a-z_]+):([a-z_]+)\]")


class TokenReplacer(Protocol):
    def replace(self, text: str, token_data: Dict[str, Any]) -> str:
        ...


class KeyRepository(Protocol):
    def get_key_value(self, key_id: str) -> str:
        ...


class InvalidationTokens:
    """
    Replaces [invalidation:*] tokens with attributes of the invalidation.

    Supported tokens:
    - [invalidation:expression]
    - [invalidation:type]
    - [invalidation:id]

    Unknown tokens are left in place.
    """

    def replace(self, text: str, token_data: Dict[str, Any]) -> str:
        if not text or "[" not in text:
            return text

        def substitute(match: re.Match) -> str:
            group, name = match.groups()
            source = token_data.get(group)
            if source is None or name not in ("expression", "type", "id"):
                return match.group(0)
            value = getattr(source, name, None)
            if value is None:
                return ""
            return str(getattr(value, "value", value))

        return _TOKEN_PATTERN.sub(substitute, text)


class EnvKeyRepository:
    """
    Resolves keys from environment variables.

    The key "section_api" is read from SECTION_PURGER_KEY_SECTION_API.
    """

    def __init__(self, prefix: str = "SECTION_PURGER_KEY_", environ: Optional[Mapping[str, str]] = None):
        self.prefix = prefix
        self._environ = environ if environ is not None else os.environ

    def get_key_value(self, key_id: str) -> str:
        env_name = f"{self.prefix}{key_id.upper()}"
        value = self._environ.get(env_name)
        if value is None:
            raise ConfigurationError(f"Key {key_id!r} not found (expected {env_name})")
        return value


class StaticKeyRepository:
    """Resolves keys from an in-memory mapping."""

    def __init__(self, keys: Mapping[str, str]):
        self._keys = dict(keys)

    def get_key_value(self, key_id: str) -> str:
        try:
            return self._keys[key_id]
        except KeyError:
            raise ConfigurationError(f"Key {key_id!r} not found") from None
