"""Exceptions raised by the purge layer."""

from typing import Optional


class PurgerError(Exception):
    """Base exception for purger errors."""

    pass


class InvalidExpressionError(PurgerError):
    """An invalidation's expression is structurally wrong for its type."""

    def __init__(self, message: str, expression: Optional[str] = None):
        super().__init__(message)
        self.expression = expression


class RouterMisuseError(PurgerError):
    """The generic entry point was called on a purger that routes by type."""

    pass


class ConfigurationError(PurgerError):
    """Configuration or secret lookup errors."""

    pass
