"""Custom exceptions for the funding replacement bot.

All gateway, execution and strategy exceptions live here
to avoid circular imports between modules.
"""


class AutofundError(Exception):
    """Base exception for all bot errors."""


class AuthenticationError(AutofundError):
    """Raised when the exchange rejects our API keys. Fatal to the process."""


class CommandError(AutofundError):
    """Raised when a borrow, cancel or return call is rejected by the exchange."""


class MessageDecodeError(AutofundError):
    """Raised when a push message from the exchange cannot be decoded."""


class UnknownStrategyError(AutofundError):
    """Raised when the configured strategy name has no implementation."""
