from __future__ import annotations

from typing import Optional


class LaunchwatchError(Exception):
    """Base error for launchwatch."""

    recoverable = True
    severity = "error"

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(LaunchwatchError):
    """Failure that may succeed when retried (network blips, rate limits)."""

    recoverable = True
    severity = "warning"


class PermanentError(LaunchwatchError):
    """Failure that will not go away on retry (bad credentials, bad input)."""

    recoverable = False
    severity = "error"


class ConfigError(LaunchwatchError):
    """Raised when the root config file cannot be loaded."""

    recoverable = False
