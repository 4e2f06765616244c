from __future__ import annotations


class CarryOverError(Exception):
    """Base class for every error raised by the carry-over engine."""


class ConfigError(CarryOverError):
    """Raised when credentials, paths or tunables are missing or invalid."""


class FetchError(CarryOverError):
    """Raised when the server inventory cannot be retrieved."""


class TargetNotFoundError(FetchError):
    """Raised when a single requested server is absent from the inventory."""


class ReportParseError(CarryOverError):
    """Raised when the allowance report is unreadable or yields no entries."""


class TransportError(CarryOverError):
    """Raised when a single panel call fails."""

    def __init__(self, message: str, *, body: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.body = body
        self.status_code = status_code


class PanelRejectedError(TransportError):
    """Raised when the panel answers without its success flag."""


class ValidationError(CarryOverError):
    """Raised when a unit's input cannot produce a safe new limit."""
