"""
Exception classes for the certificate monitor.

All exceptions inherit from CertMonitorError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class CertMonitorError(Exception):
    """Base exception for all certificate monitor errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(CertMonitorError):
    """Raised when configuration is missing or malformed."""

    pass


class ProbeError(CertMonitorError):
    """Raised inside the checker when a TLS probe fails."""

    pass


class NotificationError(CertMonitorError):
    """Raised when notification delivery fails."""

    pass


class PersistenceError(CertMonitorError):
    """Raised when the cooldown state cannot be read or written."""

    pass


class RunCancelledError(CertMonitorError):
    """Raised when a monitoring run is aborted by a cancellation signal."""

    pass
