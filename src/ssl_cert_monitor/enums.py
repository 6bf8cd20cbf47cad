"""
Enumeration types for the certificate monitor.
"""

from enum import Enum


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def severity(self) -> int:
        """Numeric rank used for minimum-level filtering."""
        return _SEVERITY[self]


_SEVERITY = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}


class ProbeErrorCode(Enum):
    """Error codes for certificate probe failures."""

    DNS_ERROR = "dns_error"
    CONNECTION_ERROR = "connection_error"
    TIMEOUT = "timeout"
    TLS_ERROR = "tls_error"
    NO_CERTIFICATE = "no_certificate"
    PARSE_ERROR = "parse_error"


class Urgency(Enum):
    """How close a certificate is to expiry, for message styling."""

    CRITICAL = "critical"  # <= 7 days
    WARNING = "warning"  # <= 30 days
    INFO = "info"
