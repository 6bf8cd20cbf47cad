"""
Structured run logger for the certificate monitor.

Every entry carries a UTC timestamp, level, component, message and a data
dict. Entries are written as JSON lines, human-readable text lines, or both,
to stderr or an append-mode log file. Values under secret-looking keys
(tokens, passwords, webhook URLs) are masked before anything is written.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, TextIO

from ssl_cert_monitor.enums import LogLevel
from ssl_cert_monitor.exceptions import ConfigurationError


OUTPUT_FORMATS = ("json", "text", "both")


@dataclass
class LogEntry:
    """A single emitted log record."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "component": self.component,
            "message": self.message,
            "data": self.data,
        }


class AuditLogger:
    """
    Structured logger with level filtering and secret masking.

    Emitted entries are also kept in memory so callers (and tests) can
    inspect what a run reported.
    """

    # Substrings that mark a data key as secret
    SENSITIVE_KEYS = frozenset({
        'token', 'secret', 'password', 'api_key',
        'bot_token', 'webhook_url', 'auth', 'authorization',
        'credential', 'credentials', 'private_key', 'access_token',
    })

    MASK_VALUE = "***MASKED***"

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.INFO,
    ):
        """
        Args:
            output_format: 'json', 'text' or 'both'
            output_stream: Destination stream (defaults to sys.stderr)
            min_level: Entries below this level are discarded
        """
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._stream = output_stream or sys.stderr
        self._owns_stream = False
        self._min_level = min_level
        self._entries: list[LogEntry] = []

    @classmethod
    def from_settings(
        cls,
        level: str = "info",
        output_format: str = "text",
        file_path: Optional[Path] = None,
    ) -> "AuditLogger":
        """
        Create a logger from configuration values.

        When ``file_path`` is set, entries are appended to that file instead
        of stderr and the file is closed by ``close()``.

        Raises:
            ConfigurationError: If the log file cannot be opened for appending
        """
        stream = None
        if file_path is not None:
            try:
                file_path.parent.mkdir(parents=True, exist_ok=True)
                stream = open(file_path, "a", encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(
                    code="io_error",
                    message=f"Cannot open log file {file_path}: {e}",
                    details={"path": str(file_path)},
                )
        logger = cls(
            output_format=output_format,
            output_stream=stream,
            min_level=LogLevel(level),
        )
        logger._owns_stream = stream is not None
        return logger

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    @min_level.setter
    def min_level(self, level: LogLevel) -> None:
        self._min_level = level

    @property
    def entries(self) -> list[LogEntry]:
        """Entries emitted so far, oldest first."""
        return self._entries.copy()

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level.severity >= self._min_level.severity

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Emit an entry.

        Returns:
            The emitted LogEntry, or None if ``level`` is below the minimum
        """
        if not self.is_enabled_for(level):
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=self.mask_sensitive_data(data or {}),
        )
        self._entries.append(entry)
        self._write(entry)
        return entry

    def debug(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogEntry]:
        return self.log(LogLevel.DEBUG, component, message, data)

    def info(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogEntry]:
        return self.log(LogLevel.INFO, component, message, data)

    def warn(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogEntry]:
        return self.log(LogLevel.WARN, component, message, data)

    def error(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogEntry]:
        return self.log(LogLevel.ERROR, component, message, data)

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[Exception] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Emit an ERROR entry describing an exception.

        The exception's message and type are added to the data, plus its
        ``code`` for CertMonitorError subclasses.
        """
        data = dict(additional_data or {})
        if error is not None:
            data["error_message"] = str(error)
            data["error_type"] = type(error).__name__
            code = getattr(error, "code", None)
            if code is not None:
                data["error_code"] = code
        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data: dict) -> dict:
        """Return a copy of ``data`` with secret values masked at any depth."""
        return {key: self._mask_value(key, value) for key, value in data.items()}

    def _mask_value(self, key: str, value: Any) -> Any:
        lowered = key.lower()
        if any(pattern in lowered for pattern in self.SENSITIVE_KEYS):
            return self.MASK_VALUE
        if isinstance(value, dict):
            return self.mask_sensitive_data(value)
        if isinstance(value, list):
            return [
                self.mask_sensitive_data(item) if isinstance(item, dict) else item
                for item in value
            ]
        return value

    def close(self) -> None:
        """Close the log file if this logger opened it."""
        if self._owns_stream:
            self._stream.close()
            self._owns_stream = False

    def _write(self, entry: LogEntry) -> None:
        lines = []
        if self._output_format in ("json", "both"):
            lines.append(json.dumps(entry.to_dict(), ensure_ascii=False, default=str))
        if self._output_format in ("text", "both"):
            lines.append(self._render_text(entry))
        for line in lines:
            self._stream.write(line + "\n")
        self._stream.flush()

    @staticmethod
    def _render_text(entry: LogEntry) -> str:
        # [timestamp] LEVEL [component] message {data}
        line = f"[{entry.timestamp}] {entry.level.value.upper()} [{entry.component}] {entry.message}"
        if entry.data:
            line += " " + json.dumps(entry.data, ensure_ascii=False, default=str)
        return line

    def clear_entries(self) -> None:
        """Forget the in-memory entries."""
        self._entries.clear()
