"""
State Store module for notification cooldown tracking.

Records, per (domain host, reminder threshold), when a notification was last
delivered successfully, and answers whether a pair is eligible to notify
again. The whole mapping is rewritten on every change.

File layout::

    {
      "entries": {
        "example.com": {"30": "2026-01-01T08:00:00.000000+00:00"}
      }
    }
"""

import json
import os
import tempfile
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from .exceptions import PersistenceError


FALLBACK_FILENAME = "ssl-monitor-state.json"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SaveResult:
    """Where the state was written, and whether a fallback path was used."""

    path: Optional[Path]
    fallback_from: Optional[Path] = None

    @property
    def used_fallback(self) -> bool:
        return self.fallback_from is not None


class StateStore:
    """
    Persistent cooldown storage.

    Entries map a domain host and a threshold (days) to the time of the last
    successful notification. A pair is eligible to send again once more than
    ``cooldown_hours`` have passed since that time.

    If the state directory cannot be created, or the file cannot be written,
    the store falls back to a file in the current working directory and keeps
    using it for the rest of the process. The returned SaveResult reports
    the substitution.
    """

    def __init__(
        self,
        file_path: Optional[Path],
        cooldown_hours: float = 24.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the state store and load any persisted entries.

        Args:
            file_path: Path to the state file (JSON format); None keeps
                state in memory only
            cooldown_hours: Minimum hours between notifications for one pair
            clock: Returns the current UTC time (injectable for tests)

        Raises:
            PersistenceError: If an existing state file cannot be read or parsed
        """
        self._file_path = Path(file_path) if file_path is not None else None
        self._cooldown = timedelta(hours=cooldown_hours)
        self._clock = clock or _utc_now
        self._entries: dict[str, dict[int, datetime]] = {}
        self._load()

    def _load(self) -> None:
        if self._file_path is None or not self._file_path.exists():
            return

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse state file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read state file: {e}",
                details={"file_path": str(self._file_path)},
            )

        self._entries = self._parse_entries(raw_data)

    def _parse_entries(self, raw_data) -> dict[str, dict[int, datetime]]:
        if not isinstance(raw_data, dict):
            raise self._format_error("state document must be an object")

        raw_entries = raw_data.get("entries") or {}
        if not isinstance(raw_entries, dict):
            raise self._format_error("'entries' must be an object")

        entries: dict[str, dict[int, datetime]] = {}
        for host, thresholds in raw_entries.items():
            thresholds = thresholds or {}
            if not isinstance(thresholds, dict):
                raise self._format_error(f"entries for {host!r} must be an object")
            parsed: dict[int, datetime] = {}
            for threshold, timestamp in thresholds.items():
                try:
                    sent_at = datetime.fromisoformat(timestamp)
                    parsed[int(threshold)] = (
                        sent_at if sent_at.tzinfo else sent_at.replace(tzinfo=timezone.utc)
                    )
                except (TypeError, ValueError):
                    raise self._format_error(
                        f"invalid entry {host!r}/{threshold!r}: {timestamp!r}"
                    )
            entries[host] = parsed
        return entries

    def _format_error(self, reason: str) -> PersistenceError:
        return PersistenceError(
            code="invalid_format",
            message=f"Malformed state file: {reason}",
            details={"file_path": str(self._file_path)},
        )

    def should_send(self, domain: str, threshold: int) -> bool:
        """
        Check whether a notification may be sent for a domain and threshold.

        Returns:
            True if nothing was sent yet, or the cooldown has elapsed
        """
        last_sent = self.get_last_sent(domain, threshold)
        if last_sent is None:
            return True
        return self._clock() - last_sent > self._cooldown

    def mark_sent(self, domain: str, threshold: int) -> SaveResult:
        """
        Record a successful notification and persist the whole store.

        The in-memory entry is kept even if persisting fails.

        Raises:
            PersistenceError: If the state cannot be written anywhere
        """
        self._entries.setdefault(domain, {})[threshold] = self._clock()
        return self.save()

    def get_last_sent(self, domain: str, threshold: int) -> Optional[datetime]:
        return self._entries.get(domain, {}).get(threshold)

    def clear(self) -> SaveResult:
        """Remove all entries and persist the empty store."""
        self._entries = {}
        return self.save()

    def save(self) -> SaveResult:
        """
        Write the full store to disk atomically.

        Returns:
            SaveResult with the path actually written

        Raises:
            PersistenceError: If neither the configured nor the fallback
                location can be written
        """
        if self._file_path is None:
            return SaveResult(path=None)

        requested = self._file_path
        data = self.to_dict()

        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._file_path = Path.cwd() / (self._file_path.name or FALLBACK_FILENAME)

        try:
            self._write_atomic(self._file_path, data)
        except OSError:
            fallback = Path.cwd() / FALLBACK_FILENAME
            try:
                self._write_atomic(fallback, data)
            except OSError as e:
                raise PersistenceError(
                    code="io_error",
                    message=f"Failed to write state file: {e}",
                    details={
                        "file_path": str(requested),
                        "fallback_path": str(fallback),
                    },
                )
            self._file_path = fallback

        return SaveResult(
            path=self._file_path,
            fallback_from=requested if self._file_path != requested else None,
        )

    @staticmethod
    def _write_atomic(path: Path, data: dict) -> None:
        # Readers only ever see the old file or the complete new one
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError:
            with suppress(OSError):
                os.unlink(tmp_name)
            raise

    def to_dict(self) -> dict:
        """Serializable form of the store."""
        return {
            "entries": {
                host: {
                    str(threshold): sent_at.isoformat(timespec="microseconds")
                    for threshold, sent_at in thresholds.items()
                }
                for host, thresholds in self._entries.items()
            }
        }

    @property
    def entries(self) -> dict[str, dict[int, datetime]]:
        """Copy of all entries."""
        return {host: dict(thresholds) for host, thresholds in self._entries.items()}

    @property
    def file_path(self) -> Optional[Path]:
        """The path currently written to (reflects any fallback)."""
        return self._file_path

    @property
    def cooldown(self) -> timedelta:
        return self._cooldown
