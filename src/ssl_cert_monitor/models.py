"""
Data models for the certificate monitor.

This module defines the structures passed between the checker, the
notification router and the orchestrator during a single run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import ProbeErrorCode, Urgency


DEFAULT_PORT = 443


@dataclass(frozen=True)
class DomainTarget:
    """A host to monitor, as loaded from configuration."""

    host: str
    port: int = DEFAULT_PORT
    name: Optional[str] = None
    insecure_skip_verify: bool = False

    @property
    def display_name(self) -> str:
        """Human-facing label: the configured name, falling back to the host."""
        return self.name or self.host

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def state_key(self) -> str:
        """Key used for cooldown tracking.

        Only the host is used, so two targets that share a host but differ
        in port share cooldown entries.
        """
        return self.host


@dataclass
class CheckOutcome:
    """Result of probing one target's leaf certificate."""

    target: DomainTarget
    success: bool
    error: Optional[str] = None
    error_code: Optional[ProbeErrorCode] = None
    expiry: Optional[datetime] = None
    days_remaining: Optional[float] = None

    @property
    def expired(self) -> bool:
        return self.success and self.days_remaining is not None and self.days_remaining <= 0


@dataclass
class VerifyOutcome:
    """Result of a strict certificate chain verification."""

    target: DomainTarget
    verified: bool
    error: Optional[str] = None


def urgency_for(days_remaining: float) -> Urgency:
    """Classify remaining validity for message styling."""
    if days_remaining <= 7:
        return Urgency.CRITICAL
    if days_remaining <= 30:
        return Urgency.WARNING
    return Urgency.INFO


@dataclass
class Notification:
    """Payload handed to the notification router for one crossed threshold."""

    target: DomainTarget
    days_remaining: float
    expiry: datetime
    threshold: int

    @property
    def display_name(self) -> str:
        return self.target.display_name

    @property
    def urgency(self) -> Urgency:
        return urgency_for(self.days_remaining)


@dataclass
class RunSummary:
    """Counters accumulated over one monitoring run."""

    started_at: str
    finished_at: Optional[str] = None
    domains_checked: int = 0
    domains_failed: int = 0
    notifications_sent: int = 0
    expired_domains: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "domains_checked": self.domains_checked,
            "domains_failed": self.domains_failed,
            "notifications_sent": self.notifications_sent,
            "expired_domains": list(self.expired_domains),
        }
