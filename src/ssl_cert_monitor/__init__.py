"""
SSL Certificate Monitor - batch TLS certificate expiry checker.

This package checks the leaf certificate expiry of configured domains and
sends reminder notifications through Slack, Email, Webhook, Discord and
Telegram channels, with a cooldown-gated state store to avoid repeat alerts.
"""

__version__ = "0.1.0"
__author__ = "SSL Certificate Monitor Team"

from ssl_cert_monitor.exceptions import (
    CertMonitorError,
    ConfigurationError,
    ProbeError,
    NotificationError,
    PersistenceError,
    RunCancelledError,
)
from ssl_cert_monitor.enums import (
    LogLevel,
    ProbeErrorCode,
    Urgency,
)
from ssl_cert_monitor.models import (
    DomainTarget,
    CheckOutcome,
    VerifyOutcome,
    Notification,
    RunSummary,
)
from ssl_cert_monitor.config import (
    SlackConfig,
    EmailConfig,
    WebhookConfig,
    DiscordConfig,
    TelegramConfig,
    NotificationConfig,
    StateConfig,
    LoggingConfig,
    MonitorConfig,
    load_config,
    parse_config,
)
from ssl_cert_monitor.audit_logger import (
    AuditLogger,
    LogEntry,
)
from ssl_cert_monitor.checker import (
    CertificateChecker,
)
from ssl_cert_monitor.notifications import (
    ChannelResult,
    DispatchResult,
    NotificationChannel,
    SlackChannel,
    EmailChannel,
    WebhookChannel,
    DiscordChannel,
    TelegramChannel,
    NotificationRouter,
    build_router,
)
from ssl_cert_monitor.state_store import (
    StateStore,
    SaveResult,
)
from ssl_cert_monitor.orchestrator import (
    CheckOrchestrator,
    crossed_thresholds,
)
from ssl_cert_monitor.cli import (
    main as cli_main,
    create_parser,
)

__all__ = [
    # Exceptions
    "CertMonitorError",
    "ConfigurationError",
    "ProbeError",
    "NotificationError",
    "PersistenceError",
    "RunCancelledError",
    # Enums
    "LogLevel",
    "ProbeErrorCode",
    "Urgency",
    # Models
    "DomainTarget",
    "CheckOutcome",
    "VerifyOutcome",
    "Notification",
    "RunSummary",
    # Configuration
    "SlackConfig",
    "EmailConfig",
    "WebhookConfig",
    "DiscordConfig",
    "TelegramConfig",
    "NotificationConfig",
    "StateConfig",
    "LoggingConfig",
    "MonitorConfig",
    "load_config",
    "parse_config",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Checker
    "CertificateChecker",
    # Notifications
    "ChannelResult",
    "DispatchResult",
    "NotificationChannel",
    "SlackChannel",
    "EmailChannel",
    "WebhookChannel",
    "DiscordChannel",
    "TelegramChannel",
    "NotificationRouter",
    "build_router",
    # State Store
    "StateStore",
    "SaveResult",
    # Orchestrator
    "CheckOrchestrator",
    "crossed_thresholds",
    # CLI
    "cli_main",
    "create_parser",
]
