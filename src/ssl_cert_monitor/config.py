"""
Configuration dataclasses and loader for the certificate monitor.

This module defines all configuration structures used throughout the system
(monitored domains, reminder thresholds, notification channels, cooldown
state and logging) and parses them from a YAML document.
"""

import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import idna
import yaml

from .exceptions import ConfigurationError
from .models import DEFAULT_PORT, DomainTarget


DEFAULT_REMINDER_DAYS = [30, 14, 7, 1]
DEFAULT_COOLDOWN_HOURS = 24.0
MAX_COOLDOWN_HOURS = 24.0 * 365 * 100
DEFAULT_CONFIG_PATH = "config.yaml"

LOG_LEVELS = ("debug", "info", "warn", "error")
LOG_FORMATS = ("text", "json", "both")

ENV_REFERENCE_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass
class SlackConfig:
    """Slack incoming-webhook channel configuration."""

    enabled: bool = False
    webhook_url: str = ""
    channel: Optional[str] = None
    username: Optional[str] = None
    icon_emoji: Optional[str] = None


@dataclass
class EmailConfig:
    """Email notification channel configuration."""

    enabled: bool = False
    smtp_host: str = ""
    smtp_port: int = 587
    username: str = ""
    password: str = ""
    from_address: str = ""
    to_addresses: list[str] = field(default_factory=list)
    use_tls: bool = True


@dataclass
class WebhookConfig:
    """Generic webhook notification channel configuration."""

    enabled: bool = False
    url: str = ""
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    body_template: Optional[str] = None


@dataclass
class DiscordConfig:
    """Discord notification channel configuration."""

    enabled: bool = False
    webhook_url: str = ""
    username: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass
class TelegramConfig:
    """Telegram notification channel configuration."""

    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""


@dataclass
class NotificationConfig:
    """Notification channels configuration."""

    slack: SlackConfig = field(default_factory=SlackConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass
class StateConfig:
    """Cooldown state persistence configuration."""

    file: Optional[Path] = None
    cooldown_hours: float = DEFAULT_COOLDOWN_HOURS


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    file: Optional[Path] = None
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class MonitorConfig:
    """Main configuration combining all sub-configurations."""

    domains: list[DomainTarget]
    reminder_days: list[int] = field(default_factory=lambda: list(DEFAULT_REMINDER_DAYS))
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    state: StateConfig = field(default_factory=StateConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(config_path: Path) -> MonitorConfig:
    """
    Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Validated MonitorConfig

    Raises:
        ConfigurationError: If the file cannot be read, parsed or validated
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(
            code="not_found",
            message=f"Configuration file not found: {config_path}",
            details={"path": str(config_path)},
        )
    except OSError as e:
        raise ConfigurationError(
            code="io_error",
            message=f"Failed to read configuration file: {e}",
            details={"path": str(config_path)},
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(
            code="parse_error",
            message=f"Failed to parse YAML: {e}",
            details={"path": str(config_path)},
        )

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(
            code="invalid_document",
            message="Configuration root must be a mapping",
            details={"path": str(config_path)},
        )

    return parse_config(expand_env_references(raw))


def parse_config(data: dict, base_dir: Optional[Path] = None) -> MonitorConfig:
    """
    Build a MonitorConfig from an already-parsed document.

    Relative state and log file paths are resolved against ``base_dir``
    (the current working directory by default).
    """
    base_dir = base_dir or Path.cwd()

    domains = _parse_domains(data.get("domains"))
    reminder_days = _parse_reminder_days(data.get("reminder_days"))

    state_data = _mapping(data.get("state"), "state")
    state_file = state_data.get("file")
    state = StateConfig(
        file=_absolute(state_file, base_dir) if state_file else None,
        cooldown_hours=_number(
            state_data.get("cooldown_hours", DEFAULT_COOLDOWN_HOURS),
            "state.cooldown_hours",
            minimum=0,
            maximum=MAX_COOLDOWN_HOURS,
        ),
    )

    log_data = _mapping(data.get("log"), "log")
    level = str(log_data.get("level", "info")).lower()
    if level == "warning":
        level = "warn"
    if level not in LOG_LEVELS:
        raise ConfigurationError(
            code="invalid_field",
            message=f"log.level must be one of {', '.join(LOG_LEVELS)}",
            details={"value": level},
        )
    output_format = str(log_data.get("format", "text")).lower()
    if output_format not in LOG_FORMATS:
        raise ConfigurationError(
            code="invalid_field",
            message=f"log.format must be one of {', '.join(LOG_FORMATS)}",
            details={"value": output_format},
        )
    log_file = log_data.get("file")
    logging_config = LoggingConfig(
        level=level,
        file=_absolute(log_file, base_dir) if log_file else None,
        output_format=output_format,
    )

    return MonitorConfig(
        domains=domains,
        reminder_days=reminder_days,
        notifications=_parse_notifications(
            _mapping(data.get("notifications"), "notifications")
        ),
        state=state,
        logging=logging_config,
    )


def normalize_host(raw_host: str) -> str:
    """
    Normalize a configured host to lowercase ASCII.

    International names are converted to their IDNA (punycode) form so they
    can be used for both DNS resolution and SNI.

    Raises:
        ConfigurationError: If the host is empty or not a valid IDNA name
    """
    host = raw_host.strip().rstrip(".").lower()
    if not host:
        raise ConfigurationError(
            code="missing_field",
            message="Domain host is empty",
            details={"raw_input": raw_host},
        )
    if any(ch.isspace() for ch in host) or "/" in host:
        raise ConfigurationError(
            code="invalid_field",
            message=f"Invalid domain host: {raw_host!r}",
            details={"raw_input": raw_host},
        )
    if host.isascii():
        return host
    try:
        return idna.encode(host, uts46=True).decode("ascii")
    except idna.IDNAError as e:
        raise ConfigurationError(
            code="invalid_field",
            message=f"IDNA encoding failed for {raw_host!r}: {e}",
            details={"raw_input": raw_host},
        )


def expand_env_references(value: Any) -> Any:
    """
    Recursively replace ``${NAME}`` in string values with environment values.

    References to unset variables are left untouched.
    """
    if isinstance(value, str):
        return ENV_REFERENCE_PATTERN.sub(
            lambda m: os.environ.get(m.group(1), m.group(0)), value
        )
    if isinstance(value, dict):
        return {key: expand_env_references(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_references(item) for item in value]
    return value


def _parse_domains(raw: Any) -> list[DomainTarget]:
    if not raw:
        raise ConfigurationError(
            code="missing_field",
            message="No domains configured",
        )
    if not isinstance(raw, list):
        raise ConfigurationError(
            code="invalid_field",
            message="domains must be a list",
        )

    domains = []
    for index, entry in enumerate(raw):
        if isinstance(entry, str):
            entry = {"host": entry}
        if not isinstance(entry, dict):
            raise ConfigurationError(
                code="invalid_field",
                message=f"Domain {index} must be a mapping",
                details={"index": index},
            )
        host = entry.get("host")
        if not host or not str(host).strip():
            raise ConfigurationError(
                code="missing_field",
                message=f"Domain {index} missing host",
                details={"index": index},
            )
        port = entry.get("port") or DEFAULT_PORT
        port = int(_number(port, f"domains[{index}].port", minimum=1))
        if port > 65535:
            raise ConfigurationError(
                code="invalid_field",
                message=f"domains[{index}].port out of range: {port}",
                details={"index": index, "port": port},
            )
        name = entry.get("name")
        domains.append(DomainTarget(
            host=normalize_host(str(host)),
            port=port,
            name=str(name) if name else None,
            insecure_skip_verify=bool(entry.get("insecure_skip_verify", False)),
        ))
    return domains


def _parse_reminder_days(raw: Any) -> list[int]:
    if raw is None:
        return list(DEFAULT_REMINDER_DAYS)
    if not isinstance(raw, list):
        raise ConfigurationError(
            code="invalid_field",
            message="reminder_days must be a list of positive integers",
        )
    days = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigurationError(
                code="invalid_field",
                message=f"Invalid reminder day: {value!r}",
                details={"value": value},
            )
        days.append(value)
    return days


def _parse_notifications(data: dict) -> NotificationConfig:
    slack = _mapping(data.get("slack"), "notifications.slack")
    email = _mapping(data.get("email"), "notifications.email")
    webhook = _mapping(data.get("webhook"), "notifications.webhook")
    discord = _mapping(data.get("discord"), "notifications.discord")
    telegram = _mapping(data.get("telegram"), "notifications.telegram")

    to_addresses = email.get("to", email.get("to_addresses", []))
    if isinstance(to_addresses, str):
        to_addresses = [addr.strip() for addr in to_addresses.split(",") if addr.strip()]

    return NotificationConfig(
        slack=SlackConfig(
            enabled=bool(slack.get("enabled", False)),
            webhook_url=slack.get("webhook_url") or "",
            channel=slack.get("channel"),
            username=slack.get("username"),
            icon_emoji=slack.get("icon_emoji"),
        ),
        email=EmailConfig(
            enabled=bool(email.get("enabled", False)),
            smtp_host=email.get("smtp_host") or "",
            smtp_port=int(_number(email.get("smtp_port") or 587, "notifications.email.smtp_port", minimum=1)),
            username=email.get("username") or "",
            password=str(email.get("password") or ""),
            from_address=email.get("from", email.get("from_address")) or "",
            to_addresses=[str(addr) for addr in to_addresses or []],
            use_tls=bool(email.get("use_tls", True)),
        ),
        webhook=WebhookConfig(
            enabled=bool(webhook.get("enabled", False)),
            url=webhook.get("url") or "",
            method=str(webhook.get("method") or "POST").upper(),
            headers={
                str(k): str(v)
                for k, v in _mapping(webhook.get("headers"), "notifications.webhook.headers").items()
            },
            body_template=webhook.get("body_template") or None,
        ),
        discord=DiscordConfig(
            enabled=bool(discord.get("enabled", False)),
            webhook_url=discord.get("webhook_url") or "",
            username=discord.get("username"),
            avatar_url=discord.get("avatar_url"),
        ),
        telegram=TelegramConfig(
            enabled=bool(telegram.get("enabled", False)),
            bot_token=str(telegram.get("bot_token") or ""),
            chat_id=str(telegram.get("chat_id") or ""),
        ),
    )


def _mapping(value: Any, name: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(
            code="invalid_field",
            message=f"{name} must be a mapping",
        )
    return value


def _number(value: Any, name: str, minimum: float, maximum: Optional[float] = None) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(code="invalid_field", message=f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            code="invalid_field",
            message=f"{name} must be a number",
            details={"value": value},
        )
    if not math.isfinite(number):
        raise ConfigurationError(
            code="invalid_field",
            message=f"{name} must be a finite number",
            details={"value": value},
        )
    if number < minimum:
        raise ConfigurationError(
            code="invalid_field",
            message=f"{name} must be >= {minimum}",
            details={"value": value},
        )
    if maximum is not None and number > maximum:
        raise ConfigurationError(
            code="invalid_field",
            message=f"{name} must be <= {maximum}",
            details={"value": value},
        )
    return number


def _absolute(path: Any, base_dir: Path) -> Path:
    candidate = Path(str(path)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return candidate.resolve()
