"""
Notification Router module for the certificate monitor.

Provides notification channels (Slack, Email, Webhook, Discord, Telegram) and a
router that fans a single notification out to every registered channel.

Channels never retry internally. A failed delivery is reported back to the
caller; the orchestrator then leaves the cooldown state untouched so the
threshold is attempted again on the next run.
"""

import asyncio
import json
import re
import smtplib
import ssl
import string
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

import httpx

from .config import (
    DiscordConfig,
    EmailConfig,
    NotificationConfig,
    SlackConfig,
    TelegramConfig,
    WebhookConfig,
)
from .enums import Urgency
from .exceptions import ConfigurationError, NotificationError
from .models import Notification

if TYPE_CHECKING:
    from .audit_logger import AuditLogger


DEFAULT_TIMEOUT_SECONDS = 10.0
TIME_FORMAT = "%Y-%m-%d %H:%M:%S %Z"
ALERT_TITLE = "SSL Certificate Expiry Alert"
FOOTER_TEXT = "SSL Certificate Monitor"

WEBHOOK_TEMPLATE_FIELDS = frozenset({
    "domain", "host", "port", "name", "days_remaining",
    "expiry", "threshold", "check_time",
})

# {{.Field}} or {{ .Field }} as written for Go text/template
GO_TEMPLATE_PATTERN = re.compile(r"\{\{\s*\.")


def format_time(value: datetime) -> str:
    """Format a timestamp for message bodies."""
    return value.strftime(TIME_FORMAT)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChannelResult:
    """Result of a single channel delivery attempt."""

    channel: str
    success: bool
    error: Optional[str] = None


@dataclass
class DispatchResult:
    """Aggregate result of sending one notification to every channel."""

    results: list[ChannelResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True only if every channel succeeded."""
        return all(result.success for result in self.results)

    @property
    def failures(self) -> list[ChannelResult]:
        return [result for result in self.results if not result.success]

    @property
    def succeeded_channels(self) -> list[str]:
        return [result.channel for result in self.results if result.success]

    def error_summary(self) -> str:
        return "; ".join(
            f"{result.channel}: {result.error}" for result in self.failures
        )


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for notification channels."""

    @abstractmethod
    async def send(self, notification: Notification) -> ChannelResult:
        """
        Deliver a notification.

        Args:
            notification: The notification to deliver

        Returns:
            ChannelResult describing success or the failure reason
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        """
        Get the channel name.

        Returns:
            The name of this notification channel
        """
        ...


async def _http_deliver(
    channel_name: str,
    method: str,
    url: str,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **request_kwargs,
) -> ChannelResult:
    """Issue one HTTP request and classify the outcome."""
    async with httpx.AsyncClient(transport=transport, timeout=timeout) as client:
        try:
            response = await client.request(method, url, **request_kwargs)
        except httpx.HTTPError as e:
            return ChannelResult(
                channel=channel_name,
                success=False,
                error=f"Request failed: {type(e).__name__}: {e}",
            )

    if not 200 <= response.status_code < 300:
        return ChannelResult(
            channel=channel_name,
            success=False,
            error=f"Unexpected status code: {response.status_code}",
        )
    return ChannelResult(channel=channel_name, success=True)


class SlackChannel:
    """Slack notification channel using an incoming webhook."""

    def __init__(
        self,
        config: SlackConfig,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not config.webhook_url:
            raise ConfigurationError(
                code="missing_field",
                message="Slack: webhook URL is required",
            )
        self._config = config
        self._timeout = timeout
        self._transport = transport

    async def send(self, notification: Notification) -> ChannelResult:
        """Send notification via Slack webhook."""
        return await _http_deliver(
            self.get_name(),
            "POST",
            self._config.webhook_url,
            self._timeout,
            self._transport,
            json=self.build_message(notification),
        )

    def get_name(self) -> str:
        return "Slack"

    def build_message(self, notification: Notification) -> dict:
        text = (
            f"⚠️ {ALERT_TITLE}\n"
            f"*Domain:* {notification.display_name}\n"
            f"*Days Remaining:* {notification.days_remaining:.1f}\n"
            f"*Expiry Date:* {format_time(notification.expiry)}\n"
            f"*Threshold:* {notification.threshold} days\n"
            f"*Check Time:* {format_time(_now())}"
        )
        message = {"text": text}
        if self._config.username:
            message["username"] = self._config.username
        if self._config.icon_emoji:
            message["icon_emoji"] = self._config.icon_emoji
        if self._config.channel:
            message["channel"] = self._config.channel
        return message


class DiscordChannel:
    """Discord notification channel using Webhooks."""

    COLORS = {
        Urgency.CRITICAL: 0xFF0000,
        Urgency.WARNING: 0xFFA500,
        Urgency.INFO: 0x00FF00,
    }

    def __init__(
        self,
        config: DiscordConfig,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not config.webhook_url:
            raise ConfigurationError(
                code="missing_field",
                message="Discord: webhook URL is required",
            )
        self._config = config
        self._timeout = timeout
        self._transport = transport

    async def send(self, notification: Notification) -> ChannelResult:
        """Send notification via Discord Webhook."""
        # Discord answers 204 No Content on success
        return await _http_deliver(
            self.get_name(),
            "POST",
            self._config.webhook_url,
            self._timeout,
            self._transport,
            json=self.build_message(notification),
        )

    def get_name(self) -> str:
        return "Discord"

    def build_message(self, notification: Notification) -> dict:
        now = _now()
        target = notification.target
        embed = {
            "title": f"⚠️ {ALERT_TITLE}",
            "description": f"Certificate for **{notification.display_name}** is expiring soon!",
            "color": self.COLORS[notification.urgency],
            "fields": [
                {"name": "Domain", "value": notification.display_name, "inline": True},
                {"name": "Host", "value": target.address, "inline": True},
                {"name": "Days Remaining", "value": f"{notification.days_remaining:.1f}", "inline": True},
                {"name": "Expiry Date", "value": format_time(notification.expiry), "inline": True},
                {"name": "Threshold", "value": f"{notification.threshold} days", "inline": True},
                {"name": "Check Time", "value": format_time(now), "inline": True},
            ],
            "timestamp": now.isoformat(),
            "footer": {"text": FOOTER_TEXT},
        }
        message: dict = {"embeds": [embed]}
        if self._config.username:
            message["username"] = self._config.username
        if self._config.avatar_url:
            message["avatar_url"] = self._config.avatar_url
        return message


class EmailChannel:
    """Email notification channel using SMTP."""

    def __init__(
        self,
        config: EmailConfig,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if not config.smtp_host:
            raise ConfigurationError(code="missing_field", message="Email: SMTP host is required")
        if not config.from_address:
            raise ConfigurationError(code="missing_field", message="Email: from address is required")
        if not config.to_addresses:
            raise ConfigurationError(code="missing_field", message="Email: to address is required")
        self._config = config
        self._timeout = timeout

    async def send(self, notification: Notification) -> ChannelResult:
        """Send notification via Email."""
        # smtplib blocks, so it runs in the default executor
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_sync, notification)
        except (smtplib.SMTPException, OSError) as e:
            return ChannelResult(
                channel=self.get_name(),
                success=False,
                error=f"Failed to send email: {type(e).__name__}: {e}",
            )
        return ChannelResult(channel=self.get_name(), success=True)

    def _send_sync(self, notification: Notification) -> None:
        msg = self.build_message(notification)
        with smtplib.SMTP(
            self._config.smtp_host, self._config.smtp_port, timeout=self._timeout
        ) as server:
            if self._config.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self._config.username:
                server.login(self._config.username, self._config.password)
            server.sendmail(
                self._config.from_address,
                self._config.to_addresses,
                msg.as_string(),
            )

    def get_name(self) -> str:
        return "Email"

    def build_message(self, notification: Notification) -> MIMEText:
        subject = (
            f"{ALERT_TITLE}: {notification.display_name} "
            f"({notification.days_remaining:.1f} days remaining)"
        )
        msg = MIMEText(self.build_body(notification), "plain", "utf-8")
        msg["From"] = self._config.from_address
        msg["To"] = ", ".join(self._config.to_addresses)
        msg["Subject"] = subject
        return msg

    def build_body(self, notification: Notification) -> str:
        target = notification.target
        lines = [
            ALERT_TITLE,
            "=" * len(ALERT_TITLE),
            "",
            f"Domain: {notification.display_name}",
            f"Host: {target.address}",
            f"Days Remaining: {notification.days_remaining:.1f}",
            f"Expiry Date: {format_time(notification.expiry)}",
            f"Threshold: {notification.threshold} days",
            f"Check Time: {format_time(_now())}",
            "",
            "Action Required:",
        ]
        if notification.urgency is Urgency.CRITICAL:
            lines.append("  ⚠️  Certificate expires soon! Please renew immediately.")
        elif notification.urgency is Urgency.WARNING:
            lines.append("  ⚠️  Certificate expires within 30 days. Plan for renewal.")
        else:
            lines.append("  ℹ️  Certificate expiry approaching. Monitor regularly.")
        lines.extend(["", f"This is an automated notification from {FOOTER_TEXT}.", ""])
        return "\n".join(lines)


class WebhookChannel:
    """
    Generic webhook notification channel.

    Without a ``body_template`` a JSON document is posted. A template is a
    ``str.format`` string over the fields in WEBHOOK_TEMPLATE_FIELDS; literal
    braces must be doubled (``{{`` / ``}}``). Go-style placeholders such as
    ``{{.Domain}}`` are rejected since they would render as literal text.
    """

    def __init__(
        self,
        config: WebhookConfig,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not config.url:
            raise ConfigurationError(
                code="missing_field",
                message="Webhook: URL is required",
            )
        if config.body_template:
            self._validate_template(config.body_template)
        self._config = config
        self._method = (config.method or "POST").upper()
        self._headers = dict(config.headers)
        self._timeout = timeout
        self._transport = transport

    @staticmethod
    def _validate_template(template: str) -> None:
        if GO_TEMPLATE_PATTERN.search(template):
            raise ConfigurationError(
                code="invalid_field",
                message="Webhook: body template uses Go-style {{.Field}} placeholders; use {field} instead",
            )
        try:
            fields = [
                field_name
                for _, field_name, _, _ in string.Formatter().parse(template)
                if field_name is not None
            ]
        except ValueError as e:
            raise ConfigurationError(
                code="invalid_field",
                message=f"Webhook: failed to parse body template: {e}",
            )
        for field_name in fields:
            root = field_name.split(".", 1)[0].split("[", 1)[0]
            if root not in WEBHOOK_TEMPLATE_FIELDS:
                raise ConfigurationError(
                    code="invalid_field",
                    message=f"Webhook: unknown template field {field_name!r}",
                    details={"allowed": sorted(WEBHOOK_TEMPLATE_FIELDS)},
                )

    async def send(self, notification: Notification) -> ChannelResult:
        """Send notification via HTTP webhook."""
        try:
            body = self.build_body(notification)
        except NotificationError as e:
            return ChannelResult(channel=self.get_name(), success=False, error=e.message)

        headers = dict(self._headers)
        if body and not any(key.lower() == "content-type" for key in headers):
            headers["Content-Type"] = "application/json" if "{" in body else "text/plain"

        return await _http_deliver(
            self.get_name(),
            self._method,
            self._config.url,
            self._timeout,
            self._transport,
            content=body.encode("utf-8"),
            headers=headers,
        )

    def get_name(self) -> str:
        return "Webhook"

    def build_body(self, notification: Notification) -> str:
        target = notification.target
        now = _now()
        if self._config.body_template:
            try:
                return self._config.body_template.format(
                    domain=target.host,
                    host=target.host,
                    port=target.port,
                    name=target.name or "",
                    days_remaining=notification.days_remaining,
                    expiry=notification.expiry,
                    threshold=notification.threshold,
                    check_time=now,
                )
            except (ValueError, KeyError, IndexError, AttributeError) as e:
                raise NotificationError(
                    code="template_error",
                    message=f"Failed to render body template: {e}",
                )
        return json.dumps({
            "domain": target.host,
            "name": target.name or "",
            "days_remaining": notification.days_remaining,
            "expiry": notification.expiry.isoformat(),
            "threshold": notification.threshold,
            "check_time": now.isoformat(),
            "message": (
                f"SSL certificate for {target.host} expires in "
                f"{notification.days_remaining:.1f} days"
            ),
        })


class TelegramChannel:
    """Telegram notification channel using Bot API."""

    def __init__(
        self,
        config: TelegramConfig,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not config.bot_token:
            raise ConfigurationError(code="missing_field", message="Telegram: bot token is required")
        if not config.chat_id:
            raise ConfigurationError(code="missing_field", message="Telegram: chat ID is required")
        self._chat_id = config.chat_id
        self._base_url = f"https://api.telegram.org/bot{config.bot_token}"
        self._timeout = timeout
        self._transport = transport

    async def send(self, notification: Notification) -> ChannelResult:
        """Send notification via Telegram Bot API."""
        return await _http_deliver(
            self.get_name(),
            "POST",
            f"{self._base_url}/sendMessage",
            self._timeout,
            self._transport,
            json={
                "chat_id": self._chat_id,
                "text": self.build_message(notification),
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )

    def get_name(self) -> str:
        return "Telegram"

    def build_message(self, notification: Notification) -> str:
        icon = "🔴" if notification.urgency is Urgency.CRITICAL else "🟠"
        return (
            f"{icon} <b>{ALERT_TITLE}</b>\n\n"
            f"Domain: <code>{notification.display_name}</code>\n"
            f"Host: <code>{notification.target.address}</code>\n"
            f"Days remaining: {notification.days_remaining:.1f}\n"
            f"Expiry: {format_time(notification.expiry)}\n"
            f"Threshold: {notification.threshold} days"
        )


class NotificationRouter:
    """
    Fans a notification out to every registered channel.

    Channels are invoked in registration order and a failing channel never
    stops the remaining ones. The aggregate result succeeds only when every
    channel succeeded.
    """

    def __init__(self, logger: Optional["AuditLogger"] = None) -> None:
        """
        Initialize the notification router.

        Args:
            logger: Optional audit logger for per-channel outcomes
        """
        self._channels: list[NotificationChannel] = []
        self._logger = logger

    def register_channel(self, channel: NotificationChannel) -> None:
        self._channels.append(channel)

    def unregister_channel(self, channel_name: str) -> bool:
        """
        Unregister a notification channel by name.

        Returns:
            True if channel was found and removed, False otherwise
        """
        for i, channel in enumerate(self._channels):
            if channel.get_name() == channel_name:
                self._channels.pop(i)
                return True
        return False

    @property
    def channels(self) -> list[NotificationChannel]:
        """Get list of registered channels."""
        return self._channels.copy()

    async def notify(self, notification: Notification) -> DispatchResult:
        """
        Send a notification to all registered channels.

        Args:
            notification: The notification to deliver

        Returns:
            DispatchResult with one ChannelResult per channel, in order
        """
        dispatch = DispatchResult()
        for channel in self._channels:
            channel_name = channel.get_name()
            try:
                result = await channel.send(notification)
            except Exception as e:
                result = ChannelResult(
                    channel=channel_name,
                    success=False,
                    error=f"{type(e).__name__}: {e}",
                )
            dispatch.results.append(result)
            self._log_result(result, notification)
        return dispatch

    def _log_result(self, result: ChannelResult, notification: Notification) -> None:
        if self._logger is None:
            return
        data = {
            "channel": result.channel,
            "domain": notification.display_name,
            "threshold": notification.threshold,
        }
        if result.success:
            self._logger.debug("NotificationRouter", "Notification delivered", data)
        else:
            data["error"] = result.error
            self._logger.warn("NotificationRouter", "Notification delivery failed", data)


def build_router(
    config: NotificationConfig,
    logger: Optional["AuditLogger"] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> NotificationRouter:
    """
    Create a notification router with every enabled channel.

    Channels are registered in the order Slack, Email, Webhook, Discord,
    Telegram.

    Raises:
        ConfigurationError: If an enabled channel is missing required fields
    """
    router = NotificationRouter(logger=logger)

    if config.slack.enabled:
        router.register_channel(SlackChannel(config.slack, transport=transport))

    if config.email.enabled:
        router.register_channel(EmailChannel(config.email))

    if config.webhook.enabled:
        router.register_channel(WebhookChannel(config.webhook, transport=transport))

    if config.discord.enabled:
        router.register_channel(DiscordChannel(config.discord, transport=transport))

    if config.telegram.enabled:
        router.register_channel(TelegramChannel(config.telegram, transport=transport))

    return router
