"""
Check Orchestrator for the certificate monitor.

This module provides the orchestration layer that coordinates all components
for one monitoring run:
- Certificate checker for leaf expiry
- Threshold evaluation against the configured reminder days
- Cooldown state store to suppress repeated alerts
- Notification routing to every enabled channel

Domains are processed strictly one at a time in configured order. A failure
on one domain or one channel never aborts the run; only a cancellation
signal does, and it is only honoured between domains.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

from .audit_logger import AuditLogger
from .checker import CertificateChecker
from .config import MonitorConfig
from .exceptions import PersistenceError, RunCancelledError
from .models import CheckOutcome, DomainTarget, Notification, RunSummary, VerifyOutcome
from .notifications import NotificationRouter
from .state_store import StateStore


def crossed_thresholds(days_remaining: float, reminder_days: list[int]) -> list[int]:
    """
    Return the thresholds crossed by a certificate, in configured order.

    A threshold ``t`` is crossed when ``0 < days_remaining <= t``. An
    expired certificate crosses nothing.
    """
    if days_remaining <= 0:
        return []
    return [threshold for threshold in reminder_days if days_remaining <= threshold]


class CheckOrchestrator:
    """
    Main orchestrator for certificate expiry checks.

    Coordinates the checker, state store and notification router. A
    notification is recorded in the state store only when every channel
    delivered it; on partial failure nothing is recorded, so the next
    eligible run sends to all channels again.
    """

    def __init__(
        self,
        config: MonitorConfig,
        state_store: StateStore,
        notification_router: NotificationRouter,
        checker: Optional[CertificateChecker] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the check orchestrator.

        Args:
            config: Monitor configuration
            state_store: Cooldown state store
            notification_router: Router holding the enabled channels
            checker: Certificate checker (a default one is created if omitted)
            logger: Optional audit logger
        """
        self._config = config
        self._state_store = state_store
        self._notification_router = notification_router
        self._checker = checker or CertificateChecker()
        self._logger = logger

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> RunSummary:
        """
        Check every configured domain and send due notifications.

        Args:
            cancel_event: When set, the run stops before the next domain

        Returns:
            RunSummary with run counters

        Raises:
            RunCancelledError: If cancellation was requested mid-run
        """
        summary = RunSummary(started_at=datetime.now(timezone.utc).isoformat())
        self._log_info(
            "Starting SSL certificate monitoring",
            {
                "domains": len(self._config.domains),
                "cooldown_hours": self._state_store.cooldown.total_seconds() / 3600,
            },
        )

        for target in self._config.domains:
            if cancel_event is not None and cancel_event.is_set():
                self._log_warn(
                    "Monitoring run cancelled",
                    {"domains_checked": summary.domains_checked},
                )
                raise RunCancelledError(
                    code="cancelled",
                    message="Monitoring run cancelled",
                    details=summary.to_dict(),
                )

            self._log_debug(
                "Checking domain",
                {"domain": target.display_name, "host": target.host, "port": target.port},
            )
            outcome = await self._probe(target)
            summary.domains_checked += 1

            if not outcome.success:
                self._log_warn(
                    "Failed to check domain",
                    {
                        "domain": target.display_name,
                        "error": outcome.error,
                        "error_code": outcome.error_code.value if outcome.error_code else None,
                    },
                )
                summary.domains_failed += 1
                continue

            self._log_info(
                "Certificate check successful",
                {
                    "domain": target.display_name,
                    "days_remaining": round(outcome.days_remaining, 2),
                    "expiry": outcome.expiry.strftime("%Y-%m-%d"),
                },
            )

            if outcome.expired:
                summary.expired_domains.append(target.display_name)
                self._log_error(
                    "Certificate has expired!",
                    {
                        "domain": target.display_name,
                        "days_remaining": round(outcome.days_remaining, 2),
                        "expiry": outcome.expiry.strftime("%Y-%m-%d"),
                    },
                )
                continue

            summary.notifications_sent += await self._process_thresholds(outcome)

        summary.finished_at = datetime.now(timezone.utc).isoformat()
        self._log_info("Monitoring completed", {
            "domains_checked": summary.domains_checked,
            "errors": summary.domains_failed,
            "notifications_sent": summary.notifications_sent,
        })
        return summary

    async def _probe(self, target: DomainTarget) -> CheckOutcome:
        # The handshake blocks; keep the event loop free for signal handlers
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._checker.check, target)

    async def _process_thresholds(self, outcome: CheckOutcome) -> int:
        """
        Notify for every crossed threshold that is out of cooldown.

        Returns:
            Number of notifications delivered and recorded
        """
        target = outcome.target
        sent = 0

        for threshold in crossed_thresholds(outcome.days_remaining, self._config.reminder_days):
            if not self._state_store.should_send(target.state_key, threshold):
                last_sent = self._state_store.get_last_sent(target.state_key, threshold)
                self._log_debug("Skipping notification due to cooldown", {
                    "domain": target.display_name,
                    "threshold": threshold,
                    "last_sent": last_sent.isoformat() if last_sent else None,
                })
                continue

            self._log_info("Sending notification", {
                "domain": target.display_name,
                "days_remaining": round(outcome.days_remaining, 2),
                "threshold": threshold,
            })

            notification = Notification(
                target=target,
                days_remaining=outcome.days_remaining,
                expiry=outcome.expiry,
                threshold=threshold,
            )
            dispatch = await self._notification_router.notify(notification)

            if not dispatch.success:
                self._log_error("Failed to send notification", {
                    "domain": target.display_name,
                    "threshold": threshold,
                    "error": dispatch.error_summary(),
                    "succeeded_channels": dispatch.succeeded_channels,
                })
                continue

            try:
                save_result = self._state_store.mark_sent(target.state_key, threshold)
            except PersistenceError as e:
                if self._logger:
                    self._logger.log_error(
                        "StateStore",
                        "Failed to update state",
                        error=e,
                        additional_data={"domain": target.display_name, "threshold": threshold},
                    )
                continue

            if save_result.used_fallback:
                self._log_warn("State file written to fallback location", {
                    "requested_path": str(save_result.fallback_from),
                    "path": str(save_result.path),
                })
            sent += 1

        return sent

    async def verify_all(self) -> list[VerifyOutcome]:
        """
        Strictly verify the certificate chain of every configured domain.

        Purely diagnostic: thresholds, notifications and state are untouched.
        """
        self._log_info("Verifying certificate chains", {"domains": len(self._config.domains)})
        loop = asyncio.get_running_loop()
        outcomes = []

        for target in self._config.domains:
            self._log_debug("Verifying domain", {"domain": target.display_name})
            outcome = await loop.run_in_executor(None, self._checker.verify_chain, target)
            if outcome.verified:
                self._log_info(
                    "Certificate verification successful",
                    {"domain": target.display_name},
                )
            else:
                self._log_warn(
                    "Certificate verification failed",
                    {"domain": target.display_name, "error": outcome.error},
                )
            outcomes.append(outcome)

        return outcomes

    def _log_debug(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.debug("CheckOrchestrator", message, data)

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.info("CheckOrchestrator", message, data)

    def _log_warn(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.warn("CheckOrchestrator", message, data)

    def _log_error(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.error("CheckOrchestrator", message, data)

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def state_store(self) -> StateStore:
        return self._state_store

    @property
    def notification_router(self) -> NotificationRouter:
        return self._notification_router
