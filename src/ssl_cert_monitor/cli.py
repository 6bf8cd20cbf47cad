"""
Command-line interface for the certificate monitor.

A single invocation performs one pass over the configured domains and exits;
periodic execution is left to an external scheduler such as cron. Overlapping
invocations must be prevented by that scheduler because the state file is
rewritten as a whole.

Modes:
- default: check expiry and send due notifications
- --verify: strictly verify certificate chains, no notifications
- --clear-state: reset the notification cooldown state
"""

import argparse
import asyncio
import signal
import sys
from contextlib import suppress
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from . import __version__
from .audit_logger import AuditLogger
from .config import DEFAULT_CONFIG_PATH, MonitorConfig, load_config
from .enums import LogLevel
from .exceptions import CertMonitorError, ConfigurationError, PersistenceError, RunCancelledError
from .notifications import build_router
from .orchestrator import CheckOrchestrator
from .state_store import StateStore


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


def create_logger(config: MonitorConfig, verbose: bool = False) -> AuditLogger:
    """Create the run logger from the logging section of the configuration."""
    logger = AuditLogger.from_settings(
        level=config.logging.level,
        output_format=config.logging.output_format,
        file_path=config.logging.file,
    )
    if verbose:
        logger.min_level = LogLevel.DEBUG
    return logger


def create_orchestrator(config: MonitorConfig, logger: AuditLogger) -> CheckOrchestrator:
    """
    Wire the state store, notification router and orchestrator.

    Raises:
        PersistenceError: If the existing state file is unreadable
        ConfigurationError: If an enabled channel is misconfigured
    """
    state_store = StateStore(
        file_path=config.state.file,
        cooldown_hours=config.state.cooldown_hours,
    )
    router = build_router(config.notifications, logger=logger)
    channels = [channel.get_name() for channel in router.channels]
    logger.debug("cli", "Notification channels configured", {"channels": channels})
    if not channels:
        logger.warn("cli", "No notification channels enabled", {})

    return CheckOrchestrator(
        config=config,
        state_store=state_store,
        notification_router=router,
        logger=logger,
    )


async def run_monitor(orchestrator: CheckOrchestrator) -> int:
    """
    Run one monitoring pass, cancelling cleanly on SIGINT/SIGTERM.

    Returns:
        Exit code
    """
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        # Not supported by every event loop (e.g. on Windows)
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, cancel_event.set)

    try:
        summary = await orchestrator.run(cancel_event)
    except RunCancelledError as e:
        print(f"Cancelled: {e.message}", file=sys.stderr)
        return EXIT_CANCELLED
    finally:
        for sig in signals:
            with suppress(NotImplementedError):
                loop.remove_signal_handler(sig)

    print(
        f"Summary: {summary.domains_checked} checked, "
        f"{summary.domains_failed} failed, "
        f"{summary.notifications_sent} notification(s) sent"
    )
    if summary.expired_domains:
        print(f"Expired: {', '.join(summary.expired_domains)}")
    return EXIT_OK


async def run_verify(orchestrator: CheckOrchestrator) -> int:
    """Run the chain verification diagnostic for all domains."""
    outcomes = await orchestrator.verify_all()
    for outcome in outcomes:
        status = "OK" if outcome.verified else f"FAILED ({outcome.error})"
        print(f"{outcome.target.display_name}: {status}")
    return EXIT_OK


def clear_state(orchestrator: CheckOrchestrator) -> int:
    """Reset the cooldown state store."""
    result = orchestrator.state_store.clear()
    if result.path is None:
        print("No state file configured; nothing to clear.")
    else:
        print(f"State cleared: {result.path}")
    return EXIT_OK


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="ssl-cert-monitor",
        description="Check TLS certificate expiry and send reminder notifications",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config", "-c",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--verify",
        action="store_true",
        help="Verify certificate chains instead of sending notifications",
    )
    mode.add_argument(
        "--clear-state",
        action="store_true",
        help="Reset the notification cooldown state and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    load_dotenv(find_dotenv(usecwd=True))

    try:
        config = load_config(Path(args.config))
        logger = create_logger(config, verbose=args.verbose)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_ERROR

    try:
        try:
            orchestrator = create_orchestrator(config, logger)
        except (ConfigurationError, PersistenceError) as e:
            logger.log_error("cli", "Failed to initialize", error=e)
            print(f"Error: {e.message}", file=sys.stderr)
            return EXIT_ERROR

        try:
            if args.clear_state:
                return clear_state(orchestrator)
            if args.verify:
                return asyncio.run(run_verify(orchestrator))
            return asyncio.run(run_monitor(orchestrator))
        except CertMonitorError as e:
            logger.log_error("cli", "Run failed", error=e)
            print(f"Error: {e.message}", file=sys.stderr)
            return EXIT_ERROR
    finally:
        logger.close()


if __name__ == "__main__":
    sys.exit(main())
