"""SiteWatch - Periodic availability monitor with state-transition alerts."""

import argparse
import logging
import sys
from datetime import UTC, datetime

__version__ = "0.1.0"

# Exit status for configuration and state errors, distinct from "something is down" (1)
EXIT_ERROR = 2

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the run command - check all URLs once and record transitions."""
    _setup_logging(args.verbose)

    logger.info("SiteWatch %s starting...", __version__)

    # Import here to allow logging setup first
    from .config import ConfigError, load_config
    from .engine import process
    from .prober import check_all
    from .reporter import ReportWriter, exit_code, log_outcomes
    from .state import StateError, StateStore

    # 1. Load configuration
    try:
        config = load_config(args.config)
        logger.info("Configuration loaded from %s", args.config)
        logger.info("Monitoring %d URLs", len(config.urls))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(EXIT_ERROR)

    # 2. Check all URLs concurrently
    outcomes = check_all(
        config.urls,
        timeout_ms=config.monitor.timeout_ms,
        slow_threshold_ms=config.monitor.slow_threshold_ms,
        max_workers=config.monitor.max_workers,
    )
    log_outcomes(outcomes)

    # 3. Derive transitions from the previous run's state
    store = StateStore(config.state.directory)
    prev_snapshot, prev_down_since = store.load()
    result = process(outcomes, prev_snapshot, prev_down_since, datetime.now(UTC))

    # 4. Persist the new state
    try:
        store.save(result.snapshot, result.down_since)
    except StateError as e:
        logger.error("State error: %s", e)
        sys.exit(EXIT_ERROR)

    # 5. Write reports and signal the run outcome
    try:
        ReportWriter(config.reports.directory).write(result)
    except OSError as e:
        logger.error("Failed to write reports: %s", e)

    sys.exit(exit_code(result))


def _cmd_notify(args: argparse.Namespace) -> None:
    """Execute the notify command - post the last run's reports to the webhook."""
    _setup_logging(args.verbose)

    from .config import ConfigError, load_config
    from .notifier import Notifier, build_message
    from .reporter import ReportWriter

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(EXIT_ERROR)

    notifier = Notifier(config.alerts)
    if not notifier.enabled:
        logger.error("No webhook configured (alerts.webhook_url or SITEWATCH_WEBHOOK_URL)")
        sys.exit(EXIT_ERROR)

    reports = ReportWriter(config.reports.directory)
    message = build_message(reports.load_alert_lines(), reports.load_recoveries())
    if message is None:
        logger.info("Nothing to notify")
        return

    if not notifier.send(message):
        sys.exit(1)


def _cmd_test_alert(args: argparse.Namespace) -> None:
    """Execute the test-alert command - verify webhook configuration."""
    from .config import ConfigError, load_config
    from .notifier import Notifier

    # 1. Load configuration
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(EXIT_ERROR)

    # 2. Check that a webhook is configured
    notifier = Notifier(config.alerts, max_retries=0)
    if not notifier.enabled:
        print("Error: No webhook configured in alerts section")
        sys.exit(EXIT_ERROR)

    # 3. Send test message
    print("Testing webhook...\n")
    if notifier.send_test():
        print("✓ SUCCESS")
    else:
        print("✗ FAILED")
        sys.exit(1)


def main() -> None:
    """Main entry point for the sitewatch package."""
    parser = argparse.ArgumentParser(
        description="SiteWatch - Periodic availability monitor"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"sitewatch {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Run subcommand (default behavior)
    run_parser = subparsers.add_parser(
        "run",
        help="Check all URLs once; exits 1 if any URL is down (default)",
    )
    run_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    run_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    run_parser.set_defaults(func=_cmd_run)

    # Notify subcommand
    notify_parser = subparsers.add_parser(
        "notify",
        help="Post the last run's alerts and recoveries to the webhook",
    )
    notify_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    notify_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    notify_parser.set_defaults(func=_cmd_notify)

    # Test-alert subcommand
    test_alert_parser = subparsers.add_parser(
        "test-alert",
        help="Test webhook alert configuration",
    )
    test_alert_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    test_alert_parser.set_defaults(func=_cmd_test_alert)

    args = parser.parse_args()

    # Default to 'run' if no command specified
    if args.command is None:
        args.config = "config.yaml"
        args.verbose = False
        args.func = _cmd_run

    args.func(args)
