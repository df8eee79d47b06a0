"""Report files and run outcome for the external scheduler."""

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from .models import CheckOutcome, Status, TransitionResult

logger = logging.getLogger(__name__)

ALERTS_FILE = "alerts.txt"
RECOVERIES_FILE = "recoveries.json"
SLOW_ALERTS_FILE = "slow_alerts.json"

EXIT_OK = 0
EXIT_DOWN = 1


def exit_code(result: TransitionResult) -> int:
    """Return the process exit status for a run: non-zero when anything is down."""
    return EXIT_DOWN if result.any_down else EXIT_OK


def log_outcomes(outcomes: Iterable[CheckOutcome]) -> None:
    """Log one status line per checked URL."""
    for outcome in outcomes:
        if outcome.status is Status.DOWN:
            logger.info("DOWN: %s (%s)", outcome.url, outcome.reason)
        elif outcome.status is Status.SLOW:
            logger.info("SLOW: %s (%dms)", outcome.url, outcome.latency_ms)
        else:
            logger.info("UP: %s (%dms)", outcome.url, outcome.latency_ms)


class ReportWriter:
    """Writes per-run alert, recovery and slow-alert artifacts.

    A file is only present after a run that produced content for it, so the
    presence of ``alerts.txt`` alone tells a CI step whether to notify.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def write(self, result: TransitionResult) -> list[Path]:
        """Write the reports of a run and remove those left over from earlier runs.

        Args:
            result: Transition result of the current run.

        Returns:
            Paths of the files written.
        """
        self._directory.mkdir(parents=True, exist_ok=True)
        written: list[Path] = []

        if result.alerts:
            logger.warning("ALERTS:\n%s", "\n".join(result.alerts))
        for recovery in result.recoveries:
            if recovery.duration_text:
                logger.info("RECOVERED: %s (down for %s)", recovery.url, recovery.duration_text)
            else:
                logger.info("RECOVERED: %s (was %s)", recovery.url, recovery.recovered_from.value)

        alerts_text = "\n".join(result.alerts) + "\n" if result.alerts else None
        recoveries = {"recoveries": [r.to_dict() for r in result.recoveries]} if result.recoveries else None
        slow_alerts = {"slowAlerts": [s.to_dict() for s in result.slow_alerts]} if result.slow_alerts else None

        for name, content in (
            (ALERTS_FILE, alerts_text),
            (RECOVERIES_FILE, recoveries),
            (SLOW_ALERTS_FILE, slow_alerts),
        ):
            path = self._directory / name
            if content is None:
                if path.exists():
                    path.unlink()
                    logger.debug("Removed stale report %s", path)
                continue

            with open(path, "w", encoding="utf-8") as f:
                if isinstance(content, str):
                    f.write(content)
                else:
                    json.dump(content, f, indent=2)
                    f.write("\n")
            written.append(path)
            logger.debug("Wrote report %s", path)

        if not result.any_down:
            logger.info("All sites healthy (no DOWN)")

        return written

    def load_alert_lines(self) -> list[str]:
        """Read the alert lines written by the last run, if any."""
        path = self._directory / ALERTS_FILE
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            return [line for line in f.read().splitlines() if line.strip()]

    def load_recoveries(self) -> list[dict]:
        """Read the recovery entries written by the last run, if any."""
        path = self._directory / RECOVERIES_FILE
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable recovery report %s: %s", path, e)
            return []
        if not isinstance(data, dict) or not isinstance(data.get("recoveries"), list):
            logger.warning("Ignoring malformed recovery report %s", path)
            return []
        return data["recoveries"]
