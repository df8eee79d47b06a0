"""State transition detection between consecutive monitoring runs.

The engine is a pure function of this run's outcomes and the previous
persisted state. It never touches the filesystem or the network, and it
never mutates its inputs.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime

from .models import CheckOutcome, DownAlert, RecoveryAlert, SlowAlert, Status, TransitionResult

logger = logging.getLogger(__name__)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def humanize_duration(duration_ms: int) -> str:
    """Render a millisecond duration as minutes and seconds.

    Hours are not special-cased, long incidents are expressed as a large
    number of minutes.

    Examples:
        90000 -> "1 minute and 30 seconds"
        60000 -> "1 minute"
        45000 -> "45 seconds"
    """
    total_seconds = max(duration_ms, 0) // 1000
    minutes = total_seconds // 60
    seconds = total_seconds % 60

    if minutes >= 1:
        text = _plural(minutes, "minute")
        if seconds:
            text += f" and {_plural(seconds, 'second')}"
        return text
    return _plural(seconds, "second")


def _duration_ms(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() * 1000)


def process(
    outcomes: Iterable[CheckOutcome],
    prev_snapshot: Mapping[str, Status],
    prev_down_since: Mapping[str, datetime],
    now: datetime,
) -> TransitionResult:
    """Derive alerts, recoveries and the next persisted state.

    Outcomes are processed in the order given. The returned snapshot and
    down-since mappings only contain URLs present in ``outcomes``, so URLs
    that are no longer monitored are pruned.

    Args:
        outcomes: Check outcomes of this run.
        prev_snapshot: Last known status per URL.
        prev_down_since: First observed down time per URL with an open incident.
        now: Timestamp of this run.

    Returns:
        TransitionResult with the new state and everything to report.
    """
    result = TransitionResult()
    snapshot: dict[str, Status] = dict(prev_snapshot)
    down_since: dict[str, datetime] = dict(prev_down_since)
    seen: set[str] = set()

    for outcome in outcomes:
        url = outcome.url
        prev = prev_snapshot.get(url)
        seen.add(url)

        if outcome.status is Status.UP:
            started_at = down_since.pop(url, None)
            if prev is Status.DOWN and started_at is not None:
                duration_ms = _duration_ms(started_at, now)
                result.recoveries.append(
                    RecoveryAlert(
                        url=url,
                        recovered_from=Status.DOWN,
                        resolved_at=now,
                        incident_started_at=started_at,
                        duration_ms=duration_ms,
                        duration_text=humanize_duration(duration_ms),
                    )
                )
            elif prev is Status.SLOW:
                result.recoveries.append(RecoveryAlert(url=url, recovered_from=Status.SLOW, resolved_at=now))

        elif outcome.status is Status.SLOW:
            if prev is not Status.SLOW:
                result.alerts.append(f"SLOW: {url} ({outcome.latency_ms}ms)")
                if prev is Status.UP:
                    result.slow_alerts.append(SlowAlert(url=url, latency_ms=outcome.latency_ms, detected_at=now))
            # Slow is not down: an open incident ends without a recovery
            if down_since.pop(url, None) is not None:
                logger.debug("%s left DOWN for SLOW, clearing incident start", url)

        elif outcome.status is Status.DOWN:
            result.any_down = True
            if prev is not Status.DOWN:
                alert = DownAlert(url=url, reason=outcome.reason)
                result.down_alerts.append(alert)
                result.alerts.append(alert.to_line())
            if url not in down_since:
                down_since[url] = now

        snapshot[url] = outcome.status

    result.snapshot = {url: status for url, status in snapshot.items() if url in seen}
    result.down_since = {url: ts for url, ts in down_since.items() if url in seen}

    pruned = set(prev_snapshot) - seen
    if pruned:
        logger.info("Pruned %d URL(s) no longer monitored: %s", len(pruned), ", ".join(sorted(pruned)))

    return result
