"""Data models for check outcomes, alerts and run transitions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Status(str, Enum):
    """Classified state of a monitored URL."""

    UP = "up"
    SLOW = "slow"
    DOWN = "down"


@dataclass(frozen=True)
class CheckOutcome:
    """Result of a single URL check.

    Attributes:
        url: Full URL that was checked.
        status: Classified status (up, slow or down).
        reason: Failure or slowness detail, None when up.
        latency_ms: Wall-clock time from request start to response or failure.
    """

    url: str
    status: Status
    reason: str | None
    latency_ms: int


@dataclass(frozen=True)
class DownAlert:
    """A URL that went down this run."""

    url: str
    reason: str | None

    def to_line(self) -> str:
        return f"DOWN: {self.url} ({self.reason})"


@dataclass(frozen=True)
class SlowAlert:
    """A URL that went from up to slow this run."""

    url: str
    latency_ms: int
    detected_at: datetime

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "timeMs": self.latency_ms,
            "detectedAt": self.detected_at.isoformat(),
        }


@dataclass(frozen=True)
class RecoveryAlert:
    """A URL that came back up after being down or slow.

    Attributes:
        url: Recovered URL.
        recovered_from: Status the URL recovered from (down or slow).
        resolved_at: Time the recovery was observed.
        incident_started_at: First observed down time, only for down recoveries.
        duration_ms: Incident duration in milliseconds, only for down recoveries.
        duration_text: Human readable duration, only for down recoveries.
    """

    url: str
    recovered_from: Status
    resolved_at: datetime
    incident_started_at: datetime | None = None
    duration_ms: int | None = None
    duration_text: str | None = None

    def to_dict(self) -> dict:
        data: dict = {
            "url": self.url,
            "recoveredFrom": self.recovered_from.value,
        }
        if self.incident_started_at is not None:
            data["incidentStartedAt"] = self.incident_started_at.isoformat()
        data["resolvedAt"] = self.resolved_at.isoformat()
        if self.duration_ms is not None:
            data["durationMs"] = self.duration_ms
        if self.duration_text is not None:
            data["durationText"] = self.duration_text
        return data


@dataclass
class TransitionResult:
    """Everything a single run derives from its outcomes and the prior state.

    Attributes:
        snapshot: New status per URL, limited to URLs checked this run.
        down_since: Incident start per URL that is currently down.
        alerts: Human readable DOWN/SLOW alert lines.
        down_alerts: Structured alerts for URLs that newly went down.
        recoveries: Recoveries from down or slow.
        slow_alerts: Structured alerts for URLs that went from up to slow.
        any_down: True if at least one URL was down this run.
    """

    snapshot: dict[str, Status] = field(default_factory=dict)
    down_since: dict[str, datetime] = field(default_factory=dict)
    alerts: list[str] = field(default_factory=list)
    down_alerts: list[DownAlert] = field(default_factory=list)
    recoveries: list[RecoveryAlert] = field(default_factory=list)
    slow_alerts: list[SlowAlert] = field(default_factory=list)
    any_down: bool = False
