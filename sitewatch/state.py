"""JSON file persistence for per-URL status and open incident start times."""

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from .models import Status

logger = logging.getLogger(__name__)

STATUS_FILE = "status.json"
DOWN_SINCE_FILE = "down_since.json"


class StateError(Exception):
    """Raised when state cannot be written."""

    pass


def _read_document(path: Path) -> dict:
    """Read a JSON object from disk, returning {} when missing or corrupt."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable state file %s: %s", path, e)
        return {}

    if not isinstance(data, dict):
        logger.warning("Ignoring state file %s: expected a JSON object, got %s", path, type(data).__name__)
        return {}

    return data


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    # Naive timestamps are assumed to be UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class StateStore:
    """Load and save the status and down-since documents.

    Both documents are mappings keyed by URL. ``save`` overwrites them
    entirely, which is how URLs that are no longer monitored disappear.

    Example:
        store = StateStore("./state")
        snapshot, down_since = store.load()
        ...
        store.save(result.snapshot, result.down_since)
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def status_path(self) -> Path:
        return self._directory / STATUS_FILE

    @property
    def down_since_path(self) -> Path:
        return self._directory / DOWN_SINCE_FILE

    def load(self) -> tuple[dict[str, Status], dict[str, datetime]]:
        """Load the previous snapshot and down-since mapping.

        Missing or corrupt documents yield empty mappings. Entries with an
        unknown status or an unparseable timestamp are dropped.

        Returns:
            Tuple of (status per URL, incident start per URL).
        """
        snapshot: dict[str, Status] = {}
        for url, value in _read_document(self.status_path).items():
            try:
                snapshot[url] = Status(value)
            except ValueError:
                logger.warning("Dropping unknown status %r for %s", value, url)

        down_since: dict[str, datetime] = {}
        for url, value in _read_document(self.down_since_path).items():
            timestamp = _parse_timestamp(value)
            if timestamp is None:
                logger.warning("Dropping invalid down-since timestamp %r for %s", value, url)
                continue
            down_since[url] = timestamp

        logger.debug("Loaded state: %d status entries, %d open incidents", len(snapshot), len(down_since))
        return snapshot, down_since

    def save(self, snapshot: dict[str, Status], down_since: dict[str, datetime]) -> None:
        """Overwrite both documents with the given mappings.

        Raises:
            StateError: If the state directory or files cannot be written.
        """
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            self._write_document(self.status_path, {url: Status(s).value for url, s in snapshot.items()})
            self._write_document(self.down_since_path, {url: ts.isoformat() for url, ts in down_since.items()})
        except OSError as e:
            raise StateError(f"Failed to save state to {self._directory}: {e}") from e

        logger.debug("Saved state: %d status entries, %d open incidents", len(snapshot), len(down_since))

    @staticmethod
    def _write_document(path: Path, data: dict) -> None:
        # Write to a sibling temp file first so readers never see a partial document
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
