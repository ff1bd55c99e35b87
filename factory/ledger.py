"""Processed-items ledger.

The ledger maps each item key to the outcome of its last pipeline run and is
the only record of which items have been handled. It lives in a flat JSON
file (processed.json) in the config directory:

    {
      "PROJ-1": {"processedAt": "2026-01-01T12:00:00+00:00",
                 "status": "completed", "prUrl": "https://..."},
      "PROJ-2": {"processedAt": "...", "status": "failed",
                 "error": "claude: Claude execution exceeded timeout of 600 seconds"}
    }

A key present in the ledger is never picked up by the poller again, whatever
its status. The ledger has a single writer (the daemon or a manual trigger),
so it does no locking of its own.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from factory.logger import get_logger

if TYPE_CHECKING:
    from factory.pipeline import Result

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerRecord:
    """Persisted summary of one pipeline run.

    Attributes:
        processed_at: When the run finished (timezone-aware UTC)
        status: "completed" or "failed"
        pr_url: Change request URL, if one was opened
        error: "<stage>: <cause>" for failed runs
    """

    processed_at: datetime
    status: str
    pr_url: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    @classmethod
    def from_result(cls, result: "Result") -> "LedgerRecord":
        """Summarize a pipeline Result, stamped with the current UTC time."""
        return cls(
            processed_at=datetime.now(UTC),
            status=result.status,
            pr_url=result.pr_url,
            error=result.error_text,
        )

    def to_dict(self) -> dict[str, str]:
        data = {
            "processedAt": self.processed_at.isoformat(),
            "status": self.status,
        }
        if self.pr_url:
            data["prUrl"] = self.pr_url
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LedgerRecord":
        """Parse a stored record.

        Raises:
            ValueError: If the record is malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"record must be an object, got {type(data).__name__}")
        status = data.get("status")
        if not isinstance(status, str) or not status:
            raise ValueError("record has no status")
        processed_at = datetime.fromisoformat(str(data.get("processedAt", "")))
        if processed_at.tzinfo is None:
            processed_at = processed_at.replace(tzinfo=UTC)
        return cls(
            processed_at=processed_at,
            status=status,
            pr_url=data.get("prUrl") or None,
            error=data.get("error") or None,
        )


class Ledger:
    """In-memory ledger backed by a JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._records: dict[str, LedgerRecord] = {}

    def load(self) -> None:
        """Replace the in-memory map with the file contents.

        A missing or unreadable file yields an empty ledger; malformed entries
        are skipped. Neither is an error.
        """
        self._records = {}
        if not self.path.exists():
            logger.debug(f"No ledger at {self.path}, starting empty")
            return

        try:
            raw = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read ledger {self.path}, starting empty: {e}")
            return

        if not isinstance(raw, dict):
            logger.warning(f"Ledger {self.path} is not a JSON object, starting empty")
            return

        for key, entry in raw.items():
            try:
                self._records[key] = LedgerRecord.from_dict(entry)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed ledger entry '{key}': {e}")

        logger.debug(f"Loaded {len(self._records)} ledger records from {self.path}")

    def save(self) -> None:
        """Write the full map to disk atomically (write to .tmp, then rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {key: record.to_dict() for key, record in self._records.items()}
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(data, indent=2) + "\n")
        tmp_path.replace(self.path)

    def contains(self, key: str) -> bool:
        return key in self._records

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def get(self, key: str) -> LedgerRecord | None:
        return self._records.get(key)

    def record(self, key: str, record: LedgerRecord) -> None:
        """Store the outcome for a key, replacing any earlier one.

        The caller persists with save().
        """
        self._records[key] = record

    def clear(self, key: str) -> bool:
        """Remove one key.

        Returns:
            True if the key was present
        """
        return self._records.pop(key, None) is not None

    def clear_all(self) -> None:
        self._records.clear()

    def records(self) -> dict[str, LedgerRecord]:
        """Return a copy of all records, keyed by item key."""
        return dict(self._records)

    def __len__(self) -> int:
        return len(self._records)
