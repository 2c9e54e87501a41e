"""Append-only journal of controller decisions for operators."""

from __future__ import annotations

import json
import logging
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EventLogEntry:
    """A single controller event."""

    timestamp: float
    event: str
    level: str
    message: str
    metadata: dict[str, object | None] | None = None

    def to_dict(self) -> dict[str, object | None]:
        payload: dict[str, object | None] = {
            "timestamp": self.timestamp,
            "event": self.event,
            "level": self.level,
            "message": self.message,
        }
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload


class EventLog:
    """JSON-lines event journal with a bounded in-memory tail.

    Passing ``path=None`` keeps entries in memory only. The file is compacted
    to the most recent ``max_entries`` lines once it grows past twice that.
    """

    def __init__(self, path: Path | str | None = None, *, max_entries: int = 500) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._path: Path | None = Path(path) if path is not None else None
        self._entries: Deque[EventLogEntry] = deque(maxlen=max_entries)
        if self._path is not None:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.warning("Unable to prepare event log directory: %s", exc)
                self._path = None
        self._load_entries()

    @property
    def path(self) -> Path | None:
        return self._path

    def record(
        self,
        event: str,
        message: str,
        *,
        level: str = "INFO",
        metadata: dict[str, object | None] | None = None,
    ) -> EventLogEntry:
        entry = EventLogEntry(
            timestamp=time.time(),
            event=event,
            level=level,
            message=message,
            metadata=self._clean_metadata(metadata),
        )
        self._entries.append(entry)
        self._append_persistent(entry)
        return entry

    def tail(self, limit: int | None = None) -> list[EventLogEntry]:
        """Return the most recent entries, oldest first."""

        entries = list(self._entries)
        if limit is None:
            return entries
        limit_value = int(limit)
        if limit_value <= 0:
            return []
        return entries[-limit_value:]

    # ----------------------------- implementation --------------------------
    def _load_entries(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            logger.warning("Unable to load event log: %s", exc)
            return
        for raw_line in lines:
            line = raw_line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except ValueError:
                continue
            entry = self._deserialize(payload)
            if entry is not None:
                self._entries.append(entry)
        if self._entries.maxlen is not None and len(lines) > 2 * self._entries.maxlen:
            self._compact()

    def _compact(self) -> None:
        if self._path is None:
            return
        text = "".join(
            json.dumps(entry.to_dict(), separators=(",", ":")) + "\n" for entry in self._entries
        )
        try:
            self._path.write_text(text, encoding="utf-8")
        except OSError as exc:
            logger.warning("Unable to compact event log: %s", exc)

    @staticmethod
    def _deserialize(payload: object) -> EventLogEntry | None:
        if not isinstance(payload, dict):
            return None
        event = payload.get("event")
        message = payload.get("message")
        if not isinstance(event, str) or not isinstance(message, str):
            return None
        level = payload.get("level")
        try:
            timestamp = float(payload.get("timestamp"))
        except (TypeError, ValueError):
            timestamp = 0.0
        metadata = payload.get("metadata")
        return EventLogEntry(
            timestamp=timestamp,
            event=event,
            level=level if isinstance(level, str) else "INFO",
            message=message,
            metadata=metadata if isinstance(metadata, dict) else None,
        )

    def _append_persistent(self, entry: EventLogEntry) -> None:
        if self._path is None:
            return
        try:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry.to_dict(), separators=(",", ":")) + "\n")
        except OSError as exc:
            logger.warning("Unable to persist event log: %s", exc)

    @staticmethod
    def _clean_metadata(
        metadata: dict[str, object | None] | None,
    ) -> dict[str, object | None] | None:
        if not metadata:
            return None
        cleaned = {key: value for key, value in metadata.items() if value is not None}
        return cleaned or None


__all__ = ["EventLog", "EventLogEntry"]
