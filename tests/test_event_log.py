import json
from pathlib import Path

import pytest

from ap_popup.event_log import EventLog


def test_event_log_persists_entries(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "events.jsonl"
    journal = EventLog(log_path)

    journal.record("connect_attempt", "Attempting connection to Home.", metadata={"profile": "Home"})
    journal.record("connect_error", "Connection to Home failed.", level="WARNING", metadata={"timed_out": None})

    reloaded = EventLog(log_path)
    entries = reloaded.tail()
    assert [entry.event for entry in entries] == ["connect_attempt", "connect_error"]
    assert entries[0].metadata == {"profile": "Home"}
    assert entries[1].level == "WARNING"
    assert entries[1].metadata is None


def test_event_log_tail_limit() -> None:
    journal = EventLog(None, max_entries=3)
    for index in range(5):
        journal.record("tick", f"event {index}")

    assert [entry.message for entry in journal.tail()] == ["event 2", "event 3", "event 4"]
    assert [entry.message for entry in journal.tail(2)] == ["event 3", "event 4"]
    assert journal.tail(0) == []
    assert journal.tail(-3) == []


def test_event_log_skips_corrupt_lines(tmp_path: Path) -> None:
    log_path = tmp_path / "events.jsonl"
    log_path.write_text(
        "not json\n"
        + json.dumps({"timestamp": 1.0, "event": "ap_activated", "level": "INFO", "message": "ok"})
        + "\n[1, 2]\n"
        + json.dumps({"event": "missing message"})
        + "\n",
        encoding="utf-8",
    )

    entries = EventLog(log_path).tail()

    assert len(entries) == 1
    assert entries[0].event == "ap_activated"
    assert entries[0].timestamp == 1.0


def test_event_log_compacts_large_file(tmp_path: Path) -> None:
    log_path = tmp_path / "events.jsonl"
    lines = [
        json.dumps({"timestamp": float(index), "event": "tick", "level": "INFO", "message": str(index)})
        for index in range(10)
    ]
    log_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    journal = EventLog(log_path, max_entries=4)

    assert [entry.message for entry in journal.tail()] == ["6", "7", "8", "9"]
    assert len(log_path.read_text(encoding="utf-8").splitlines()) == 4


def test_event_log_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError):
        EventLog(None, max_entries=0)
