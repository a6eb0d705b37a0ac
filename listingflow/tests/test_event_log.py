import json

import pytest

from listingflow.events.event_log import BACKUP_SUFFIX, EventLog, now_iso


def test_missing_file_reads_empty(tmp_path):
    log = EventLog(tmp_path / "nested" / "events.json")
    assert log.read_events() == []


def test_empty_file_reads_empty(tmp_path):
    path = tmp_path / "events.json"
    path.write_text("   ")
    assert EventLog(path).read_events() == []


def test_log_event_shape(tmp_path):
    log = EventLog(tmp_path / "events.json")
    entry = log.log_event("success", "Created Sales Order SO-1", {"erpnextSOName": "SO-1"})
    assert entry["level"] == "success"
    assert entry["message"] == "Created Sales Order SO-1"
    assert entry["details"] == {"erpnextSOName": "SO-1"}
    assert entry["timestamp"].endswith("Z")

    stored = json.loads((tmp_path / "events.json").read_text())
    assert stored == [entry]


def test_details_omitted_when_empty(tmp_path):
    log = EventLog(tmp_path / "events.json")
    entry = log.log_event("info", "hello")
    assert "details" not in entry


def test_unknown_level_rejected(tmp_path):
    log = EventLog(tmp_path / "events.json")
    with pytest.raises(ValueError):
        log.log_event("debug", "nope")


def test_newest_first_and_capped(tmp_path):
    log = EventLog(tmp_path / "events.json")
    for i in range(201):
        log.log_event("info", f"event {i}")

    events = log.read_events()
    assert len(events) == 200
    assert events[0]["message"] == "event 200"
    assert events[-1]["message"] == "event 1"
    assert all(e["message"] != "event 0" for e in events)


def test_small_cap(tmp_path):
    log = EventLog(tmp_path / "events.json", max_entries=3)
    for i in range(5):
        log.log_event("info", f"e{i}")
    assert [e["message"] for e in log.read_events()] == ["e4", "e3", "e2"]


def test_read_sorts_by_timestamp(tmp_path):
    path = tmp_path / "events.json"
    path.write_text(json.dumps([
        {"timestamp": "2024-01-01T00:00:00.000Z", "level": "info", "message": "old"},
        {"timestamp": "2024-03-01T00:00:00.000Z", "level": "info", "message": "new"},
        {"timestamp": "2024-02-01T00:00:00.000Z", "level": "info", "message": "mid"},
    ]))
    assert [e["message"] for e in EventLog(path).read_events()] == ["new", "mid", "old"]


def test_truncated_file_is_repaired(tmp_path):
    path = tmp_path / "events.json"
    good = {"timestamp": now_iso(), "level": "info", "message": "kept"}
    path.write_text(json.dumps([good], indent=2)[:-2] + ',\n  {"timestamp": "20')

    log = EventLog(path)
    events = log.read_events()
    assert [e["message"] for e in events] == ["kept"]
    assert (tmp_path / ("events.json" + BACKUP_SUFFIX)).exists()
    assert json.loads(path.read_text()) == [good]


def test_unreadable_file_starts_fresh(tmp_path):
    path = tmp_path / "events.json"
    path.write_text("this is not json at all")

    log = EventLog(path)
    log.log_event("error", "after crash")
    assert [e["message"] for e in log.read_events()] == ["after crash"]
    assert (tmp_path / ("events.json" + BACKUP_SUFFIX)).read_text() == "this is not json at all"


def test_non_array_file_does_not_break_logging(tmp_path):
    path = tmp_path / "events.json"
    path.write_text('{"not": "a list"}')

    log = EventLog(path)
    entry = log.log_event("info", "still returns")
    assert entry["message"] == "still returns"
    with pytest.raises(ValueError):
        log.read_events()


def test_cut_inside_nested_details_keeps_earlier_entries(tmp_path):
    path = tmp_path / "events.json"
    older = [
        {"timestamp": "2024-01-02T00:00:00.000Z", "level": "success", "message": "second", "details": {"a": {"b": 1}}},
        {"timestamp": "2024-01-01T00:00:00.000Z", "level": "info", "message": "first"},
    ]
    newest = {
        "timestamp": "2024-01-03T00:00:00.000Z",
        "level": "error",
        "message": "cut off",
        "details": {"webhookId": "wh_1", "extra": {"k": "v"}, "body": "{...}"},
    }
    full = json.dumps([*older, newest], indent=2)
    # stop right after the nested "extra" dict closes
    path.write_text(full[: full.index('"body"')])

    events = EventLog(path).read_events()
    assert [e["message"] for e in events] == ["second", "first"]
    assert events[0]["details"] == {"a": {"b": 1}}
