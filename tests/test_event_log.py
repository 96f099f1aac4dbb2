"""Tests for the append-only event log — sequencing, replay protection, integrity."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from raffle.persistence.event_log import EventKind, EventLog, EventRecord


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        e1 = EventRecord.create("evt_1", EventKind.CLAIM_REGISTERED, "alice", {"campaign_id": 1}, _now())
        e2 = EventRecord.create("evt_1", EventKind.CLAIM_REGISTERED, "alice", {"campaign_id": 1}, _now())
        assert e1.event_hash == e2.event_hash
        assert e1.event_hash.startswith("sha256:")
        assert e1.timestamp_utc == "2026-03-01T12:00:00Z"

    def test_payload_changes_hash(self) -> None:
        e1 = EventRecord.create("evt_1", EventKind.CLAIM_REGISTERED, "alice", {"campaign_id": 1}, _now())
        e2 = EventRecord.create("evt_1", EventKind.CLAIM_REGISTERED, "alice", {"campaign_id": 2}, _now())
        assert e1.event_hash != e2.event_hash


class TestEventLog:
    def test_record_assigns_sequential_ids(self) -> None:
        log = EventLog()
        first = log.record(EventKind.CLAIM_REGISTERED, "alice", {"campaign_id": 1}, _now())
        second = log.record(EventKind.CLAIM_REVEALED, "engine", {"campaign_id": 1}, _now())
        assert first.event_id == "evt_00000001"
        assert second.event_id == "evt_00000002"
        assert log.count == 2
        assert log.last_event == second

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        event = EventRecord.create("evt_x", EventKind.PAUSED, "admin", {}, _now())
        log.append(event)
        with pytest.raises(ValueError, match="Duplicate"):
            log.append(event)

    def test_filter_by_kind_and_campaign(self) -> None:
        log = EventLog()
        log.record(EventKind.CLAIM_REGISTERED, "alice", {"campaign_id": 1}, _now())
        log.record(EventKind.CLAIM_REGISTERED, "bob", {"campaign_id": 2}, _now())
        log.record(EventKind.WINNER_SETTLED, "alice", {"campaign_id": 1}, _now())
        assert len(log.events(EventKind.CLAIM_REGISTERED)) == 2
        assert len(log.events_for(1)) == 2
        assert len(log.events_for(1, EventKind.WINNER_SETTLED)) == 1
        assert log.counts_by_kind() == {"claim_registered": 2, "winner_settled": 1}


class TestEventLogPersistence:
    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(EventKind.CLAIM_REGISTERED, "alice", {"campaign_id": 1, "serial_id": "0xab"}, _now())
        log.record(EventKind.NON_WINNER_REVEALED, "alice", {"campaign_id": 1}, _now())

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events()[0].payload["serial_id"] == "0xab"
        # New ids continue after the persisted ones
        third = reloaded.record(EventKind.PAUSED, "admin", {}, _now())
        assert third.event_id == "evt_00000003"

    def test_tampered_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(EventKind.WINNER_SETTLED, "alice", {"campaign_id": 1}, _now())

        data = json.loads(path.read_text().strip())
        data["actor_id"] = "mallory"
        path.write_text(json.dumps(data) + "\n")

        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_replayed_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(EventKind.WINNER_SETTLED, "alice", {"campaign_id": 1}, _now())
        line = path.read_text()
        path.write_text(line + line)

        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(storage_path=path)
