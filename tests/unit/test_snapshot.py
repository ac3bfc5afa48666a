"""
Unit tests for snapshot parsing and validation.
"""

import json
from datetime import date, datetime, timezone

import pytest

from cometode.errors import SnapshotValidationError
from cometode.sync.snapshot import (
    SNAPSHOT_VERSION,
    Snapshot,
    load_snapshot_file,
    parse_snapshot,
    write_snapshot_file,
)


def _payload(**overrides):
    data = {
        "version": "1.0",
        "exportDate": "2024-05-01T18:30:00.000Z",
        "appVersion": "1.0.0",
        "progress": [
            {
                "catalogId": 3,
                "status": "learning",
                "repetitions": 1,
                "interval": 1,
                "easeFactor": 2.5,
                "nextReviewDate": "2024-05-02",
                "firstLearnedAt": "2024-05-01T18:00:00Z",
                "lastReviewedAt": "2024-05-01T18:00:00Z",
                "totalReviews": 1,
            }
        ],
        "history": [
            {
                "catalogId": 3,
                "reviewDate": "2024-05-01T18:00:00Z",
                "quality": 2,
                "intervalBefore": 0,
                "intervalAfter": 1,
                "easeFactorBefore": 2.5,
                "easeFactorAfter": 2.5,
            }
        ],
    }
    data.update(overrides)
    return data


class TestParseSnapshot:
    """Tests for wire-format parsing."""

    def test_parses_camel_case_fields(self):
        snapshot = parse_snapshot(_payload())

        assert snapshot.export_date == datetime(2024, 5, 1, 18, 30, tzinfo=timezone.utc)
        assert snapshot.app_version == "1.0.0"
        assert snapshot.progress[0].catalog_id == 3
        assert snapshot.progress[0].next_review_date == date(2024, 5, 2)
        assert snapshot.history[0].quality == 2
        assert snapshot.exported_count == 1

    def test_parses_raw_json(self):
        snapshot = parse_snapshot(json.dumps(_payload()))

        assert snapshot.version == SNAPSHOT_VERSION

    def test_nullable_fields(self):
        payload = _payload()
        payload["progress"][0].update(nextReviewDate=None, firstLearnedAt=None, lastReviewedAt=None)

        entry = parse_snapshot(payload).progress[0]
        assert entry.next_review_date is None
        assert entry.last_reviewed_at is None

    def test_next_review_timestamp_truncated_to_date(self):
        payload = _payload()
        payload["progress"][0]["nextReviewDate"] = "2024-05-02T00:00:00.000Z"

        assert parse_snapshot(payload).progress[0].next_review_date == date(2024, 5, 2)

    def test_sqlite_style_timestamps(self):
        payload = _payload()
        payload["history"][0]["reviewDate"] = "2024-05-01 18:00:00"

        assert parse_snapshot(payload).history[0].review_date == datetime(2024, 5, 1, 18, 0)

    @pytest.mark.parametrize("field", ["version", "exportDate", "progress", "history"])
    def test_missing_required_field(self, field):
        payload = _payload()
        del payload[field]

        with pytest.raises(SnapshotValidationError):
            parse_snapshot(payload)

    def test_invalid_quality_rejected(self):
        payload = _payload()
        payload["history"][0]["quality"] = 5

        with pytest.raises(SnapshotValidationError):
            parse_snapshot(payload)

    def test_invalid_status_rejected(self):
        payload = _payload()
        payload["progress"][0]["status"] = "mastered"

        with pytest.raises(SnapshotValidationError):
            parse_snapshot(payload)

    def test_unparseable_json(self):
        with pytest.raises(SnapshotValidationError):
            parse_snapshot("{not json")

    def test_non_utf8_bytes_rejected(self):
        with pytest.raises(SnapshotValidationError):
            parse_snapshot(b'{"version": "\xff\xfe"}')

    @pytest.mark.parametrize("ease", [0.2, 1.29, 0])
    def test_ease_below_floor_rejected(self, ease):
        payload = _payload()
        payload["progress"][0]["easeFactor"] = ease

        with pytest.raises(SnapshotValidationError):
            parse_snapshot(payload)

    def test_ease_at_floor_accepted(self):
        payload = _payload()
        payload["progress"][0]["easeFactor"] = 1.3

        assert parse_snapshot(payload).progress[0].ease_factor == 1.3

    @pytest.mark.parametrize(
        "status,repetitions",
        [("reviewing", 1), ("learning", 3), ("learning", 7), ("new", 2)],
    )
    def test_status_inconsistent_with_repetitions_rejected(self, status, repetitions):
        payload = _payload()
        payload["progress"][0].update(status=status, repetitions=repetitions)

        with pytest.raises(SnapshotValidationError):
            parse_snapshot(payload)

    @pytest.mark.parametrize(
        "status,repetitions",
        [("learning", 0), ("learning", 2), ("reviewing", 3), ("reviewing", 9)],
    )
    def test_status_consistent_with_repetitions_accepted(self, status, repetitions):
        payload = _payload()
        payload["progress"][0].update(status=status, repetitions=repetitions)

        assert parse_snapshot(payload).progress[0].status == status


class TestSnapshotFiles:
    """Tests for reading and writing snapshot files."""

    def test_write_then_load(self, tmp_path):
        path = tmp_path / "cometode-progress.json"
        snapshot = parse_snapshot(_payload())

        write_snapshot_file(path, snapshot)
        loaded = load_snapshot_file(path)

        assert loaded == snapshot
        assert not (tmp_path / "cometode-progress.json.tmp").exists()

    def test_written_file_uses_wire_names(self, tmp_path):
        path = write_snapshot_file(tmp_path / "out.json", parse_snapshot(_payload()))
        data = json.loads(path.read_text(encoding="utf-8"))

        assert set(data) == {"version", "exportDate", "appVersion", "progress", "history"}
        assert "easeFactor" in data["progress"][0]
        assert "reviewDate" in data["history"][0]

    def test_non_utf8_file_raises_validation_error(self, tmp_path):
        path = tmp_path / "corrupt.json"
        path.write_bytes(b'{"version": "\xff\xfe"}')

        with pytest.raises(SnapshotValidationError):
            load_snapshot_file(path)

    def test_missing_file_raises_os_error(self, tmp_path):
        with pytest.raises(OSError):
            load_snapshot_file(tmp_path / "absent.json")

    def test_model_built_by_field_name(self):
        snapshot = Snapshot(
            version="1.0",
            export_date=datetime(2024, 5, 1, tzinfo=timezone.utc),
            progress=[],
            history=[],
        )
        assert snapshot.exported_count == 0
