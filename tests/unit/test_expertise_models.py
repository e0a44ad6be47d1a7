"""Tests for expertise record models and their JSON encoding."""
from __future__ import annotations

from datetime import timezone

import pytest

from mulch.core.errors import RecordValidationError
from mulch.expertise.models import (
    Classification,
    Convention,
    Decision,
    Evidence,
    Failure,
    Guide,
    Outcome,
    OutcomeStatus,
    Pattern,
    RecordType,
    Reference,
    is_named_type,
    migrate_legacy_outcome,
    now_iso,
    parse_timestamp,
    record_files,
    record_from_dict,
    record_to_dict,
    unique_key,
)

TS = "2025-01-01T00:00:00.000Z"


class TestUniqueKey:
    @pytest.mark.parametrize(
        "record,expected",
        [
            (Convention(content="Use tabs", classification=Classification.TACTICAL, recorded_at=TS), "Use tabs"),
            (Pattern(name="Repo", description="d", classification=Classification.TACTICAL, recorded_at=TS), "Repo"),
            (Failure(description="Crash", resolution="r", classification=Classification.TACTICAL, recorded_at=TS), "Crash"),
            (Decision(title="Use SQLite", rationale="r", classification=Classification.TACTICAL, recorded_at=TS), "Use SQLite"),
            (Reference(name="Docs", description="d", classification=Classification.TACTICAL, recorded_at=TS), "Docs"),
            (Guide(name="Setup", description="d", classification=Classification.TACTICAL, recorded_at=TS), "Setup"),
        ],
    )
    def test_key_per_kind(self, record, expected):
        assert unique_key(record) == expected

    def test_named_types(self):
        named = Pattern(name="n", description="d", classification=Classification.TACTICAL, recorded_at=TS)
        content = Convention(content="c", classification=Classification.TACTICAL, recorded_at=TS)
        assert is_named_type(named)
        assert not is_named_type(content)

    def test_record_files(self):
        pattern = Pattern(name="n", description="d", files=["a.py"], classification=Classification.TACTICAL, recorded_at=TS)
        failure = Failure(description="d", resolution="r", classification=Classification.TACTICAL, recorded_at=TS)
        assert record_files(pattern) == ["a.py"]
        assert record_files(failure) is None


class TestRecordToDict:
    def test_key_order(self):
        record = Pattern(
            id="mx-abc123",
            name="Repository",
            description="Wrap data access",
            files=["src/repo.py"],
            classification=Classification.FOUNDATIONAL,
            recorded_at=TS,
            evidence=Evidence(commit="abc"),
            tags=["arch"],
            outcomes=[Outcome(status=OutcomeStatus.SUCCESS)],
        )
        data = record_to_dict(record)
        assert list(data) == [
            "type", "id", "name", "description", "files",
            "classification", "recorded_at", "evidence", "tags", "outcomes",
        ]
        assert data["type"] == "pattern"
        assert data["evidence"] == {"commit": "abc"}
        assert data["outcomes"] == [{"status": "success"}]

    def test_absent_optionals_omitted(self):
        record = Convention(content="c", classification=Classification.TACTICAL, recorded_at=TS)
        assert record_to_dict(record) == {
            "type": "convention",
            "content": "c",
            "classification": "tactical",
            "recorded_at": TS,
        }


class TestRecordFromDict:
    def test_round_trip_decision(self):
        record = Decision(
            id="mx-000001",
            title="Use SQLite",
            rationale="Simple",
            date="2025-01-01",
            classification=Classification.OBSERVATIONAL,
            recorded_at=TS,
            relates_to=["mx-000002"],
            supersedes=["mx-000003"],
        )
        assert record_from_dict(record_to_dict(record)) == record

    def test_unknown_keys_ignored(self):
        record = record_from_dict({
            "type": "convention",
            "content": "c",
            "classification": "tactical",
            "recorded_at": TS,
            "extra": {"nested": True},
        })
        assert isinstance(record, Convention)

    def test_outcome_duration_coerced_to_float(self):
        record = record_from_dict({
            "type": "convention",
            "content": "c",
            "classification": "tactical",
            "recorded_at": TS,
            "outcomes": [{"status": "partial", "duration": 12}],
        })
        assert record.outcomes[0].duration == 12.0
        assert record.outcomes[0].status == OutcomeStatus.PARTIAL

    @pytest.mark.parametrize(
        "data,fragment",
        [
            ({"content": "c", "classification": "tactical", "recorded_at": TS}, "missing field 'type'"),
            ({"type": "widget", "classification": "tactical", "recorded_at": TS}, "invalid type"),
            ({"type": "pattern", "name": "n", "classification": "tactical", "recorded_at": TS}, "missing field 'description'"),
            ({"type": "convention", "content": "c", "recorded_at": TS}, "missing field 'classification'"),
            ({"type": "convention", "content": "c", "classification": "permanent", "recorded_at": TS}, "invalid classification"),
            ({"type": "convention", "content": 5, "classification": "tactical", "recorded_at": TS}, "content must be a string"),
            ({"type": "convention", "content": "c", "classification": "tactical", "recorded_at": TS, "tags": "x"}, "tags must be a list"),
        ],
    )
    def test_invalid_records_raise(self, data, fragment):
        with pytest.raises(RecordValidationError, match=fragment):
            record_from_dict(data)

    def test_non_object_raises(self):
        with pytest.raises(RecordValidationError):
            record_from_dict(["not", "a", "record"])


class TestLegacyOutcomeMigration:
    def test_singular_outcome_becomes_list(self):
        data = {"type": "convention", "outcome": {"status": "success"}}
        migrated = migrate_legacy_outcome(data)
        assert migrated["outcomes"] == [{"status": "success"}]
        assert "outcome" not in migrated
        # input left untouched
        assert "outcome" in data

    def test_existing_outcomes_win(self):
        data = {"outcome": {"status": "failure"}, "outcomes": [{"status": "success"}]}
        assert migrate_legacy_outcome(data) is data


class TestTimestamps:
    def test_now_iso_format(self):
        value = now_iso()
        assert value.endswith("Z")
        assert len(value.split(".")[1]) == 4  # three millisecond digits + Z

    def test_parse_z_suffix(self):
        parsed = parse_timestamp(TS)
        assert parsed is not None
        assert parsed.tzinfo is not None
        assert parsed.year == 2025

    def test_naive_treated_as_utc(self):
        parsed = parse_timestamp("2025-01-01T00:00:00")
        assert parsed.tzinfo == timezone.utc

    def test_unparseable_is_none(self):
        assert parse_timestamp("yesterday") is None


def test_record_type_values():
    assert {t.value for t in RecordType} == {
        "convention", "pattern", "failure", "decision", "reference", "guide",
    }
