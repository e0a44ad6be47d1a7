"""Tests for recording, editing, compaction, pruning and the domain registry."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from mulch.config import MulchConfig, PathResolver
from mulch.core.errors import (
    DomainExistsError,
    DomainNotEmptyError,
    DomainNotFoundError,
    InvalidDomainNameError,
    RecordNotFoundError,
    RecordValidationError,
    UndecodableLinesError,
)
from mulch.expertise.doctor import diagnose
from mulch.expertise.identity import generate_record_id
from mulch.expertise.models import (
    Classification,
    Convention,
    Decision,
    Outcome,
    OutcomeStatus,
    Pattern,
    RecordType,
)
from mulch.expertise.operations import (
    RecordChanges,
    add_domain,
    append_outcome,
    compact_domain,
    compact_domains,
    dedupe_newest,
    delete_record,
    edit_record,
    find_compact_groups,
    parse_record_payload,
    prune_domain,
    prune_domains,
    record_records,
    remove_domain,
)
from mulch.expertise.lock import lock_path_for
from mulch.expertise.store import ExpertiseStore

TS = "2025-01-01T00:00:00.000Z"
DOMAIN = "testing"


def _convention(content: str, recorded_at: str = TS, **kwargs) -> Convention:
    return Convention(content=content, classification=Classification.TACTICAL, recorded_at=recorded_at, **kwargs)


def _pattern(name: str, description: str = "d", **kwargs) -> Pattern:
    return Pattern(name=name, description=description, classification=Classification.TACTICAL, recorded_at=TS, **kwargs)


class TestParseRecordPayload:
    def test_single_object_with_defaults(self):
        records, errors = parse_record_payload('{"type": "convention", "content": "Use tabs"}')
        assert errors == []
        assert records[0].classification == Classification.TACTICAL
        assert records[0].recorded_at

    def test_array_collects_per_item_errors(self):
        payload = json.dumps([
            {"type": "convention", "content": "ok"},
            {"type": "failure", "description": "no resolution"},
            {"type": "mystery"},
        ])
        records, errors = parse_record_payload(payload)
        assert len(records) == 1
        assert errors[0] == "Record 1: failure record is missing field 'resolution'"
        assert errors[1].startswith("Record 2: invalid type 'mystery'")

    def test_legacy_outcome_migrated(self):
        records, _ = parse_record_payload(
            '{"type": "convention", "content": "c", "outcome": {"status": "partial"}}'
        )
        assert [o.status for o in records[0].outcomes] == [OutcomeStatus.PARTIAL]

    def test_not_json(self):
        with pytest.raises(RecordValidationError, match="failed to parse JSON input"):
            parse_record_payload("not json")


class TestRecordRecords:
    def test_creates_and_assigns_ids(self, store: ExpertiseStore):
        result = record_records(store, DOMAIN, [_convention("a"), _pattern("P")])
        assert (result.created, result.updated, result.skipped) == (2, 0, 0)
        stored = store.read_domain(DOMAIN)
        assert [r.id for r in stored] == [generate_record_id(r) for r in stored]

    def test_duplicate_convention_skipped(self, store: ExpertiseStore):
        record_records(store, DOMAIN, [_convention("a")])
        result = record_records(store, DOMAIN, [_convention("a")])
        assert result.skipped == 1
        assert result.processed == 0
        assert len(store.read_domain(DOMAIN)) == 1

    def test_duplicate_named_kind_upserted_in_place(self, store: ExpertiseStore):
        record_records(store, DOMAIN, [_pattern("First"), _pattern("Repo", "old"), _convention("z")])
        original_id = store.read_domain(DOMAIN)[1].id

        result = record_records(store, DOMAIN, [_pattern("Repo", "new")])
        assert result.updated == 1

        stored = store.read_domain(DOMAIN)
        assert [getattr(r, "description", None) for r in stored] == ["d", "new", None]
        assert stored[1].id == original_id

    def test_force_appends_duplicate(self, store: ExpertiseStore):
        record_records(store, DOMAIN, [_convention("a")])
        result = record_records(store, DOMAIN, [_convention("a")], force=True)
        assert result.created == 1
        assert len(store.read_domain(DOMAIN)) == 2

    def test_duplicates_within_batch(self, store: ExpertiseStore):
        result = record_records(
            store, DOMAIN,
            [_convention("a"), _convention("a"), _pattern("P", "1"), _pattern("P", "2")],
        )
        assert (result.created, result.updated, result.skipped) == (2, 1, 1)
        stored = store.read_domain(DOMAIN)
        assert [r.TYPE for r in stored] == [RecordType.CONVENTION, RecordType.PATTERN]
        assert stored[1].description == "2"

    def test_dry_run_does_not_write(self, store: ExpertiseStore):
        record_records(store, DOMAIN, [_pattern("P")])
        before = store.path_for(DOMAIN).read_text(encoding="utf-8")

        result = record_records(store, DOMAIN, [_pattern("P", "x"), _convention("new")], dry_run=True)
        assert (result.created, result.updated, result.skipped) == (1, 1, 0)
        assert store.path_for(DOMAIN).read_text(encoding="utf-8") == before

    def test_empty_batch(self, store: ExpertiseStore):
        assert record_records(store, DOMAIN, []).processed == 0


class TestEditRecord:
    def test_edit_fields_keeps_id(self, store: ExpertiseStore):
        record_records(store, DOMAIN, [_convention("Use tabs")])
        record_id = store.read_domain(DOMAIN)[0].id

        edited = edit_record(
            store, DOMAIN, record_id,
            RecordChanges(
                classification=Classification.FOUNDATIONAL,
                tags=["style"],
                fields={"content": "Use spaces"},
            ),
        )
        assert edited.id == record_id
        stored = store.read_domain(DOMAIN)[0]
        assert stored.content == "Use spaces"
        assert stored.classification == Classification.FOUNDATIONAL
        assert stored.tags == ["style"]
        assert stored.id == record_id

    def test_field_not_on_kind(self, store: ExpertiseStore):
        record_records(store, DOMAIN, [_convention("c")])
        record_id = store.read_domain(DOMAIN)[0].id
        with pytest.raises(RecordValidationError, match="convention records have no field 'resolution'"):
            edit_record(store, DOMAIN, record_id, RecordChanges(fields={"resolution": "x"}))

    def test_unknown_identifier(self, store: ExpertiseStore):
        with pytest.raises(RecordNotFoundError):
            edit_record(store, DOMAIN, "mx-ffffff", RecordChanges(tags=["x"]))

    def test_changes_is_empty(self):
        assert RecordChanges().is_empty()
        assert RecordChanges(fields={"content": None}).is_empty()
        assert not RecordChanges(tags=[]).is_empty()


class TestOutcomeAndDelete:
    def test_append_outcome_stamps_time(self, store: ExpertiseStore):
        record_records(store, DOMAIN, [_convention("c")])
        record_id = store.read_domain(DOMAIN)[0].id

        append_outcome(store, DOMAIN, record_id, Outcome(status=OutcomeStatus.SUCCESS, agent="ci"))
        append_outcome(store, DOMAIN, record_id, Outcome(status=OutcomeStatus.FAILURE))

        outcomes = store.read_domain(DOMAIN)[0].outcomes
        assert [o.status for o in outcomes] == [OutcomeStatus.SUCCESS, OutcomeStatus.FAILURE]
        assert all(o.recorded_at for o in outcomes)
        assert outcomes[0].agent == "ci"

    def test_delete_by_prefix(self, store: ExpertiseStore):
        record_records(store, DOMAIN, [_convention("a"), _convention("b")])
        target = store.read_domain(DOMAIN)[1]

        removed = delete_record(store, DOMAIN, target.id.removeprefix("mx-"))
        assert removed.content == "b"
        assert [r.content for r in store.read_domain(DOMAIN)] == ["a"]


class TestCompact:
    def test_dedupe_keeps_newest_in_file_order(self):
        old = _convention("same", "2024-01-01T00:00:00.000Z")
        other = _pattern("P")
        new = _convention("same", "2025-01-01T00:00:00.000Z")
        assert dedupe_newest([old, other, new]) == [other, new]

    def test_dedupe_tie_goes_to_later_line(self):
        first = _convention("same", tags=["first"])
        second = _convention("same", tags=["second"])
        assert dedupe_newest([first, second]) == [second]

    def test_find_compact_groups(self):
        records = [_convention("a"), _convention("b"), _pattern("P")]
        assert find_compact_groups(records) == {RecordType.CONVENTION: 2}

    def test_compact_domain(self, store: ExpertiseStore):
        record_records(
            store, DOMAIN,
            [_convention("same", "2024-01-01T00:00:00.000Z"), _convention("same", "2025-01-01T00:00:00.000Z")],
            force=True,
        )
        preview = compact_domain(store, DOMAIN, dry_run=True)
        assert preview.merged == 1
        assert preview.dry_run
        assert len(store.read_domain(DOMAIN)) == 2

        result = compact_domain(store, DOMAIN)
        assert result.merged == 1
        assert [r.recorded_at for r in store.read_domain(DOMAIN)] == ["2025-01-01T00:00:00.000Z"]

    def test_compact_domains_sequential(self, store: ExpertiseStore):
        store.create_domain_file("other")
        results = compact_domains(store, [DOMAIN, "other"])
        assert [r.domain for r in results] == [DOMAIN, "other"]
        assert all(r.merged == 0 for r in results)


class TestPrune:
    NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)

    def _seed(self, store: ExpertiseStore) -> None:
        record_records(store, DOMAIN, [
            _convention("stale", "2025-01-01T00:00:00.000Z"),
            _convention("fresh", "2025-02-28T00:00:00.000Z"),
            Decision(title="keep", rationale="r", classification=Classification.FOUNDATIONAL,
                     recorded_at="2000-01-01T00:00:00.000Z"),
        ])

    def test_dry_run_reports_without_writing(self, store: ExpertiseStore):
        self._seed(store)
        result = prune_domain(store, DOMAIN, now=self.NOW, dry_run=True)
        assert [r.content for r in result.pruned] == ["stale"]
        assert len(store.read_domain(DOMAIN)) == 3

    def test_prune_removes_stale(self, store: ExpertiseStore):
        self._seed(store)
        results = prune_domains(store, [DOMAIN], now=self.NOW)
        assert len(results[0].pruned) == 1
        remaining = store.read_domain(DOMAIN)
        assert [r.TYPE for r in remaining] == [RecordType.CONVENTION, RecordType.DECISION]


class TestDomainRegistry:
    def test_add_domain(self, resolver: PathResolver, config: MulchConfig):
        updated = add_domain(resolver, config, "api")
        assert updated.domains == ("testing", "api")
        assert MulchConfig.load(resolver.root).domains == ("testing", "api")
        assert resolver.expertise_path("api").exists()

    def test_add_existing_domain(self, resolver: PathResolver, config: MulchConfig):
        with pytest.raises(DomainExistsError):
            add_domain(resolver, config, "testing")

    def test_add_invalid_name(self, resolver: PathResolver, config: MulchConfig):
        with pytest.raises(InvalidDomainNameError):
            add_domain(resolver, config, "../escape")

    def test_remove_non_empty_needs_force(self, resolver: PathResolver, config: MulchConfig, store: ExpertiseStore):
        record_records(store, DOMAIN, [_convention("a")])
        with pytest.raises(DomainNotEmptyError) as exc_info:
            remove_domain(resolver, config, DOMAIN)
        assert exc_info.value.count == 1

        updated = remove_domain(resolver, config, DOMAIN, force=True)
        assert updated.domains == ()
        assert not resolver.expertise_path(DOMAIN).exists()

    def test_remove_unknown(self, resolver: PathResolver, config: MulchConfig):
        with pytest.raises(DomainNotFoundError):
            remove_domain(resolver, config, "nope")


NEWER_KIND_LINE = json.dumps({
    "type": "workflow",
    "name": "future kind",
    "classification": "tactical",
    "recorded_at": TS,
})


class TestUndecodableLines:
    """A domain with lines that do not decode is never rewritten by a normal mutation."""

    @pytest.fixture
    def record_id(self, store: ExpertiseStore) -> str:
        record_id = store.append_record(DOMAIN, _convention("a"))
        with open(store.path_for(DOMAIN), "a", encoding="utf-8") as f:
            f.write(NEWER_KIND_LINE + "\n")
        return record_id

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda store, rid: record_records(store, DOMAIN, [_convention("b")]),
            lambda store, rid: record_records(store, DOMAIN, [_convention("b")], dry_run=True),
            lambda store, rid: edit_record(store, DOMAIN, rid, RecordChanges(tags=["x"])),
            lambda store, rid: append_outcome(store, DOMAIN, rid, Outcome(status=OutcomeStatus.SUCCESS)),
            lambda store, rid: delete_record(store, DOMAIN, rid),
            lambda store, rid: compact_domain(store, DOMAIN),
            lambda store, rid: prune_domain(store, DOMAIN),
        ],
        ids=["record", "record-dry-run", "edit", "outcome", "delete", "compact", "prune"],
    )
    def test_mutation_refused_and_file_untouched(self, store: ExpertiseStore, record_id, mutate):
        path = store.path_for(DOMAIN)
        before = path.read_text(encoding="utf-8")

        with pytest.raises(UndecodableLinesError, match=r"undecodable line\(s\) 2 \(.*mulch doctor --fix") as exc_info:
            mutate(store, record_id)

        assert exc_info.value.lines == [2]
        assert isinstance(exc_info.value, RecordValidationError)
        assert path.read_text(encoding="utf-8") == before
        assert not lock_path_for(path).exists()

    def test_mutation_allowed_after_doctor_fix(self, store: ExpertiseStore, resolver: PathResolver, record_id):
        diagnose(resolver, fix=True)
        record_records(store, DOMAIN, [_convention("b")])
        assert [r.content for r in store.read_domain(DOMAIN)] == ["a", "b"]

    def test_remove_counts_undecodable_lines(self, resolver: PathResolver, config: MulchConfig, store: ExpertiseStore):
        store.path_for(DOMAIN).write_text(NEWER_KIND_LINE + "\n\n", encoding="utf-8")

        with pytest.raises(DomainNotEmptyError) as exc_info:
            remove_domain(resolver, config, DOMAIN)
        assert exc_info.value.count == 1
        assert store.exists(DOMAIN)
