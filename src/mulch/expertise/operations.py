"""Mutating operations on expertise domains.

Every write re-reads the domain file while holding its advisory lock and
persists through an atomic rewrite, so concurrent writers never lose each
other's records. Dry runs read without locking and never write. A domain
holding undecodable lines is refused until `mulch doctor --fix` drops them.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from mulch.config.config_writer import write_config
from mulch.config.path_resolver import PathResolver, validate_domain_name
from mulch.config.settings import MulchConfig, ShelfLife
from mulch.core.errors import (
    DomainExistsError,
    DomainNotEmptyError,
    RecordValidationError,
)
from mulch.expertise.filters import find_duplicate
from mulch.expertise.health import is_record_stale
from mulch.expertise.models import (
    Classification,
    ExpertiseRecord,
    Outcome,
    RecordType,
    is_named_type,
    migrate_legacy_outcome,
    now_iso,
    parse_timestamp,
    record_from_dict,
    unique_key,
)
from mulch.expertise.resolve import resolve_record_id
from mulch.expertise.store import ExpertiseStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


@dataclass
class BatchResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.created + self.updated


def parse_record_payload(text: str) -> tuple[list[ExpertiseRecord], list[str]]:
    """Decode a JSON object or array of objects into records.

    ``recorded_at`` defaults to now and ``classification`` to tactical. Items
    that fail validation are reported as ``"Record <i>: <message>"`` and left
    out of the returned records.

    Raises:
        RecordValidationError: If ``text`` is not JSON at all.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RecordValidationError(f"failed to parse JSON input: {exc}") from exc

    items = parsed if isinstance(parsed, list) else [parsed]
    records: list[ExpertiseRecord] = []
    errors: list[str] = []
    for index, raw in enumerate(items):
        if isinstance(raw, dict):
            raw = migrate_legacy_outcome(dict(raw))
            raw.setdefault("recorded_at", now_iso())
            raw.setdefault("classification", Classification.TACTICAL.value)
        try:
            records.append(record_from_dict(raw))
        except RecordValidationError as exc:
            errors.append(f"Record {index}: {exc.detail}")
    return records, errors


def record_records(
    store: ExpertiseStore,
    domain: str,
    records: list[ExpertiseRecord],
    *,
    force: bool = False,
    dry_run: bool = False,
) -> BatchResult:
    """Add ``records`` to ``domain`` with duplicate handling.

    A record duplicating an existing one of the same kind and key replaces it
    in place for named kinds (pattern, decision, reference, guide) and is
    skipped for the others. ``force`` appends regardless. Duplicates within
    the batch are detected against the list as it grows.
    """
    result = BatchResult()
    if not records:
        return result

    if dry_run:
        current = store.read_domain_for_update(domain)
        for record in records:
            duplicate = find_duplicate(current, record)
            if duplicate is not None and not force:
                if is_named_type(record):
                    result.updated += 1
                else:
                    result.skipped += 1
            else:
                result.created += 1
            current.append(record)
        return result

    with store.lock(domain):
        current = store.read_domain_for_update(domain)
        for record in records:
            duplicate = find_duplicate(current, record)
            if duplicate is None or force:
                current.append(record)
                result.created += 1
            elif is_named_type(record):
                index, existing = duplicate
                if record.id is None:
                    record.id = existing.id
                current[index] = record
                result.updated += 1
            else:
                result.skipped += 1
        if result.processed:
            store.rewrite_domain(domain, current)

    logger.info(
        "Recorded into %s: %d created, %d updated, %d skipped",
        domain, result.created, result.updated, result.skipped,
    )
    return result


# ---------------------------------------------------------------------------
# Single-record edits
# ---------------------------------------------------------------------------


@dataclass
class RecordChanges:
    """Updates to apply to one record; ``None`` leaves a field unchanged."""

    classification: Classification | None = None
    tags: list[str] | None = None
    relates_to: list[str] | None = None
    supersedes: list[str] | None = None
    # Kind-specific fields by name, e.g. {"description": "..."}.
    fields: dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return (
            self.classification is None
            and self.tags is None
            and self.relates_to is None
            and self.supersedes is None
            and not any(v is not None for v in self.fields.values())
        )


def apply_changes(record: ExpertiseRecord, changes: RecordChanges) -> None:
    """Apply ``changes`` to ``record`` in place. The stored ID is never touched.

    Raises:
        RecordValidationError: If a kind-specific field does not exist on the
            record's kind or has the wrong shape.
    """
    kind_fields = {name: is_list for name, is_list, _required in record.FIELDS}
    for name, value in changes.fields.items():
        if value is None:
            continue
        if name not in kind_fields:
            raise RecordValidationError(
                f"{record.TYPE.value} records have no field '{name}'"
            )
        if kind_fields[name]:
            if not isinstance(value, list):
                raise RecordValidationError(f"{name} must be a list of strings")
            value = list(value)
        elif not isinstance(value, str):
            raise RecordValidationError(f"{name} must be a string")
        setattr(record, name, value)

    if changes.classification is not None:
        record.classification = changes.classification
    if changes.tags is not None:
        record.tags = list(changes.tags)
    if changes.relates_to is not None:
        record.relates_to = list(changes.relates_to)
    if changes.supersedes is not None:
        record.supersedes = list(changes.supersedes)


def edit_record(
    store: ExpertiseStore,
    domain: str,
    identifier: str,
    changes: RecordChanges,
) -> ExpertiseRecord:
    """Resolve ``identifier`` and apply ``changes``; returns the updated record."""
    with store.lock(domain):
        records = store.read_domain_for_update(domain)
        _index, record = resolve_record_id(records, identifier)
        apply_changes(record, changes)
        store.rewrite_domain(domain, records)
    logger.info("Edited %s in %s", record.id, domain)
    return record


def append_outcome(
    store: ExpertiseStore,
    domain: str,
    identifier: str,
    outcome: Outcome,
) -> ExpertiseRecord:
    """Append ``outcome`` to a record's history, stamping it if unstamped."""
    if outcome.recorded_at is None:
        outcome.recorded_at = now_iso()
    with store.lock(domain):
        records = store.read_domain_for_update(domain)
        _index, record = resolve_record_id(records, identifier)
        record.outcomes = [*(record.outcomes or []), outcome]
        store.rewrite_domain(domain, records)
    logger.info("Appended %s outcome to %s in %s", outcome.status.value, record.id, domain)
    return record


def delete_record(store: ExpertiseStore, domain: str, identifier: str) -> ExpertiseRecord:
    """Remove the record ``identifier`` resolves to; returns the removed record."""
    with store.lock(domain):
        records = store.read_domain_for_update(domain)
        index, record = resolve_record_id(records, identifier)
        del records[index]
        store.rewrite_domain(domain, records)
    logger.info("Deleted %s from %s", record.id, domain)
    return record


# ---------------------------------------------------------------------------
# Compaction and pruning
# ---------------------------------------------------------------------------


@dataclass
class CompactResult:
    domain: str
    merged: int = 0
    # Kinds with more than one record, and how many records each has.
    groups: dict[RecordType, int] = field(default_factory=dict)
    dry_run: bool = False


def find_compact_groups(records: list[ExpertiseRecord]) -> dict[RecordType, int]:
    """Record counts per kind, for kinds holding more than one record."""
    counts: dict[RecordType, int] = {}
    for record in records:
        counts[record.TYPE] = counts.get(record.TYPE, 0) + 1
    return {rtype: count for rtype, count in counts.items() if count > 1}


def _recency(record: ExpertiseRecord) -> datetime:
    return parse_timestamp(record.recorded_at) or datetime.min.replace(tzinfo=timezone.utc)


def dedupe_newest(records: list[ExpertiseRecord]) -> list[ExpertiseRecord]:
    """Collapse records sharing kind and key to the newest one.

    On equal timestamps the later line wins. Survivors keep their file order.
    """
    winners: dict[tuple[RecordType, str], int] = {}
    for index, record in enumerate(records):
        key = (record.TYPE, unique_key(record))
        previous = winners.get(key)
        if previous is None or _recency(record) >= _recency(records[previous]):
            winners[key] = index
    keep = set(winners.values())
    return [record for index, record in enumerate(records) if index in keep]


def compact_domain(store: ExpertiseStore, domain: str, *, dry_run: bool = False) -> CompactResult:
    if dry_run:
        records = store.read_domain_for_update(domain)
        return CompactResult(
            domain=domain,
            merged=len(records) - len(dedupe_newest(records)),
            groups=find_compact_groups(records),
            dry_run=True,
        )

    with store.lock(domain):
        records = store.read_domain_for_update(domain)
        groups = find_compact_groups(records)
        kept = dedupe_newest(records)
        merged = len(records) - len(kept)
        if merged:
            store.rewrite_domain(domain, kept)
    if merged:
        logger.info("Compacted %d duplicate record(s) in %s", merged, domain)
    return CompactResult(domain=domain, merged=merged, groups=groups)


@dataclass
class PruneResult:
    domain: str
    pruned: list[ExpertiseRecord] = field(default_factory=list)
    dry_run: bool = False


def prune_domain(
    store: ExpertiseStore,
    domain: str,
    shelf_life: ShelfLife | None = None,
    now: datetime | None = None,
    *,
    dry_run: bool = False,
) -> PruneResult:
    """Remove records that have outlived their classification's shelf life."""
    now = now or datetime.now(timezone.utc)
    shelf_life = shelf_life or ShelfLife()

    if dry_run:
        records = store.read_domain_for_update(domain)
        stale = [r for r in records if is_record_stale(r, now, shelf_life)]
        return PruneResult(domain=domain, pruned=stale, dry_run=True)

    with store.lock(domain):
        records = store.read_domain_for_update(domain)
        stale = [r for r in records if is_record_stale(r, now, shelf_life)]
        if stale:
            store.rewrite_domain(
                domain, [r for r in records if not is_record_stale(r, now, shelf_life)]
            )
    if stale:
        logger.info("Pruned %d stale record(s) from %s", len(stale), domain)
    return PruneResult(domain=domain, pruned=stale)


def compact_domains(
    store: ExpertiseStore, domains: Iterable[str], *, dry_run: bool = False
) -> list[CompactResult]:
    """Compact each domain in turn, holding one lock at a time."""
    return [compact_domain(store, domain, dry_run=dry_run) for domain in domains]


def prune_domains(
    store: ExpertiseStore,
    domains: Iterable[str],
    shelf_life: ShelfLife | None = None,
    now: datetime | None = None,
    *,
    dry_run: bool = False,
) -> list[PruneResult]:
    """Prune each domain in turn against a single ``now``."""
    now = now or datetime.now(timezone.utc)
    return [
        prune_domain(store, domain, shelf_life, now, dry_run=dry_run)
        for domain in domains
    ]


# ---------------------------------------------------------------------------
# Domain registry
# ---------------------------------------------------------------------------


def add_domain(resolver: PathResolver, config: MulchConfig, name: str) -> MulchConfig:
    """Register ``name`` and create its empty store; returns the new config.

    Raises:
        InvalidDomainNameError: If ``name`` is not a safe file stem.
        DomainExistsError: If ``name`` is already registered.
    """
    validate_domain_name(name)
    if config.has_domain(name):
        raise DomainExistsError(name)

    updated = config.with_domain(name)
    write_config(updated, resolver)
    store = ExpertiseStore(resolver)
    if not store.exists(name):
        store.create_domain_file(name)
    logger.info("Added domain %s", name)
    return updated


def remove_domain(
    resolver: PathResolver,
    config: MulchConfig,
    name: str,
    *,
    force: bool = False,
) -> MulchConfig:
    """Unregister ``name`` and delete its store; returns the new config.

    Raises:
        DomainNotFoundError: If ``name`` is not registered.
        DomainNotEmptyError: If the store file still holds any non-blank line
            and ``force`` is off.
    """
    PathResolver.ensure_domain_exists(config, name)
    store = ExpertiseStore(resolver)
    count = store.count_lines(name)
    if count and not force:
        raise DomainNotEmptyError(name, count)

    updated = config.without_domain(name)
    write_config(updated, resolver)
    store.delete_domain_file(name)
    logger.info("Removed domain %s (%d record(s))", name, count)
    return updated
