"""Expertise data models and their newline-delimited JSON representation.

Each record kind is its own dataclass; ``ExpertiseRecord`` is the closed union
of the six. The shared fields live on ``RecordFields``, which carries data only.
Behaviour that depends on the kind (unique key, searchable text, ordering of
keys on disk) is driven by class-level metadata and the module functions below.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Union

from mulch.core.errors import RecordValidationError


class RecordType(str, Enum):
    """Kinds of expertise records."""

    CONVENTION = "convention"
    PATTERN = "pattern"
    FAILURE = "failure"
    DECISION = "decision"
    REFERENCE = "reference"
    GUIDE = "guide"


class Classification(str, Enum):
    """Durability tier of a record."""

    FOUNDATIONAL = "foundational"
    TACTICAL = "tactical"
    OBSERVATIONAL = "observational"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC. None if unparseable."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Evidence:
    """Structured provenance for a record."""

    commit: str | None = None
    date: str | None = None
    issue: str | None = None
    file: str | None = None
    bead: str | None = None

    _FIELDS: ClassVar[tuple[str, ...]] = ("commit", "date", "issue", "file", "bead")

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in self._FIELDS)

    def to_dict(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in self._FIELDS if getattr(self, name) is not None}

    @classmethod
    def from_dict(cls, data: Any) -> "Evidence":
        if not isinstance(data, dict):
            raise RecordValidationError("evidence must be an object")
        values = {}
        for name in cls._FIELDS:
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise RecordValidationError(f"evidence.{name} must be a string")
            values[name] = value
        return cls(**values)


@dataclass
class Outcome:
    """One historical application of a record."""

    status: OutcomeStatus
    duration: float | None = None
    test_results: str | None = None
    agent: str | None = None
    notes: str | None = None
    recorded_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status.value}
        for name in ("duration", "test_results", "agent", "notes", "recorded_at"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Outcome":
        if not isinstance(data, dict):
            raise RecordValidationError("outcome must be an object")
        status = _parse_enum(OutcomeStatus, data.get("status"), "outcome.status")
        duration = data.get("duration")
        if duration is not None:
            if isinstance(duration, bool) or not isinstance(duration, (int, float)):
                raise RecordValidationError("outcome.duration must be a number")
            duration = float(duration)
        text = {}
        for name in ("test_results", "agent", "notes", "recorded_at"):
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise RecordValidationError(f"outcome.{name} must be a string")
            text[name] = value
        return cls(status=status, duration=duration, **text)


@dataclass(kw_only=True)
class RecordFields:
    """Fields shared by every record kind."""

    id: str | None = None
    classification: Classification
    recorded_at: str
    evidence: Evidence | None = None
    tags: list[str] | None = None
    relates_to: list[str] | None = None
    supersedes: list[str] | None = None
    outcomes: list[Outcome] | None = None

    TYPE: ClassVar[RecordType]
    # Kind-specific fields in on-disk order: (name, is_list, required).
    FIELDS: ClassVar[tuple[tuple[str, bool, bool], ...]]
    KEY_FIELD: ClassVar[str]


@dataclass(kw_only=True)
class Convention(RecordFields):
    content: str

    TYPE: ClassVar[RecordType] = RecordType.CONVENTION
    FIELDS: ClassVar[tuple[tuple[str, bool, bool], ...]] = (("content", False, True),)
    KEY_FIELD: ClassVar[str] = "content"


@dataclass(kw_only=True)
class Pattern(RecordFields):
    name: str
    description: str
    files: list[str] | None = None

    TYPE: ClassVar[RecordType] = RecordType.PATTERN
    FIELDS: ClassVar[tuple[tuple[str, bool, bool], ...]] = (
        ("name", False, True),
        ("description", False, True),
        ("files", True, False),
    )
    KEY_FIELD: ClassVar[str] = "name"


@dataclass(kw_only=True)
class Failure(RecordFields):
    description: str
    resolution: str

    TYPE: ClassVar[RecordType] = RecordType.FAILURE
    FIELDS: ClassVar[tuple[tuple[str, bool, bool], ...]] = (
        ("description", False, True),
        ("resolution", False, True),
    )
    KEY_FIELD: ClassVar[str] = "description"


@dataclass(kw_only=True)
class Decision(RecordFields):
    title: str
    rationale: str
    date: str | None = None

    TYPE: ClassVar[RecordType] = RecordType.DECISION
    FIELDS: ClassVar[tuple[tuple[str, bool, bool], ...]] = (
        ("title", False, True),
        ("rationale", False, True),
        ("date", False, False),
    )
    KEY_FIELD: ClassVar[str] = "title"


@dataclass(kw_only=True)
class Reference(RecordFields):
    name: str
    description: str
    files: list[str] | None = None

    TYPE: ClassVar[RecordType] = RecordType.REFERENCE
    FIELDS: ClassVar[tuple[tuple[str, bool, bool], ...]] = (
        ("name", False, True),
        ("description", False, True),
        ("files", True, False),
    )
    KEY_FIELD: ClassVar[str] = "name"


@dataclass(kw_only=True)
class Guide(RecordFields):
    name: str
    description: str

    TYPE: ClassVar[RecordType] = RecordType.GUIDE
    FIELDS: ClassVar[tuple[tuple[str, bool, bool], ...]] = (
        ("name", False, True),
        ("description", False, True),
    )
    KEY_FIELD: ClassVar[str] = "name"


ExpertiseRecord = Union[Convention, Pattern, Failure, Decision, Reference, Guide]

RECORD_CLASSES: dict[RecordType, type] = {
    cls.TYPE: cls for cls in (Convention, Pattern, Failure, Decision, Reference, Guide)
}

# Kinds with a natural name/title key; duplicates are upserted rather than skipped.
NAMED_TYPES: frozenset[RecordType] = frozenset(
    {RecordType.PATTERN, RecordType.DECISION, RecordType.REFERENCE, RecordType.GUIDE}
)


def record_type(record: ExpertiseRecord) -> RecordType:
    return record.TYPE


def unique_key(record: ExpertiseRecord) -> str:
    """The natural key that identifies a record within its kind."""
    return getattr(record, record.KEY_FIELD)


def is_named_type(record: ExpertiseRecord) -> bool:
    return record.TYPE in NAMED_TYPES


def record_files(record: ExpertiseRecord) -> list[str] | None:
    return getattr(record, "files", None)


# ---------------------------------------------------------------------------
# JSON encoding
# ---------------------------------------------------------------------------


def record_to_dict(record: ExpertiseRecord) -> dict[str, Any]:
    """Serialize a record with a stable key order; absent optionals are omitted."""
    data: dict[str, Any] = {"type": record.TYPE.value}
    if record.id is not None:
        data["id"] = record.id
    for name, is_list, _required in record.FIELDS:
        value = getattr(record, name)
        if value is not None:
            data[name] = list(value) if is_list else value
    data["classification"] = record.classification.value
    data["recorded_at"] = record.recorded_at
    if record.evidence is not None:
        data["evidence"] = record.evidence.to_dict()
    for name in ("tags", "relates_to", "supersedes"):
        value = getattr(record, name)
        if value is not None:
            data[name] = list(value)
    if record.outcomes is not None:
        data["outcomes"] = [o.to_dict() for o in record.outcomes]
    return data


def migrate_legacy_outcome(data: dict[str, Any]) -> dict[str, Any]:
    """Rewrite a legacy singular ``outcome`` object as a one-element ``outcomes`` list."""
    if "outcome" in data and "outcomes" not in data:
        data = dict(data)
        data["outcomes"] = [data.pop("outcome")]
    return data


def record_from_dict(data: Any) -> ExpertiseRecord:
    """Decode a tagged record object. Unknown keys are ignored.

    Raises:
        RecordValidationError: On a missing or unknown type tag, a missing
            required field, a wrongly typed value, or an invalid enum value.
    """
    if not isinstance(data, dict):
        raise RecordValidationError("record must be a JSON object")

    type_tag = data.get("type")
    if type_tag is None:
        raise RecordValidationError("missing field 'type'")
    rtype = _parse_enum(RecordType, type_tag, "type")
    cls = RECORD_CLASSES[rtype]

    kwargs: dict[str, Any] = {}
    for name, is_list, required in cls.FIELDS:
        value = data.get(name)
        if value is None:
            if required:
                raise RecordValidationError(f"{rtype.value} record is missing field '{name}'")
            continue
        kwargs[name] = _parse_str_list(value, name) if is_list else _parse_str(value, name)

    record_id = data.get("id")
    if record_id is not None:
        kwargs["id"] = _parse_str(record_id, "id")

    if data.get("classification") is None:
        raise RecordValidationError("missing field 'classification'")
    kwargs["classification"] = _parse_enum(Classification, data["classification"], "classification")

    if data.get("recorded_at") is None:
        raise RecordValidationError("missing field 'recorded_at'")
    kwargs["recorded_at"] = _parse_str(data["recorded_at"], "recorded_at")

    if data.get("evidence") is not None:
        kwargs["evidence"] = Evidence.from_dict(data["evidence"])
    for name in ("tags", "relates_to", "supersedes"):
        if data.get(name) is not None:
            kwargs[name] = _parse_str_list(data[name], name)
    if data.get("outcomes") is not None:
        outcomes = data["outcomes"]
        if not isinstance(outcomes, list):
            raise RecordValidationError("outcomes must be a list")
        kwargs["outcomes"] = [Outcome.from_dict(o) for o in outcomes]

    return cls(**kwargs)


def _parse_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)
        raise RecordValidationError(
            f"invalid {field_name} {value!r} (expected one of: {valid})"
        ) from None


def _parse_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise RecordValidationError(f"{field_name} must be a string")
    return value


def _parse_str_list(value: Any, field_name: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise RecordValidationError(f"{field_name} must be a list of strings")
    return list(value)
