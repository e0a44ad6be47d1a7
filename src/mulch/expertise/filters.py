"""Record filters and duplicate detection."""
from __future__ import annotations

from mulch.expertise.models import (
    Classification,
    ExpertiseRecord,
    OutcomeStatus,
    RecordType,
    record_files,
    unique_key,
)


def filter_by_type(records: list[ExpertiseRecord], rtype: RecordType) -> list[ExpertiseRecord]:
    return [r for r in records if r.TYPE == rtype]


def filter_by_classification(
    records: list[ExpertiseRecord], classification: Classification
) -> list[ExpertiseRecord]:
    return [r for r in records if r.classification == classification]


def filter_by_file(records: list[ExpertiseRecord], file: str) -> list[ExpertiseRecord]:
    """Records whose ``files`` contain ``file`` as a case-insensitive substring."""
    needle = file.lower()
    return [
        r for r in records
        if any(needle in f.lower() for f in record_files(r) or ())
    ]


def filter_by_tag(records: list[ExpertiseRecord], tag: str) -> list[ExpertiseRecord]:
    wanted = tag.lower()
    return [r for r in records if any(t.lower() == wanted for t in r.tags or ())]


def filter_by_outcome_status(
    records: list[ExpertiseRecord], status: OutcomeStatus
) -> list[ExpertiseRecord]:
    return [r for r in records if any(o.status == status for o in r.outcomes or ())]


def find_duplicate(
    existing: list[ExpertiseRecord], new_record: ExpertiseRecord
) -> tuple[int, ExpertiseRecord] | None:
    """First record of the same kind sharing ``new_record``'s natural key, if any."""
    key = unique_key(new_record)
    for index, record in enumerate(existing):
        if record.TYPE == new_record.TYPE and unique_key(record) == key:
            return index, record
    return None


def file_matches_any(file: str, paths: list[str]) -> bool:
    """True when ``file`` equals one of ``paths`` or either ends with the other."""
    return any(p == file or p.endswith(file) or file.endswith(p) for p in paths)


def filter_by_paths(records: list[ExpertiseRecord], paths: list[str]) -> list[ExpertiseRecord]:
    """Records relevant to ``paths``. A record without ``files`` is always relevant."""
    return [
        r for r in records
        if not record_files(r) or any(file_matches_any(f, paths) for f in record_files(r))
    ]
