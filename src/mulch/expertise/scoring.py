"""Confirmation scoring from a record's outcome history."""
from __future__ import annotations

from mulch.expertise.models import ExpertiseRecord, OutcomeStatus


def _count(record: ExpertiseRecord, status: OutcomeStatus) -> int:
    return sum(1 for o in record.outcomes or () if o.status == status)


def get_success_count(record: ExpertiseRecord) -> int:
    return _count(record, OutcomeStatus.SUCCESS)


def get_failure_count(record: ExpertiseRecord) -> int:
    return _count(record, OutcomeStatus.FAILURE)


def get_partial_count(record: ExpertiseRecord) -> int:
    return _count(record, OutcomeStatus.PARTIAL)


def get_total_applications(record: ExpertiseRecord) -> int:
    return len(record.outcomes or ())


def compute_confirmation_score(record: ExpertiseRecord) -> float:
    """successCount + 0.5 * partialCount; zero without outcomes."""
    if not record.outcomes:
        return 0.0
    return get_success_count(record) + 0.5 * get_partial_count(record)


def get_success_rate(record: ExpertiseRecord) -> float:
    """Confirmation score over total applications (0.0-1.0)."""
    total = get_total_applications(record)
    if total == 0:
        return 0.0
    return compute_confirmation_score(record) / total


def apply_confirmation_boost(base_score: float, record: ExpertiseRecord, boost_factor: float) -> float:
    """Scale ``base_score`` by ``1 + boost_factor * score``; unchanged when the score is zero."""
    score = compute_confirmation_score(record)
    if score == 0:
        return base_score
    return base_score * (1.0 + boost_factor * score)


def sort_by_confirmation_score(records: list[ExpertiseRecord]) -> list[ExpertiseRecord]:
    """Highest confirmation score first; ties keep their incoming order."""
    return sorted(records, key=compute_confirmation_score, reverse=True)
