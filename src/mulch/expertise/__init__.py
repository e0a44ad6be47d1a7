"""Expertise store: per-domain NDJSON records with ranking and budgeted priming."""
from __future__ import annotations

from mulch.expertise.models import (
    Classification,
    Convention,
    Decision,
    Evidence,
    ExpertiseRecord,
    Failure,
    Guide,
    Outcome,
    OutcomeStatus,
    Pattern,
    RecordType,
    Reference,
)
from mulch.expertise.store import ExpertiseStore

__all__ = [
    "Classification",
    "Convention",
    "Decision",
    "Evidence",
    "ExpertiseRecord",
    "ExpertiseStore",
    "Failure",
    "Guide",
    "Outcome",
    "OutcomeStatus",
    "Pattern",
    "RecordType",
    "Reference",
]
