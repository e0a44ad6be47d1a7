"""Staleness checks and per-domain health metrics."""
from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from mulch.config.settings import GovernanceConfig, ShelfLife
from mulch.expertise.models import (
    Classification,
    ExpertiseRecord,
    RecordType,
    parse_timestamp,
)


class GovernanceStatus(str, Enum):
    """How close a domain is to its entry limits."""

    OK = "ok"
    APPROACHING = "approaching"
    OVER = "over"
    CRITICAL = "critical"


_STATUS_MESSAGES: dict[GovernanceStatus, str] = {
    GovernanceStatus.OK: "",
    GovernanceStatus.APPROACHING: "approaching limit",
    GovernanceStatus.OVER: "consider splitting domain",
    GovernanceStatus.CRITICAL: "OVER HARD LIMIT, must decompose",
}


def governance_status(count: int, governance: GovernanceConfig) -> GovernanceStatus:
    if count >= governance.hard_limit:
        return GovernanceStatus.CRITICAL
    if count >= governance.warn_entries:
        return GovernanceStatus.OVER
    if count >= governance.max_entries:
        return GovernanceStatus.APPROACHING
    return GovernanceStatus.OK


def governance_message(status: GovernanceStatus) -> str:
    return _STATUS_MESSAGES[status]


def is_record_stale(
    record: ExpertiseRecord,
    now: datetime | None = None,
    shelf_life: ShelfLife | None = None,
) -> bool:
    """Return True once a record has outlived its classification's shelf life.

    Foundational records never go stale. Age is counted in whole elapsed days
    and must exceed the shelf life. Records with unparseable timestamps are
    never considered stale.
    """
    if record.classification == Classification.FOUNDATIONAL:
        return False
    recorded = parse_timestamp(record.recorded_at)
    if recorded is None:
        return False
    now = now or datetime.now(timezone.utc)
    shelf_life = shelf_life or ShelfLife()

    age_days = (now - recorded).days
    if record.classification == Classification.TACTICAL:
        return age_days > shelf_life.tactical
    return age_days > shelf_life.observational


@dataclass
class DomainHealth:
    record_count: int = 0
    governance_utilization: int = 0
    stale_count: int = 0
    type_distribution: dict[RecordType, int] = field(default_factory=dict)
    classification_distribution: dict[Classification, int] = field(default_factory=dict)
    oldest_timestamp: str | None = None
    newest_timestamp: str | None = None


def calculate_domain_health(
    records: list[ExpertiseRecord],
    max_entries: int,
    shelf_life: ShelfLife | None = None,
    now: datetime | None = None,
) -> DomainHealth:
    """Summarize size, staleness and composition of one domain's records."""
    now = now or datetime.now(timezone.utc)
    shelf_life = shelf_life or ShelfLife()

    type_counts: Counter[RecordType] = Counter(r.TYPE for r in records)
    class_counts: Counter[Classification] = Counter(r.classification for r in records)
    stale = sum(1 for r in records if is_record_stale(r, now, shelf_life))
    timestamps = [r.recorded_at for r in records]

    # Half-up rounding, so 2.5% reports as 3.
    utilization = math.floor(len(records) / max_entries * 100 + 0.5) if max_entries > 0 else 0

    return DomainHealth(
        record_count=len(records),
        governance_utilization=utilization,
        stale_count=stale,
        type_distribution=dict(type_counts),
        classification_distribution=dict(class_counts),
        oldest_timestamp=min(timestamps) if timestamps else None,
        newest_timestamp=max(timestamps) if timestamps else None,
    )
