"""Priority ranking and token-budget packing for priming output."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable

from mulch.config.constants import CHARS_PER_TOKEN, DEFAULT_PRIME_BUDGET
from mulch.expertise.models import (
    Classification,
    ExpertiseRecord,
    RecordType,
    parse_timestamp,
)
from mulch.expertise.scoring import compute_confirmation_score

logger = logging.getLogger(__name__)

RenderFn = Callable[[ExpertiseRecord, str], str]


@dataclass
class DomainRecords:
    """Records belonging to one domain, in store order."""

    domain: str
    records: list[ExpertiseRecord] = field(default_factory=list)


@dataclass
class BudgetResult:
    """Outcome of packing domain groups into a budget."""

    kept: list[DomainRecords]
    dropped_count: int
    affected_domains: list[str]
    used_tokens: int = 0

    @property
    def dropped_domain_count(self) -> int:
        return len(self.affected_domains)


def estimate_tokens(text: str) -> int:
    """Coarse token count: characters / 4, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class BudgetAllocator:
    """Sort records by priority and keep the longest prefix that fits the budget."""

    TYPE_PRIORITY: dict[RecordType, int] = {
        RecordType.CONVENTION: 0,
        RecordType.DECISION: 1,
        RecordType.PATTERN: 2,
        RecordType.GUIDE: 3,
        RecordType.FAILURE: 4,
        RecordType.REFERENCE: 5,
    }

    CLASSIFICATION_PRIORITY: dict[Classification, int] = {
        Classification.FOUNDATIONAL: 0,
        Classification.TACTICAL: 1,
        Classification.OBSERVATIONAL: 2,
    }

    def _sort_key(self, record: ExpertiseRecord) -> tuple[int, int, float, float]:
        type_rank = self.TYPE_PRIORITY.get(record.TYPE, len(self.TYPE_PRIORITY))
        class_rank = self.CLASSIFICATION_PRIORITY.get(
            record.classification, len(self.CLASSIFICATION_PRIORITY)
        )
        recorded = parse_timestamp(record.recorded_at)
        # Unparseable timestamps rank as oldest.
        recency = recorded.timestamp() if recorded is not None else -math.inf
        return (type_rank, class_rank, -compute_confirmation_score(record), -recency)

    def apply(
        self,
        domains: list[DomainRecords],
        budget: int,
        render: RenderFn,
    ) -> BudgetResult:
        """Keep the highest-priority records whose rendered cost fits ``budget``.

        Packing stops at the first record that does not fit; every record after
        it in priority order is dropped too, so truncation is always a
        contiguous tail of the priority ranking. Kept records are regrouped by
        domain in their original order. A domain that loses any record is
        reported in ``affected_domains``; one that loses all of them is left
        out of ``kept``.
        """
        flattened = [
            (group_index, record_index, group.domain, record)
            for group_index, group in enumerate(domains)
            for record_index, record in enumerate(group.records)
        ]
        ordered = sorted(flattened, key=lambda entry: self._sort_key(entry[3]))

        used_tokens = 0
        kept_positions: set[tuple[int, int]] = set()
        for group_index, record_index, domain, record in ordered:
            cost = estimate_tokens(render(record, domain))
            if used_tokens + cost > budget:
                break
            used_tokens += cost
            kept_positions.add((group_index, record_index))

        kept: list[DomainRecords] = []
        affected: list[str] = []
        for group_index, group in enumerate(domains):
            kept_records = [
                record
                for record_index, record in enumerate(group.records)
                if (group_index, record_index) in kept_positions
            ]
            if len(kept_records) < len(group.records) and group.domain not in affected:
                affected.append(group.domain)
            if kept_records:
                kept.append(DomainRecords(domain=group.domain, records=kept_records))

        dropped = len(flattened) - len(kept_positions)
        if dropped:
            logger.debug(
                "Budget %d: kept %d record(s), dropped %d across %d domain(s)",
                budget, len(kept_positions), dropped, len(affected),
            )
        return BudgetResult(
            kept=kept,
            dropped_count=dropped,
            affected_domains=affected,
            used_tokens=used_tokens,
        )


def apply_budget(
    domains: list[DomainRecords],
    budget: int = DEFAULT_PRIME_BUDGET,
    render: RenderFn | None = None,
) -> BudgetResult:
    """Module-level entry point for :meth:`BudgetAllocator.apply`."""
    if render is None:
        from mulch.expertise.formatter import render_record_markdown

        render = render_record_markdown
    return BudgetAllocator().apply(domains, budget, render)


def format_budget_summary(dropped_count: int, dropped_domain_count: int) -> str:
    """Truncation notice, e.g. ``... and 3 more records across 2 domains (...)``."""
    domain_part = ""
    if dropped_domain_count > 0:
        plural = "" if dropped_domain_count == 1 else "s"
        domain_part = f" across {dropped_domain_count} domain{plural}"
    record_plural = "" if dropped_count == 1 else "s"
    return (
        f"... and {dropped_count} more record{record_plural}{domain_part} "
        "(use --budget <n> to show more)"
    )
