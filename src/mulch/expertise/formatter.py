"""Text and JSON rendering of expertise records for the CLI and priming."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from mulch.config.constants import SUMMARY_MAX_LENGTH
from mulch.expertise.models import (
    Convention,
    Decision,
    ExpertiseRecord,
    Failure,
    OutcomeStatus,
    RecordType,
    parse_timestamp,
    record_files,
    record_to_dict,
)

_OUTCOME_SYMBOL: dict[OutcomeStatus, str] = {
    OutcomeStatus.SUCCESS: "✓",
    OutcomeStatus.PARTIAL: "~",
    OutcomeStatus.FAILURE: "✗",
}


def truncate(text: str, max_length: int = SUMMARY_MAX_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def get_record_summary(record: ExpertiseRecord) -> str:
    """One-line summary: the record's content, name, description or title."""
    if isinstance(record, Convention):
        text = record.content
    elif isinstance(record, Failure):
        text = record.description
    elif isinstance(record, Decision):
        text = record.title
    else:
        text = record.name
    return truncate(text)


def format_time_ago(recorded_at: str, now: datetime | None = None) -> str:
    parsed = parse_timestamp(recorded_at)
    if parsed is None:
        return "unknown"
    now = now or datetime.now(timezone.utc)
    minutes = int((now - parsed).total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 60 * 24:
        return f"{minutes // 60}h ago"
    return f"{minutes // (60 * 24)}d ago"


def _format_outcome(record: ExpertiseRecord) -> str:
    if not record.outcomes:
        return ""
    latest = record.outcomes[-1]
    parts = [_OUTCOME_SYMBOL[latest.status]]
    if latest.duration is not None:
        parts.append(f"{latest.duration:g}ms")
    if latest.agent:
        parts.append(f"@{latest.agent}")
    if len(record.outcomes) > 1:
        parts.append(f"({len(record.outcomes)}x)")
    return f" [{' '.join(parts)}]"


def _format_links(record: ExpertiseRecord) -> str:
    parts = []
    if record.relates_to:
        parts.append(f"relates to: {', '.join(record.relates_to)}")
    if record.supersedes:
        parts.append(f"supersedes: {', '.join(record.supersedes)}")
    return f" [{'; '.join(parts)}]" if parts else ""


def _format_meta(record: ExpertiseRecord, full: bool) -> str:
    if not full:
        return _format_links(record)
    meta = f" ({record.classification.value})"
    if record.evidence is not None and not record.evidence.is_empty():
        evidence = ", ".join(f"{k}: {v}" for k, v in record.evidence.to_dict().items())
        meta += f" [{evidence}]"
    if record.tags:
        meta += f" [tags: {', '.join(record.tags)}]"
    return meta + _format_links(record)


def render_record_markdown(record: ExpertiseRecord, domain: str = "", full: bool = False) -> str:
    """Markdown bullet for one record.

    This is also the text whose length the prime budget charges per record.
    ``domain`` is accepted so the function can serve as a budget render hook.
    """
    id_tag = f"[{record.id}] " if record.id else ""
    meta = _format_meta(record, full) + _format_outcome(record)

    if isinstance(record, Convention):
        return f"- {id_tag}{record.content}{meta}"
    if isinstance(record, Failure):
        return f"- {id_tag}{record.description}{meta}\n  → {record.resolution}"
    if isinstance(record, Decision):
        return f"- {id_tag}**{record.title}**: {record.rationale}{meta}"
    files = record_files(record)
    file_note = f" ({', '.join(files)})" if files else ""
    return f"- {id_tag}**{record.name}**: {record.description}{file_note}{meta}"


class PrimeFormatter:
    """Render domains of records as markdown sections or JSON payloads."""

    _TYPE_LABEL: dict[RecordType, str] = {
        RecordType.CONVENTION: "Conventions",
        RecordType.PATTERN: "Patterns",
        RecordType.FAILURE: "Known Failures",
        RecordType.DECISION: "Decisions",
        RecordType.REFERENCE: "References",
        RecordType.GUIDE: "Guides",
    }

    _TYPE_ORDER: tuple[RecordType, ...] = (
        RecordType.CONVENTION,
        RecordType.PATTERN,
        RecordType.FAILURE,
        RecordType.DECISION,
        RecordType.REFERENCE,
        RecordType.GUIDE,
    )

    def __init__(self, full: bool = False) -> None:
        self.full = full

    def format_domain(self, domain: str, records: list[ExpertiseRecord]) -> str:
        newest = max((r.recorded_at for r in records), default=None)
        updated = f", updated {format_time_ago(newest)}" if newest else ""
        lines = [f"## {domain} ({len(records)} records{updated})", ""]

        by_type: dict[RecordType, list[ExpertiseRecord]] = {}
        for record in records:
            by_type.setdefault(record.TYPE, []).append(record)

        sections = []
        for rtype in self._TYPE_ORDER:
            group = by_type.get(rtype)
            if not group:
                continue
            section = [f"### {self._TYPE_LABEL[rtype]}"]
            section.extend(render_record_markdown(r, domain, self.full) for r in group)
            sections.append("\n".join(section))
        lines.append("\n\n".join(sections))
        return "\n".join(lines).rstrip() + "\n"

    def format_markdown(self, domains: list[tuple[str, list[ExpertiseRecord]]]) -> str:
        lines = ["# Project Expertise (via Mulch)", ""]
        for domain, records in domains:
            lines.append(self.format_domain(domain, records))
        return "\n".join(lines).rstrip() + "\n"

    def format_json(self, domains: list[tuple[str, list[ExpertiseRecord]]]) -> dict[str, Any]:
        return {
            "type": "expertise",
            "domains": [
                {
                    "domain": domain,
                    "entry_count": len(records),
                    "records": [record_to_dict(r) for r in records],
                }
                for domain, records in domains
            ],
        }
