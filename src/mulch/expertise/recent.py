"""Recently recorded expertise across domains, newest first."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from mulch.core.errors import InvalidDurationError
from mulch.expertise.models import ExpertiseRecord, parse_timestamp
from mulch.expertise.store import ExpertiseStore

_DURATION_RE = re.compile(r"(\d+)([mhdw])")
_DURATION_UNITS = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def parse_since(value: str) -> timedelta:
    """Parse a look-back window such as ``30m``, ``24h``, ``7d`` or ``2w``."""
    match = _DURATION_RE.fullmatch(value.strip())
    if match is None:
        raise InvalidDurationError(value)
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


@dataclass
class RecentRecord:
    domain: str
    record: ExpertiseRecord

    @property
    def timestamp(self) -> datetime | None:
        return parse_timestamp(self.record.recorded_at)


def recent_records(
    store: ExpertiseStore,
    domains: Iterable[str],
    *,
    since: timedelta | None = None,
    limit: int = 10,
    now: datetime | None = None,
) -> list[RecentRecord]:
    """The ``limit`` newest records across ``domains``.

    With ``since``, only records stamped within that window of ``now`` are
    kept. Records whose timestamp does not parse sort last and never fall
    inside a window. Equal timestamps keep domain then file order.
    """
    entries = [
        RecentRecord(domain=domain, record=record)
        for domain in domains
        for record in store.read_domain(domain)
    ]
    entries.sort(key=lambda e: e.timestamp or _OLDEST, reverse=True)

    if since is not None:
        cutoff = (now or datetime.now(timezone.utc)) - since
        entries = [e for e in entries if e.timestamp is not None and e.timestamp >= cutoff]
    return entries[:max(limit, 0)]
