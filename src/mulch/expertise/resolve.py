"""Resolve full, bare, or prefix record identifiers to a single record."""
from __future__ import annotations

from mulch.config.constants import RECORD_ID_PREFIX
from mulch.core.errors import AmbiguousIdentifierError, RecordNotFoundError
from mulch.expertise.models import ExpertiseRecord


def resolve_record_id(
    records: list[ExpertiseRecord], identifier: str
) -> tuple[int, ExpertiseRecord]:
    """Find the one record ``identifier`` refers to.

    Accepts a full ID (``mx-abc123``), a bare hash (``abc123``) or a prefix of
    either (``abc``, ``mx-abc``). An exact match wins; otherwise the identifier
    must be a prefix of exactly one ID.

    Returns:
        (index, record) of the match within ``records``

    Raises:
        RecordNotFoundError: If nothing matches.
        AmbiguousIdentifierError: If the prefix matches several records.
    """
    hash_part = identifier[len(RECORD_ID_PREFIX):] if identifier.startswith(RECORD_ID_PREFIX) else identifier
    full_id = f"{RECORD_ID_PREFIX}{hash_part}"

    for index, record in enumerate(records):
        if record.id == full_id:
            return index, record

    matches = [
        (index, record)
        for index, record in enumerate(records)
        if record.id is not None and record.id.startswith(full_id)
    ]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise RecordNotFoundError(identifier)
    raise AmbiguousIdentifierError(identifier, [record.id for _, record in matches])
