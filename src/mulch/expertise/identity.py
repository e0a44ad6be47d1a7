"""Deterministic record identifiers."""
from __future__ import annotations

import hashlib

from mulch.config.constants import RECORD_ID_HASH_LENGTH, RECORD_ID_PREFIX
from mulch.expertise.models import ExpertiseRecord, unique_key


def generate_record_id(record: ExpertiseRecord) -> str:
    """Return ``mx-`` plus the first six hex chars of sha256("<type>:<unique key>").

    The ID depends only on the record kind and its natural key, so logically
    identical records always share an ID and renaming a record changes it.
    """
    key = f"{record.TYPE.value}:{unique_key(record)}"
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"{RECORD_ID_PREFIX}{digest[:RECORD_ID_HASH_LENGTH]}"


def ensure_id(record: ExpertiseRecord) -> str:
    """Assign a generated ID if the record has none; return the record's ID."""
    if record.id is None:
        record.id = generate_record_id(record)
    return record.id
