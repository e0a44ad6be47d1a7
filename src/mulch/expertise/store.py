"""Newline-delimited JSON persistence for per-domain expertise files."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from pathlib import Path

from mulch.config.path_resolver import PathResolver
from mulch.core.errors import RecordValidationError, UndecodableLinesError
from mulch.expertise.identity import ensure_id
from mulch.expertise.lock import file_lock
from mulch.expertise.models import (
    ExpertiseRecord,
    migrate_legacy_outcome,
    record_from_dict,
    record_to_dict,
)

logger = logging.getLogger(__name__)


@dataclass
class LineError:
    """A stored line that failed to decode."""

    line: int
    message: str


@dataclass
class ReadResult:
    """Records decoded from a file plus the lines that could not be decoded."""

    records: list[ExpertiseRecord] = field(default_factory=list)
    errors: list[LineError] = field(default_factory=list)


def serialize_record(record: ExpertiseRecord) -> str:
    return json.dumps(record_to_dict(record), ensure_ascii=False, separators=(",", ":"))


def parse_record_line(line: str) -> ExpertiseRecord:
    """Decode one stored line, applying the legacy ``outcome`` migration first.

    Raises:
        RecordValidationError: If the line is not valid JSON or not a valid record.
    """
    try:
        raw = json.loads(line)
    except json.JSONDecodeError as exc:
        raise RecordValidationError(f"invalid JSON: {exc}") from exc
    if isinstance(raw, dict):
        raw = migrate_legacy_outcome(raw)
    return record_from_dict(raw)


def load_expertise_file(path: Path) -> ReadResult:
    """Read every record in ``path``, collecting per-line decode failures.

    A missing file is an empty store. Blank lines are skipped. I/O errors
    other than a missing file propagate.
    """
    result = ReadResult()
    try:
        with open(path, encoding="utf-8") as f:
            lines = f.read().splitlines()
    except FileNotFoundError:
        return result

    for line_number, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped:
            continue
        try:
            result.records.append(parse_record_line(stripped))
        except RecordValidationError as exc:
            result.errors.append(LineError(line=line_number, message=exc.detail))
    return result


def read_expertise_file(path: Path) -> list[ExpertiseRecord]:
    """Read the valid records in ``path``; undecodable lines are logged as warnings."""
    result = load_expertise_file(path)
    for error in result.errors:
        logger.warning("%s:%d: skipping undecodable record: %s", path, error.line, error.message)
    return result.records


def read_expertise_file_for_update(path: Path) -> list[ExpertiseRecord]:
    """Read ``path`` ahead of a rewrite, refusing if any line fails to decode.

    A rewrite persists only what was decoded, so lines that fail here would
    be lost. Dropping them is left to an explicit `mulch doctor --fix`.

    Raises:
        UndecodableLinesError: Naming every undecodable line.
    """
    result = load_expertise_file(path)
    if result.errors:
        raise UndecodableLinesError(
            str(path), [e.line for e in result.errors], result.errors[0].message
        )
    return result.records


def count_stored_lines(path: Path) -> int:
    """Non-blank lines in ``path``, decodable or not. A missing file counts 0."""
    try:
        with open(path, encoding="utf-8") as f:
            return sum(1 for line in f if line.strip())
    except FileNotFoundError:
        return 0


def append_to_expertise_file(path: Path, record: ExpertiseRecord) -> str:
    """Append one record as a single line, assigning its ID if absent."""
    record_id = ensure_id(record)
    line = serialize_record(record) + "\n"
    with open(path, "a", encoding="utf-8") as f:
        f.write(line)
    return record_id


def write_expertise_file(path: Path, records: list[ExpertiseRecord]) -> None:
    """Atomically replace ``path`` with ``records`` via a same-directory temp file + rename."""
    for record in records:
        ensure_id(record)
    content = "".join(serialize_record(r) + "\n" for r in records)

    target_dir = path.parent
    fd, tmp_path = tempfile.mkstemp(dir=target_dir, suffix=".tmp", prefix=f".{path.name}-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    logger.debug("Rewrote %s with %d record(s)", path, len(records))


def create_expertise_file(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("", encoding="utf-8")


class ExpertiseStore:
    """Per-domain record store rooted at a project's ``.mulch`` directory."""

    def __init__(self, resolver: PathResolver) -> None:
        self._resolver = resolver

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    def path_for(self, domain: str) -> Path:
        return self._resolver.expertise_path(domain)

    def exists(self, domain: str) -> bool:
        return self.path_for(domain).exists()

    def read_domain(self, domain: str) -> list[ExpertiseRecord]:
        return read_expertise_file(self.path_for(domain))

    def read_domain_with_errors(self, domain: str) -> ReadResult:
        return load_expertise_file(self.path_for(domain))

    def read_domain_for_update(self, domain: str) -> list[ExpertiseRecord]:
        return read_expertise_file_for_update(self.path_for(domain))

    def count_lines(self, domain: str) -> int:
        return count_stored_lines(self.path_for(domain))

    def append_record(self, domain: str, record: ExpertiseRecord) -> str:
        return append_to_expertise_file(self.path_for(domain), record)

    def rewrite_domain(self, domain: str, records: list[ExpertiseRecord]) -> None:
        write_expertise_file(self.path_for(domain), records)

    def create_domain_file(self, domain: str) -> None:
        create_expertise_file(self.path_for(domain))

    def delete_domain_file(self, domain: str) -> None:
        path = self.path_for(domain)
        if path.exists():
            path.unlink()

    def lock(self, domain: str) -> AbstractContextManager[Path]:
        """Advisory lock guarding the domain's store file."""
        return file_lock(self.path_for(domain))
